"""
Upload callback router - receives scan results from the upload service.

Validation outcomes (not ready, rejected, incomplete, no entities) answer
200 with ``success: false``. A failed download or import answers 500.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from api.dependencies import get_db, get_storage_service
from api.schemas.import_schema import UploadCallbackPayload
from services.excel_import_service import ExcelImportService
from services.storage_service import StorageService

logger = logging.getLogger(__name__)

router = APIRouter(tags=['upload-callback'])


def _rejected(message: str, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'success': False, 'message': message})


# Plain def: the S3 download and batch import run in the threadpool
@router.post('/upload-callback')
def upload_callback(
    body: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service)
):
    """Download the scanned workbook from S3 and import the requested entities."""
    try:
        payload = UploadCallbackPayload.model_validate(body)
    except ValidationError as e:
        logger.error(f"Upload callback validation failed: {e}")
        return _rejected(str(e), status.HTTP_400_BAD_REQUEST)

    logger.info(
        f"Upload callback received: status={payload.uploadStatus}, "
        f"rejected={payload.numberOfRejectedFiles}, metadata={payload.metadata}"
    )

    if payload.uploadStatus != 'ready':
        logger.warning(f"Upload not ready yet: {payload.uploadStatus}")
        return _rejected('Upload not ready')

    if payload.numberOfRejectedFiles > 0:
        logger.error(f"{payload.numberOfRejectedFiles} file(s) rejected during scan")
        return _rejected('One or more files were rejected (virus detected or validation failed)')

    file_field = payload.form.get('file')
    if not isinstance(file_field, dict) or file_field.get('fileStatus') != 'complete':
        logger.error(f"File not complete or missing: {file_field}")
        return _rejected('File not available or incomplete')

    if file_field.get('hasError'):
        logger.error(f"File rejected with error: {file_field.get('errorMessage')}")
        return _rejected(file_field.get('errorMessage') or 'File validation failed')

    entities = payload.metadata.get('entities')
    if not isinstance(entities, list) or not entities:
        logger.error("No entities specified in metadata")
        return _rejected('No entities specified for import')

    s3_bucket = file_field.get('s3Bucket')
    s3_key = file_field.get('s3Key')
    temp_path = None
    try:
        temp_path = storage.download_from_s3(s3_bucket, s3_key)
        logger.info(f"Processing Excel import of {file_field.get('filename')} for {entities}")

        results = ExcelImportService(db).import_batch(temp_path, entities)
        logger.info(f"Import completed: {[r.to_dict() for r in results]}")

        return {
            'success': True,
            'message': 'Import completed successfully',
            'results': [r.to_dict() for r in results]
        }
    except Exception as e:
        logger.error(f"Import failed: {e}", exc_info=True)
        return _rejected(str(e) or 'Import processing failed', status.HTTP_500_INTERNAL_SERVER_ERROR)
    finally:
        storage.cleanup_temp_file(temp_path)
