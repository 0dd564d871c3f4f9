"""
Admin import router - start uploads through the external upload service.

The browser uploads straight to the upload service; once the file has been
scanned the service calls back /upload-callback (see upload_callback.py).
"""

import logging

import requests
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from api.dependencies import get_current_user, get_uploader_client
from api.schemas.import_schema import InitiateUploadRequest, InitiateUploadResponse
from services.uploader_client import UploaderClient, UploaderError

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/admin/import', tags=['admin-import'])


@router.post('/initiate', response_model=InitiateUploadResponse)
async def initiate_import(
    payload: InitiateUploadRequest,
    uploader: UploaderClient = Depends(get_uploader_client),
    current_user: str = Depends(get_current_user)
):
    """
    Start an upload session for a workbook holding the given entities.

    The entity list travels to the upload service as metadata and comes
    back unchanged in the callback.
    """
    entities = payload.normalized()
    try:
        result = uploader.initiate_upload(metadata={'entities': entities})
    except (UploaderError, requests.RequestException) as e:
        logger.error(f"Failed to initiate upload: {e}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={'success': False, 'message': 'Failed to initiate upload', 'error': str(e)}
        )

    logger.info(f"Upload {result.get('uploadId')} initiated by {current_user} for {entities}")
    return InitiateUploadResponse(
        uploadId=result.get('uploadId'),
        uploadUrl=result.get('uploadUrl'),
        statusUrl=result.get('statusUrl')
    )


@router.get('/status')
async def get_import_status(
    statusUrl: str = Query(..., description="Status URL returned by /initiate"),
    uploader: UploaderClient = Depends(get_uploader_client)
):
    """Poll the upload service for the status of an upload."""
    try:
        upload_status = uploader.get_upload_status(statusUrl)
    except (UploaderError, requests.RequestException) as e:
        logger.error(f"Failed to get upload status: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={'success': False, 'message': 'Failed to get upload status', 'error': str(e)}
        )
    return {'success': True, 'status': upload_status}
