"""
Import router - spreadsheet uploads, import jobs and templates.

This module provides endpoints for uploading workbooks (queued or direct),
checking the status of import jobs and downloading import templates.
"""

import os
import uuid
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from zipfile import BadZipFile

import redis
from fastapi import (
    APIRouter, UploadFile, File, Form, Depends, HTTPException, status, Query, Response
)
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy.orm import Session

from api.config import settings
from api.dependencies import (
    get_db, get_current_user, get_storage_service, verify_file_extension, verify_file_size
)
from api.schemas.common import PaginatedResponse
from api.schemas.import_schema import DirectImportResponse, ImportStartResponse
from api.schemas.job_schema import ImportJobListItem, ImportJobResponse, ImportProgress
from backend.models.job import CANCELLABLE_STATUSES, ImportJob, JobStatus
from services.entity_config import resolve_entity_type
from services.errors import StoreUnavailableError, UnknownEntityTypeError
from services.excel_import_service import ExcelImportService
from services.storage_service import StorageService
from services.template_service import template_bytes, template_filename
from tasks.celery_app import celery_app
from tasks.import_tasks import import_excel_file

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

# Create router
router = APIRouter(prefix='/import', tags=['import'])

# Redis client for progress tracking
redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)


def parse_entity_requests(raw: str) -> List[Dict[str, Any]]:
    """
    Parse the ``entities`` form field.

    Accepts a JSON list (of type names or ``{"type", "sheetName"}`` objects)
    or a comma-separated list of type names.

    Raises:
        HTTPException: 400 if empty or naming an unknown entity type
    """
    raw = (raw or '').strip()
    try:
        parsed = json.loads(raw) if raw.startswith('[') else None
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="'entities' is not valid JSON"
        )
    if parsed is None:
        parsed = [part.strip() for part in raw.split(',') if part.strip()]

    requests = []
    for item in parsed:
        if isinstance(item, str):
            item = {'type': item}
        if not isinstance(item, dict) or not item.get('type'):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid entity request: {item!r}"
            )
        if resolve_entity_type(item['type']) is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(UnknownEntityTypeError(item['type']))
            )
        requests.append({k: v for k, v in item.items() if k in ('type', 'sheetName')})

    if not requests:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one entity type is required"
        )
    return requests


def save_validated_upload(file: UploadFile, storage: StorageService) -> str:
    """Check extension, store to a temp file and check size; the temp file is removed on rejection."""
    verify_file_extension(file.filename)
    temp_path = storage.save_upload(file.file, file.filename)
    try:
        verify_file_size(os.path.getsize(temp_path))
    except HTTPException:
        storage.cleanup_temp_file(temp_path)
        raise
    return temp_path


@router.post('/upload', response_model=ImportStartResponse, status_code=status.HTTP_202_ACCEPTED)
async def upload_excel_file(
    file: UploadFile = File(..., description="Excel file to import (.xlsx or .xlsm)"),
    entities: str = Form(..., description="Entity types: JSON list or comma-separated names"),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    current_user: str = Depends(get_current_user)
):
    """
    Upload a workbook and start a background import job.

    Returns immediately with a job ID that can be used to track progress:
    poll GET /api/import/job/{job_id} or connect to /ws/import/{job_id}.
    """
    logger.info(f"Upload request from {current_user}: {file.filename} for {entities}")
    entity_requests = parse_entity_requests(entities)
    temp_path = save_validated_upload(file, storage)

    try:
        # Job row must exist before the worker picks up the task
        job_id = str(uuid.uuid4())
        db.add(ImportJob(
            job_id=job_id,
            status=JobStatus.PENDING.value,
            filename=file.filename,
            entities=entity_requests,
            file_size_mb=storage.get_file_size_mb(temp_path),
            created_by=current_user
        ))
        db.commit()

        import_excel_file.apply_async(args=[temp_path, entity_requests], task_id=job_id)

        logger.info(f"Started import task {job_id} for file: {file.filename}")

        return ImportStartResponse(
            job_id=job_id,
            message="Excel import job started",
            entities=[r['type'] for r in entity_requests],
            status_url=f"/api/import/job/{job_id}",
            websocket_url=f"/ws/import/{job_id}"
        )

    except Exception as e:
        db.rollback()
        storage.cleanup_temp_file(temp_path)
        logger.error(f"Upload failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Upload failed: {str(e)}"
        )


# Plain def: the batch import runs in the threadpool, off the event loop
@router.post('/direct', response_model=DirectImportResponse)
def import_excel_direct(
    file: UploadFile = File(..., description="Excel file to import (.xlsx or .xlsm)"),
    entities: str = Form(..., description="Entity types: JSON list or comma-separated names"),
    db: Session = Depends(get_db),
    storage: StorageService = Depends(get_storage_service),
    current_user: str = Depends(get_current_user)
):
    """
    Import a workbook synchronously and return per-entity results.

    Row-level problems are reported in each entity's ``errors`` list;
    the request itself still succeeds.
    """
    logger.info(f"Direct import from {current_user}: {file.filename} for {entities}")
    entity_requests = parse_entity_requests(entities)
    temp_path = save_validated_upload(file, storage)

    try:
        results = ExcelImportService(db).import_batch(temp_path, entity_requests)
    except (InvalidFileException, BadZipFile) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Could not read workbook: {e}"
        )
    except StoreUnavailableError as e:
        logger.error(f"Direct import aborted: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        )
    finally:
        storage.cleanup_temp_file(temp_path)

    return DirectImportResponse(
        filename=file.filename,
        results=[r.to_dict() for r in results]
    )


@router.get('/template/{entity_type}')
async def download_template(entity_type: str):
    """Download an import template (header row plus one sample row) for an entity type."""
    if resolve_entity_type(entity_type) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(UnknownEntityTypeError(entity_type))
        )
    return Response(
        content=template_bytes(entity_type),
        media_type=XLSX_MEDIA_TYPE,
        headers={'Content-Disposition': f'attachment; filename="{template_filename(entity_type)}"'}
    )


def cached_progress(job_id: str) -> Optional[ImportProgress]:
    """Latest progress the worker cached in Redis, if any."""
    try:
        progress_data = redis_client.get(f'job_progress:{job_id}')
    except redis.RedisError as e:
        logger.warning(f"Could not fetch progress from Redis for {job_id}: {e}")
        return None
    return ImportProgress(**json.loads(progress_data)) if progress_data else None


def get_job_or_404(db: Session, job_id: str) -> ImportJob:
    job = db.get(ImportJob, job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Import job {job_id} not found"
        )
    return job


@router.get('/job/{job_id}', response_model=ImportJobResponse)
async def get_job_status(job_id: str, db: Session = Depends(get_db)):
    """
    Status of a queued import.

    Progress comes from Redis while the job runs, falling back to the last
    recorded event. ``results`` holds one entry per requested entity once
    the job has succeeded.
    """
    job = get_job_or_404(db, job_id)

    progress = cached_progress(job_id)
    if progress is None and job.latest_event() is not None:
        progress = ImportProgress(**job.latest_event().to_progress())

    return ImportJobResponse.from_job(job, progress)


@router.get('/jobs', response_model=PaginatedResponse[ImportJobListItem])
async def list_jobs(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    status: Optional[JobStatus] = Query(None, description="Only jobs with this status"),
    db: Session = Depends(get_db)
):
    """Import jobs, newest first."""
    query = db.query(ImportJob)
    if status:
        query = query.filter(ImportJob.status == status.value)

    total = query.count()
    jobs = query.order_by(ImportJob.created_at.desc(), ImportJob.job_id)\
        .offset((page - 1) * page_size)\
        .limit(page_size)\
        .all()

    return PaginatedResponse.create(
        items=[ImportJobListItem.from_job(job) for job in jobs],
        total=total,
        page=page,
        page_size=page_size
    )


@router.delete('/job/{job_id}', status_code=status.HTTP_204_NO_CONTENT)
async def cancel_job(
    job_id: str,
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user)
):
    """
    Cancel a pending or processing import.

    A pending job is skipped when the worker reaches it; a running one is
    revoked. Rows already written stay written.
    """
    job = get_job_or_404(db, job_id)

    if job.status not in CANCELLABLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot cancel job with status '{job.status}'"
        )

    now = datetime.utcnow()
    job.status = JobStatus.CANCELLED.value
    job.completed_at = now
    job.error = {
        'error': 'Job cancelled by user',
        'cancelled_by': current_user,
        'cancelled_at': now.isoformat()
    }
    db.commit()

    try:
        celery_app.control.revoke(job_id, terminate=True)
    except Exception as e:
        logger.warning(f"Could not revoke import task {job_id}: {e}")

    logger.info(f"Import job {job_id} cancelled by {current_user}")
    return None
