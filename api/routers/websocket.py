"""
WebSocket router - live progress of a queued import.

Messages on ``/ws/import/{job_id}``, in order:

* ``{"type": "job", ...}`` once: status, filename and requested entities
* ``{"type": "progress", "progress": {stage, percent, message, timestamp}}``
  for every progress event of the job, starting with the ones recorded
  before the client connected
* ``{"type": "finished", ...}`` when the job ends: per-entity ``results``
  and ``totals`` on success, ``error`` on failure or cancellation

The socket is closed after the ``finished`` message.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from api.dependencies import get_db
from backend.models.job import ImportJob, JobStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=['websocket'])

POLL_INTERVAL_SECONDS = 0.5


def job_message(job: ImportJob) -> Dict[str, Any]:
    return {
        'type': 'job',
        'job_id': job.job_id,
        'status': job.status,
        'filename': job.filename,
        'entities': job.entity_types,
    }


def finished_message(job: ImportJob) -> Dict[str, Any]:
    message = {
        'type': 'finished',
        'job_id': job.job_id,
        'status': job.status,
        'completed_at': job.completed_at.isoformat() if job.completed_at else None,
    }
    if job.status == JobStatus.SUCCESS.value:
        message['results'] = job.results
        message['totals'] = job.totals()
    else:
        message['error'] = job.error
    return message


def poll_job(db: Session, job_id: str, events_sent: int) -> Tuple[List[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """
    Progress messages for events after the first ``events_sent``, plus the
    finished message if the job has ended.
    """
    db.expire_all()
    job = db.get(ImportJob, job_id)
    progress = [
        {'type': 'progress', 'job_id': job_id, 'status': job.status, 'progress': event.to_progress()}
        for event in job.events[events_sent:]
    ]
    return progress, finished_message(job) if job.is_finished else None


@router.websocket('/ws/import/{job_id}')
async def websocket_import_progress(
    websocket: WebSocket,
    job_id: str,
    db: Session = Depends(get_db)
):
    await websocket.accept()
    logger.info(f"Progress stream opened for import job {job_id}")

    try:
        job = await run_in_threadpool(db.get, ImportJob, job_id)
        if job is None:
            await websocket.send_json({'type': 'error', 'job_id': job_id,
                                       'error': f'Import job {job_id} not found'})
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        await websocket.send_json(job_message(job))

        events_sent = 0
        while True:
            progress, finished = await run_in_threadpool(poll_job, db, job_id, events_sent)
            for message in progress:
                await websocket.send_json(message)
            events_sent += len(progress)

            if finished is not None:
                await websocket.send_json(finished)
                logger.info(f"Import job {job_id} ended with status {finished['status']}")
                break

            await asyncio.sleep(POLL_INTERVAL_SECONDS)

        await websocket.close()

    except WebSocketDisconnect:
        logger.info(f"Progress stream client left import job {job_id}")
