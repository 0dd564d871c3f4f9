"""
Import job models.

An ImportJob row is written when a workbook is queued and is moved through
its statuses by the worker. Every progress step the import service emits is
kept as an ImportJobEvent so a job's history survives the Redis cache.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON, Column, Float, Integer, String, TIMESTAMP, ForeignKey, Text,
    CheckConstraint, Index, text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from backend.models.schema import Base

JSONColumn = JSON().with_variant(JSONB(), 'postgresql')


class JobStatus(str, Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    SUCCESS = 'success'
    FAILED = 'failed'
    CANCELLED = 'cancelled'


FINISHED_STATUSES = (JobStatus.SUCCESS.value, JobStatus.FAILED.value, JobStatus.CANCELLED.value)
CANCELLABLE_STATUSES = (JobStatus.PENDING.value, JobStatus.PROCESSING.value)


class ImportJob(Base):
    """
    One queued workbook import.

    ``entities`` holds the entity requests in import order; ``results`` holds
    one ``{entity, inserted, updated, skipped, errors}`` entry per request
    once the job has succeeded.
    """

    __tablename__ = 'import_jobs'
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'success', 'failed', 'cancelled')",
            name='import_jobs_status_check'
        ),
        Index('idx_import_jobs_status', 'status'),
        Index('idx_import_jobs_created_at', 'created_at'),
    )

    job_id = Column(String(255), primary_key=True, comment='Celery task id')
    status = Column(
        String(20),
        nullable=False,
        default=JobStatus.PENDING.value,
        server_default='pending'
    )
    filename = Column(String(255), nullable=True, comment='Original upload filename')
    entities = Column(JSONColumn, nullable=False, default=list, comment='Entity requests, in order')
    file_size_mb = Column(Float, nullable=True)
    created_by = Column(String(255), nullable=True)

    created_at = Column(TIMESTAMP, server_default=text('CURRENT_TIMESTAMP'), nullable=False)
    started_at = Column(TIMESTAMP, nullable=True)
    completed_at = Column(TIMESTAMP, nullable=True)

    results = Column(JSONColumn, nullable=True, comment='Per-entity import results')
    error = Column(JSONColumn, nullable=True, comment='Failure or cancellation details')

    events = relationship(
        'ImportJobEvent',
        back_populates='job',
        cascade='all, delete-orphan',
        order_by='ImportJobEvent.id'
    )

    def __repr__(self):
        return f"<ImportJob(job_id='{self.job_id}', file='{self.filename}', status='{self.status}')>"

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    @property
    def entity_types(self) -> List[str]:
        """Requested entity type names, e.g. ``['fuels', 'users']``."""
        return [e['type'] if isinstance(e, dict) else e for e in (self.entities or [])]

    def totals(self) -> Optional[Dict[str, int]]:
        """Counts summed over all entities; None until the job has results."""
        if self.results is None:
            return None
        totals = {'inserted': 0, 'updated': 0, 'skipped': 0, 'errors': 0}
        for entry in self.results:
            totals['inserted'] += entry.get('inserted', 0)
            totals['updated'] += entry.get('updated', 0)
            totals['skipped'] += entry.get('skipped', 0)
            totals['errors'] += len(entry.get('errors', []))
        return totals

    def latest_event(self) -> Optional['ImportJobEvent']:
        return self.events[-1] if self.events else None


class ImportJobEvent(Base):
    """A progress step: stage (reading, importing, complete, failed), percent and message."""

    __tablename__ = 'import_job_events'
    __table_args__ = (
        Index('idx_import_job_events_job_id', 'job_id'),
        Index('idx_import_job_events_recorded_at', 'recorded_at'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(
        String(255),
        ForeignKey('import_jobs.job_id', ondelete='CASCADE'),
        nullable=False
    )
    stage = Column(String(50), nullable=False)
    percent = Column(Float, nullable=False)
    message = Column(Text, nullable=True)
    recorded_at = Column(TIMESTAMP, server_default=text('CURRENT_TIMESTAMP'), nullable=False)

    job = relationship('ImportJob', back_populates='events')

    def __repr__(self):
        return f"<ImportJobEvent(job_id='{self.job_id}', stage='{self.stage}', percent={self.percent})>"

    def to_progress(self) -> Dict[str, Any]:
        """Same shape as the progress cached in Redis."""
        return {
            'stage': self.stage,
            'percent': float(self.percent),
            'message': self.message or '',
            'timestamp': self.recorded_at.isoformat() if self.recorded_at else None,
        }
