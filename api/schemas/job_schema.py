"""
Import job schemas: status, progress and job history.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from api.schemas.import_schema import EntityImportResultModel
from backend.models.job import ImportJob, JobStatus


class ImportProgress(BaseModel):
    """Latest progress step of a running import."""

    stage: str = Field(..., description="reading, importing, complete or failed")
    percent: float = Field(..., ge=0, le=100)
    message: str = ''
    timestamp: Optional[datetime] = None


class ImportTotals(BaseModel):
    inserted: int
    updated: int
    skipped: int
    errors: int


class ImportJobResponse(BaseModel):
    """Status of one queued import, with per-entity results once it has succeeded."""

    job_id: str
    status: JobStatus
    filename: Optional[str] = None
    entities: List[str] = Field(default_factory=list, description="Requested entity types, in order")
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: Optional[ImportProgress] = None
    results: Optional[List[EntityImportResultModel]] = None
    totals: Optional[ImportTotals] = None
    error: Optional[Dict[str, Any]] = None
    created_by: Optional[str] = None

    @classmethod
    def from_job(cls, job: ImportJob, progress: Optional[ImportProgress] = None) -> 'ImportJobResponse':
        return cls(
            job_id=job.job_id,
            status=job.status,
            filename=job.filename,
            entities=job.entity_types,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            progress=progress,
            results=job.results,
            totals=job.totals(),
            error=job.error,
            created_by=job.created_by,
        )

    class Config:
        json_schema_extra = {
            "example": {
                "job_id": "9b1d4c1e-4a4f-4c39-8d53-0f2d1f6f5b7a",
                "status": "success",
                "filename": "register.xlsx",
                "entities": ["fuels"],
                "created_at": "2025-10-15T12:00:00Z",
                "started_at": "2025-10-15T12:00:05Z",
                "completed_at": "2025-10-15T12:00:09Z",
                "progress": None,
                "results": [
                    {"entity": "fuels", "inserted": 2, "updated": 0, "skipped": 1,
                     "errors": [{"row": 3, "error": "Missing fuelId"}]}
                ],
                "totals": {"inserted": 2, "updated": 0, "skipped": 1, "errors": 1},
                "error": None,
                "created_by": "public"
            }
        }


class ImportJobListItem(BaseModel):
    job_id: str
    status: JobStatus
    filename: Optional[str] = None
    entities: List[str] = Field(default_factory=list)
    created_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: ImportJob) -> 'ImportJobListItem':
        return cls(
            job_id=job.job_id,
            status=job.status,
            filename=job.filename,
            entities=job.entity_types,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )
