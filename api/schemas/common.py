"""
Shared response schemas: errors, paged listings and the health report.
"""

from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar('T')


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    path: Optional[str] = None


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of register records or import jobs."""

    total: int
    page: int
    page_size: int
    total_pages: int
    items: List[T]

    @classmethod
    def create(cls, items: List[T], total: int, page: int, page_size: int):
        return cls(
            total=total,
            page=page,
            page_size=page_size,
            total_pages=-(-total // page_size),
            items=items
        )


class HealthCheckResponse(BaseModel):
    """
    Service health.

    ``status`` is ``unhealthy`` without the database and ``degraded`` when
    imports cannot be queued (no Redis or no worker). ``records`` counts the
    rows in each register collection.
    """

    status: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    version: str
    environment: str
    database: str
    redis: str
    celery: str
    records: Dict[str, int] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2025-10-15T12:00:00Z",
                "version": "1.0.0",
                "environment": "local",
                "database": "connected",
                "redis": "connected",
                "celery": "active (1 workers)",
                "records": {"Appliances": 120, "Fuels": 45, "Users": 300,
                            "UserAppliances": 410, "UserFuels": 380}
            }
        }
