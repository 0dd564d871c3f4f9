"""
Import-related Pydantic schemas.

This module contains schemas for spreadsheet import requests, per-entity
results and the upload service initiate/callback payloads.
"""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, field_validator

from services.entity_config import resolve_entity_type


class EntityRequestModel(BaseModel):
    """One entity to import, with an optional sheet name override."""

    type: str = Field(..., description="Entity type: appliances, fuels, users, userAppliances, userFuels")
    sheetName: Optional[str] = Field(None, description="Worksheet name (default: entity's default sheet)")


class EntityImportResultModel(BaseModel):
    """Counts and row errors for one imported entity."""

    entity: str
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "entity": "fuels",
                "inserted": 2,
                "updated": 0,
                "skipped": 1,
                "errors": [{"row": 3, "error": "Missing fuelId"}]
            }
        }


class ImportStartResponse(BaseModel):
    """Response when a background import is queued."""

    job_id: str
    message: str = "Excel import job started"
    entities: List[str] = Field(default_factory=list)
    status_url: str
    websocket_url: str

    class Config:
        json_schema_extra = {
            "example": {
                "job_id": "abc-123-def-456",
                "message": "Excel import job started",
                "entities": ["fuels", "users"],
                "status_url": "/api/import/job/abc-123-def-456",
                "websocket_url": "/ws/import/abc-123-def-456"
            }
        }


class DirectImportResponse(BaseModel):
    """Result of a synchronous import."""

    success: bool = True
    message: str = "Import completed successfully"
    filename: Optional[str] = None
    results: List[EntityImportResultModel]


class InitiateUploadRequest(BaseModel):
    """Entities the uploaded workbook will be imported as."""

    entities: List[Union[str, EntityRequestModel]] = Field(..., min_length=1)

    @field_validator('entities')
    @classmethod
    def check_entity_types(cls, value):
        for entity in value:
            name = entity if isinstance(entity, str) else entity.type
            if resolve_entity_type(name) is None:
                raise ValueError(f"Unknown entity type: {name}")
        return value

    def normalized(self) -> List[Dict[str, Any]]:
        """Entities as ``{'type': ..., 'sheetName'?: ...}`` dictionaries."""
        result = []
        for entity in self.entities:
            if isinstance(entity, str):
                result.append({'type': entity})
            else:
                result.append(entity.model_dump(exclude_none=True))
        return result


class InitiateUploadResponse(BaseModel):
    success: bool = True
    uploadId: Optional[str] = None
    uploadUrl: Optional[str] = None
    statusUrl: Optional[str] = None


class UploadCallbackPayload(BaseModel):
    """Body posted by the upload service once scanning has finished."""

    uploadStatus: str
    uploadId: Optional[str] = None
    metadata: Dict[str, Any]
    form: Dict[str, Any]
    numberOfRejectedFiles: int
