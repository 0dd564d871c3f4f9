"""Pydantic request and response models for the register API."""

from api.schemas.common import ErrorResponse, PaginatedResponse, HealthCheckResponse
from api.schemas.import_schema import (
    EntityRequestModel, EntityImportResultModel, ImportStartResponse, DirectImportResponse,
    InitiateUploadRequest, InitiateUploadResponse, UploadCallbackPayload
)
from api.schemas.job_schema import ImportProgress, ImportTotals, ImportJobResponse, ImportJobListItem
from api.schemas.entity_schema import (
    ApplianceCreate, ApplianceUpdate, FuelCreate, FuelUpdate, UserCreate, UserUpdate
)

__all__ = [
    'ErrorResponse',
    'PaginatedResponse',
    'HealthCheckResponse',

    'EntityRequestModel',
    'EntityImportResultModel',
    'ImportStartResponse',
    'DirectImportResponse',
    'InitiateUploadRequest',
    'InitiateUploadResponse',
    'UploadCallbackPayload',

    'ImportProgress',
    'ImportTotals',
    'ImportJobResponse',
    'ImportJobListItem',

    'ApplianceCreate',
    'ApplianceUpdate',
    'FuelCreate',
    'FuelUpdate',
    'UserCreate',
    'UserUpdate',
]
