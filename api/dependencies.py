"""
Dependency injection utilities for FastAPI.

This module provides reusable dependencies for database sessions,
authentication, file checks and external service clients.
"""

import logging
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from fastapi import Depends, HTTPException, Header, status

from api.config import settings
from services.storage_service import StorageService
from services.uploader_client import UploaderClient, build_callback_url

logger = logging.getLogger(__name__)


def engine_options(database_url: str) -> dict:
    """Connection pool options; SQLite URLs get none."""
    if database_url.startswith('sqlite'):
        return {'echo': settings.DEBUG}
    return {
        'pool_size': settings.DB_POOL_SIZE,
        'max_overflow': settings.DB_MAX_OVERFLOW,
        'pool_pre_ping': settings.DB_POOL_PRE_PING,
        'echo': settings.DEBUG,
    }


# Create database engine
engine = create_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Get database session dependency.

    Yields database session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_api_key(
    x_api_key: str = Header(None, alias=settings.API_KEY_HEADER)
) -> str:
    """
    Validate API key from header.

    Raises:
        HTTPException: If API key auth is enabled and the key is missing
    """
    if not settings.ENABLE_API_KEY_AUTH:
        return "public"

    if not x_api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required",
            headers={"WWW-Authenticate": "ApiKey"}
        )

    # TODO: Validate API key against an api_keys table once one exists
    return x_api_key


def get_current_user(api_key: str = Depends(get_api_key)) -> str:
    """User identifier for audit fields (currently the API key itself)."""
    return api_key


def get_storage_service() -> StorageService:
    return StorageService(
        temp_dir=settings.TEMP_UPLOAD_DIR,
        region=settings.AWS_REGION,
        cdp_environment=settings.CDP_ENVIRONMENT
    )


def get_uploader_client() -> UploaderClient:
    callback_url = build_callback_url(
        settings.CDP_ENVIRONMENT, settings.SERVICE_NAME, settings.HOST, settings.PORT
    )
    return UploaderClient(
        base_url=settings.UPLOADER_URL,
        callback_url=callback_url,
        s3_bucket=settings.UPLOAD_S3_BUCKET,
        s3_prefix=settings.UPLOAD_S3_PREFIX,
        mime_types=settings.UPLOAD_ALLOWED_MIME_TYPES,
        max_file_size=settings.max_file_size_bytes
    )


def verify_file_size(file_size: int) -> bool:
    """
    Verify uploaded file size is within limit.

    Raises:
        HTTPException: If file is too large
    """
    max_size_bytes = settings.max_file_size_bytes

    if file_size > max_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File size ({file_size / 1024 / 1024:.1f} MB) exceeds maximum allowed "
                   f"({settings.MAX_FILE_SIZE_MB} MB)"
        )

    return True


def verify_file_extension(filename: str) -> bool:
    """
    Verify file has allowed extension.

    Raises:
        HTTPException: If extension is not allowed
    """
    ext = Path(filename or '').suffix.lower()

    if ext not in [e.lower() for e in settings.ALLOWED_EXTENSIONS]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File extension '{ext}' not allowed. "
                   f"Allowed extensions: {', '.join(settings.ALLOWED_EXTENSIONS)}"
        )

    return True
