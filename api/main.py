"""
FastAPI application for the appliance and fuel register.

Mounts the register, import, upload-callback and progress-stream routers,
and reports service health on ``/health``.
"""

import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict

import redis
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from api.config import settings
from api.dependencies import engine, get_db
from api.routers import admin_import, entities, import_router, upload_callback, websocket
from api.schemas.common import ErrorResponse, HealthCheckResponse
from backend.models.schema import Base
from services.document_store import COLLECTION_MODELS, DocumentStore

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format=settings.LOG_FORMAT,
        handlers=[
            logging.FileHandler(settings.LOG_FILE),
            logging.StreamHandler()
        ]
    )


configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.API_TITLE} v{settings.API_VERSION} ({settings.CDP_ENVIRONMENT})")
    logger.info(f"Register database: {settings.DATABASE_URL.split('@')[-1]}")

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Register and import job tables ready")
    except Exception as e:
        logger.error(f"Could not create register tables: {e}")

    os.makedirs(settings.TEMP_UPLOAD_DIR, exist_ok=True)
    logger.info(f"Workbook uploads staged in {settings.TEMP_UPLOAD_DIR}")

    yield

    logger.info(f"Stopping {settings.API_TITLE}")


app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS
)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail={"message": str(exc)} if settings.DEBUG else None,
            path=str(request.url)
        ).model_dump(mode='json')
    )


app.include_router(import_router.router, prefix=settings.API_PREFIX)
app.include_router(entities.appliances_router, prefix=settings.API_PREFIX)
app.include_router(entities.fuels_router, prefix=settings.API_PREFIX)
app.include_router(entities.users_router, prefix=settings.API_PREFIX)
app.include_router(admin_import.router, prefix=settings.API_PREFIX)
# Upload service callback and progress stream sit outside the API prefix
app.include_router(upload_callback.router)
app.include_router(websocket.router)


@app.get('/', include_in_schema=False)
async def root():
    return {
        'message': f'Welcome to {settings.API_TITLE}',
        'version': settings.API_VERSION,
        'docs': '/docs',
    }


def record_counts(db: Session) -> Dict[str, int]:
    store = DocumentStore(db)
    return {name: store.collection(name).count() for name in COLLECTION_MODELS}


def check_redis() -> str:
    try:
        redis.Redis.from_url(settings.REDIS_URL, socket_connect_timeout=1).ping()
        return 'connected'
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return 'disconnected'


def check_celery() -> str:
    from tasks.celery_app import celery_app

    try:
        workers = celery_app.control.inspect(timeout=1.0).ping()
    except Exception as e:
        logger.error(f"Celery health check failed: {e}")
        return 'unknown'
    return f'active ({len(workers)} workers)' if workers else 'no workers'


@app.get('/health', response_model=HealthCheckResponse, tags=['health'])
def health_check(db: Session = Depends(get_db)):
    """
    Database, Redis and import worker status, with record counts per collection.

    ``unhealthy`` without the database; ``degraded`` when imports cannot be queued.
    """
    report = {
        'status': 'healthy',
        'timestamp': datetime.utcnow(),
        'version': settings.API_VERSION,
        'environment': settings.CDP_ENVIRONMENT,
        'database': 'connected',
        'records': {},
    }

    try:
        db.execute(text('SELECT 1'))
        report['records'] = record_counts(db)
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        report['database'] = 'disconnected'
        report['status'] = 'unhealthy'

    report['redis'] = check_redis()
    report['celery'] = check_celery()
    if report['status'] == 'healthy' and (
            report['redis'] != 'connected' or not report['celery'].startswith('active')):
        report['status'] = 'degraded'

    return HealthCheckResponse(**report)


@app.get('/api/ping', tags=['health'])
async def ping():
    return {'ping': 'pong'}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    logger.info(f"{request.method} {request.url.path} - {response.status_code}")
    return response


if __name__ == '__main__':
    import uvicorn

    uvicorn.run(
        'api.main:app',
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower()
    )
