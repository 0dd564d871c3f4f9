"""
Celery application for queued workbook imports.

Imports run on the ``import`` queue one at a time per worker process;
finished import jobs are purged daily by ``cleanup_old_jobs``.
"""

import os
from celery import Celery
from kombu import Exchange, Queue

REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', REDIS_URL)
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', REDIS_URL)
JOB_RETENTION_DAYS = int(os.getenv('JOB_RETENTION_DAYS', '30'))
IMPORT_TIME_LIMIT = int(os.getenv('IMPORT_TIME_LIMIT', '1800'))

celery_app = Celery(
    'register',
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=['tasks.import_tasks']
)

celery_app.conf.update(
    task_serializer='json',
    result_serializer='json',
    accept_content=['json'],
    timezone='UTC',
    enable_utc=True,

    task_track_started=True,
    task_time_limit=IMPORT_TIME_LIMIT,
    task_soft_time_limit=IMPORT_TIME_LIMIT - 300,
    # A workbook import holds its worker for the whole batch
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Job rows in import_jobs are the durable record
    result_expires=3600,

    task_default_queue='default',
    task_queues=(
        Queue('default', Exchange('default'), routing_key='default'),
        Queue('import', Exchange('import'), routing_key='import.#'),
    ),
    task_routes={
        'tasks.import_tasks.import_excel_file': {'queue': 'import', 'routing_key': 'import.excel'},
    },
    beat_schedule={
        'cleanup-old-import-jobs': {
            'task': 'tasks.import_tasks.cleanup_old_jobs',
            'schedule': 24 * 3600.0,
            'args': (JOB_RETENTION_DAYS,),
        },
    },
)


if __name__ == '__main__':
    celery_app.start()
