"""
Celery application for the metadata pipeline worker.

Usage:
    celery -A src.workers.celery_app worker -l info -P solo -Q metadata_pipeline

-P solo is required because tasks call asyncio.run().
"""

from celery import Celery

from src.core.config import settings

celery_app = Celery(
    "sap_query_assistant",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    # Initialization is a long chain of LLM calls; one task per worker
    worker_prefetch_multiplier=1,
    task_always_eager=settings.celery_task_always_eager,
    result_expires=86400,
    task_routes={
        "src.workers.tasks.*": {"queue": "metadata_pipeline"},
    },
    task_default_queue="metadata_pipeline",
)

celery_app.autodiscover_tasks(["src.workers"])
