"""
Workers module: Celery tasks for pipeline initialization.

Architecture:
    FastAPI API  --dispatch-->  Redis queue  --consume-->  Celery worker
                                                              |
    Redis job store  <--status updates------------------------+

Start worker:
    celery -A src.workers.celery_app worker -l info -P solo -Q metadata_pipeline
"""

from src.workers.celery_app import celery_app
from src.workers.job_store import create_job, get_job, list_jobs, update_job

__all__ = [
    "celery_app",
    "create_job",
    "get_job",
    "list_jobs",
    "update_job",
]
