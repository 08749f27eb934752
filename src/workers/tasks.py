"""
Celery tasks for the metadata pipeline.

``run_pipeline_initialization`` is the async body shared by the Celery
task and the in-process BackgroundTasks fallback in the API. It opens its
own engine because it runs outside the request's session.

Usage:
    from src.workers.tasks import initialize_pipeline_task
    initialize_pipeline_task.delay(str(job_id), provider="gemini")
"""

import asyncio
from uuid import UUID

from src.core.logging import bind_context, clear_context, get_logger
from src.workers.celery_app import celery_app
from src.workers.job_store import update_job, utcnow

logger = get_logger(__name__)


async def run_pipeline_initialization(job_id: UUID, provider: str | None, db_url: str) -> dict:
    """
    Extract, summarize, analyze columns and infer relationships.

    Job state moves PENDING -> RUNNING -> COMPLETED (or FAILED with the
    error message); the exception is re-raised after the job is marked.
    """
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from src.schemas.jobs import JobStatus
    from src.services.llm_client import get_llm_client
    from src.services.pipeline import AIPipelineOrchestrator

    engine = create_async_engine(db_url, echo=False)
    async_session = async_sessionmaker(engine, expire_on_commit=False)
    bind_context(job_id=str(job_id))

    try:
        update_job(job_id, status=JobStatus.RUNNING, started_at=utcnow())

        async with async_session() as db, get_llm_client(provider) as llm:
            result = await AIPipelineOrchestrator(db, llm).initialize_pipeline()

        result_data = result.to_dict()
        update_job(
            job_id,
            status=JobStatus.COMPLETED,
            completed_at=utcnow(),
            progress=100.0,
            result=result_data,
        )
        return result_data

    except Exception as e:
        logger.error("Pipeline initialization failed", error=str(e))
        update_job(
            job_id,
            status=JobStatus.FAILED,
            completed_at=utcnow(),
            error_message=str(e),
        )
        raise
    finally:
        clear_context()
        await engine.dispose()


@celery_app.task(
    name="src.workers.tasks.initialize_pipeline_task",
    bind=True,
    max_retries=1,
    acks_late=True,
)
def initialize_pipeline_task(self, job_id_str: str, provider: str | None = None) -> dict:
    """
    Celery task: populate the pipeline metadata.

    Args:
        job_id_str: Job UUID as string (Celery arguments must be JSON)
        provider: LLM provider name (gemini, mock), defaults to settings

    Returns:
        Initialization counts and status
    """
    from src.core.config import settings

    logger.info("Celery worker: starting pipeline initialization", job_id=job_id_str, provider=provider)

    result = asyncio.run(
        run_pipeline_initialization(
            job_id=UUID(job_id_str),
            provider=provider,
            db_url=settings.db_url,
        )
    )

    logger.info("Celery worker: pipeline initialization complete", job_id=job_id_str, result=result)
    return result
