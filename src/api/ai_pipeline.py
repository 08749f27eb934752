"""
AI pipeline API endpoints.

Architecture:
    POST /initialize/jobs
        → Creates job in Redis-backed store
        → Dispatches Celery task to the metadata_pipeline queue
        → Returns 202 Accepted immediately

    GET /jobs/{id}
        → Reads current job state from the store

Fallback:
    If Celery/Redis is unavailable, the same coroutine runs in-process
    through FastAPI BackgroundTasks.
"""

import dataclasses
import time
from collections import Counter
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import ValidationError
from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_llm, require_text, server_error
from src.core.config import settings
from src.core.logging import get_logger
from src.db import get_db
from src.db.enums import ValidationStatus
from src.db.models import (
    ColumnMetadata,
    GeneratedQuery,
    GroundTruth,
    SchemaSummary,
    TableRelationship,
)
from src.schemas import (
    APIResponse,
    BatchQueryRequest,
    BatchQueryResponse,
    BatchQueryResult,
    BatchSummary,
    InitializeJobRequest,
    JobCreateResponse,
    JobResponse,
    JobStatus,
    JobType,
    PipelineContext,
    PipelineQueryRequest,
)
from src.services.llm_client import BaseLLMClient, LLMError
from src.services.pipeline import AIPipelineOrchestrator, PipelineError, PipelineRequest
from src.services.sap_query_generator import SAPQueryGenerator
from src.workers.job_store import create_job, get_job
from src.workers.tasks import run_pipeline_initialization

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Celery Dispatch Helpers
# =============================================================================


def _celery_available() -> bool:
    """Check if the Celery broker (Redis) is reachable."""
    if settings.celery_task_always_eager:
        return False
    try:
        from src.workers.celery_app import celery_app
        conn = celery_app.connection()
        conn.ensure_connection(max_retries=1, timeout=2)
        conn.close()
        return True
    except Exception:
        return False


def _dispatch_to_celery(job_id: UUID, provider: str | None) -> str | None:
    """Returns the Celery task ID on success, None on failure."""
    try:
        from src.workers.tasks import initialize_pipeline_task

        result = initialize_pipeline_task.delay(job_id_str=str(job_id), provider=provider)
        return result.id
    except Exception as e:
        logger.warning("Failed to dispatch to Celery", error=str(e))
        return None


async def _fallback_initialization(job_id: UUID, provider: str | None, db_url: str) -> None:
    """In-process fallback; the job record carries the failure."""
    try:
        await run_pipeline_initialization(job_id, provider, db_url)
    except Exception as e:
        logger.error("Fallback pipeline initialization failed", job_id=str(job_id), error=str(e))


# =============================================================================
# Pipeline Endpoints
# =============================================================================


@router.post(
    "/query",
    response_model=APIResponse[dict],
    summary="Run the staged AI pipeline for one prompt",
    description=(
        "Intent analysis, metadata collection, context enrichment, relationship mapping, "
        "query generation, optimization and recommendations. The result is recorded "
        "in the query history with the pipeline confidence."
    ),
)
async def process_query(
    request: PipelineQueryRequest,
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[dict]:
    require_text(request.prompt, "Prompt is required and must be a string")

    try:
        result = await AIPipelineOrchestrator(db, llm).process_query(request.to_request())
    except PipelineError as e:
        raise server_error("process AI pipeline query", e) from e

    stored = dataclasses.replace(result.query, confidence=result.confidence)
    query_id = await SAPQueryGenerator(db, llm).save_generated_query(request.prompt, stored)

    data = result.to_dict()
    data["query"]["query_id"] = query_id
    return APIResponse.ok(data, "AI pipeline query processed successfully")


@router.post(
    "/initialize",
    response_model=APIResponse[dict],
    summary="Populate pipeline metadata synchronously",
)
async def initialize(
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[dict]:
    try:
        result = await AIPipelineOrchestrator(db, llm).initialize_pipeline()
    except (SQLAlchemyError, LLMError, OSError) as e:
        raise server_error("initialize AI pipeline", e) from e

    return APIResponse.ok(result.to_dict(), "AI pipeline initialized successfully")


@router.post(
    "/initialize/jobs",
    response_model=JobCreateResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue pipeline initialization",
    description=(
        "Start an async job that extracts, summarizes, analyzes columns and infers "
        "relationships. Dispatched to a Celery worker, or run in-process when "
        "Celery is unavailable."
    ),
)
async def queue_initialize(
    request: InitializeJobRequest,
    background_tasks: BackgroundTasks,
) -> JobCreateResponse:
    job = create_job(JobType.PIPELINE_INIT)
    job_id = job["id"]

    if _celery_available():
        celery_task_id = _dispatch_to_celery(job_id, request.provider)
        if celery_task_id:
            logger.info(
                "Job dispatched to Celery queue",
                job_id=str(job_id),
                celery_task_id=celery_task_id,
                provider=request.provider,
            )
            return JobCreateResponse(
                id=job_id,
                job_type=JobType.PIPELINE_INIT,
                status=JobStatus.PENDING,
                message="Pipeline initialization queued for Celery worker. Use GET /jobs/{id} to check status.",
            )

    logger.info(
        "Celery unavailable, using BackgroundTasks fallback",
        job_id=str(job_id),
        provider=request.provider,
    )
    background_tasks.add_task(_fallback_initialization, job_id, request.provider, settings.db_url)

    return JobCreateResponse(
        id=job_id,
        job_type=JobType.PIPELINE_INIT,
        status=JobStatus.PENDING,
        message="Pipeline initialization started (in-process fallback). Use GET /jobs/{id} to check status.",
    )


@router.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    summary="Get job status",
)
async def get_job_status(job_id: UUID) -> JobResponse:
    job = get_job(job_id)
    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )
    return JobResponse(**job)


@router.post(
    "/batch-query",
    response_model=APIResponse[BatchQueryResponse],
    summary="Run the pipeline for several prompts",
    description="Each item's context is merged over shared_context. Item failures are reported per item.",
)
async def batch_query(
    request: BatchQueryRequest,
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[BatchQueryResponse]:
    if not request.queries:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Queries array is required and must not be empty",
        )

    start = time.perf_counter()
    orchestrator = AIPipelineOrchestrator(db, llm)
    results: list[BatchQueryResult] = []

    for item in request.queries:
        if not item.prompt or not item.prompt.strip():
            results.append(BatchQueryResult(id=item.id or "unknown", success=False, error="Prompt is required"))
            continue

        query_id = item.id or f"query_{len(results) + 1}"
        try:
            context = PipelineContext(**{**(request.shared_context or {}), **(item.context or {})})
            result = await orchestrator.process_query(
                PipelineRequest(prompt=item.prompt, context=context.to_options())
            )
            results.append(BatchQueryResult(id=query_id, success=True, result=result.to_dict()))
        except (PipelineError, ValidationError) as e:
            logger.warning("Batch item failed", query_id=query_id, error=str(e))
            results.append(BatchQueryResult(id=query_id, success=False, error=str(e)))

    successful = sum(1 for r in results if r.success)
    summary = BatchSummary(
        total_queries=len(request.queries),
        successful_queries=successful,
        failed_queries=len(results) - successful,
        total_processing_time=(time.perf_counter() - start) * 1000,
    )
    return APIResponse.ok(
        BatchQueryResponse(results=results, summary=summary),
        "Batch query processing completed",
    )


# =============================================================================
# Reporting Endpoints
# =============================================================================


@router.get(
    "/analytics",
    response_model=APIResponse[dict],
    summary="Generated query statistics",
)
async def get_analytics(db: AsyncSession = Depends(get_db)) -> APIResponse[dict]:
    try:
        totals = await db.execute(
            select(
                func.count(GeneratedQuery.id),
                func.sum(case((GeneratedQuery.validation_status == ValidationStatus.VALID.value, 1), else_=0)),
                func.avg(GeneratedQuery.confidence),
            )
        )
        total, valid, average_confidence = totals.one()
        total = total or 0
        valid = valid or 0

        complexity_rows = await db.execute(
            select(GeneratedQuery.complexity, func.count(GeneratedQuery.id)).group_by(GeneratedQuery.complexity)
        )
        recent_rows = await db.execute(
            select(GeneratedQuery).order_by(GeneratedQuery.created_at.desc()).limit(10)
        )
        tables_rows = await db.execute(select(GeneratedQuery.tables_used))
    except SQLAlchemyError as e:
        raise server_error("retrieve pipeline analytics", e) from e

    table_usage: Counter[str] = Counter()
    for tables in tables_rows.scalars().all():
        table_usage.update(tables or [])

    return APIResponse.ok(
        {
            "overview": {
                "total_queries": total,
                "valid_queries": valid,
                "validation_rate": round(valid / total * 100, 2) if total else 0.0,
                "average_confidence": float(average_confidence or 0.0),
            },
            "complexity_distribution": {complexity: count for complexity, count in complexity_rows.all()},
            "recent_queries": [
                {
                    "prompt": q.prompt,
                    "confidence": q.confidence,
                    "complexity": q.complexity,
                    "validation_status": q.validation_status,
                    "created_at": q.created_at,
                }
                for q in recent_rows.scalars().all()
            ],
            "top_tables": [{"table": t, "count": c} for t, c in table_usage.most_common(10)],
        },
        "Pipeline analytics retrieved successfully",
    )


@router.get(
    "/metadata-status",
    response_model=APIResponse[dict],
    summary="What metadata the pipeline can draw on",
)
async def get_metadata_status(db: AsyncSession = Depends(get_db)) -> APIResponse[dict]:
    try:
        ground_truth_count = (await db.execute(select(func.count(GroundTruth.id)))).scalar() or 0
        latest = (
            await db.execute(select(GroundTruth).order_by(GroundTruth.created_at.desc()).limit(1))
        ).scalar_one_or_none()
        summary_tables = (await db.execute(select(SchemaSummary.table))).scalars().all()
        relationship_count = (await db.execute(select(func.count(TableRelationship.id)))).scalar() or 0
        column_count = (await db.execute(select(func.count(ColumnMetadata.id)))).scalar() or 0
    except SQLAlchemyError as e:
        raise server_error("retrieve metadata status", e) from e

    return APIResponse.ok(
        {
            "ground_truth": {
                "count": ground_truth_count,
                "latest": {"version": latest.version, "created_at": latest.created_at} if latest else None,
            },
            "schema_summary": {"count": len(summary_tables), "tables_covered": sorted(summary_tables)},
            "table_relationships": {"count": relationship_count},
            "column_metadata": {"count": column_count},
            "coverage": {"tables_with_summaries": len(set(summary_tables))},
        },
        "Metadata status retrieved successfully",
    )
