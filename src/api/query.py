"""
Query processing API endpoints.

Generation goes through the SAP query generator (``/generate``) or the
metadata-driven generic generator (``/generate-basic``). Execution is
gated by the static validator unless the caller opts out.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_llm, require_text, server_error
from src.core.config import settings
from src.core.logging import get_logger
from src.db import get_db
from src.db.models import SAP_TABLE_MODELS, ColumnMetadata, GeneratedQuery, QueryTemplate
from src.schemas import (
    AnalyzeColumnsRequest,
    APIResponse,
    ExecuteQueryRequest,
    GenerateBasicRequest,
    GenerateQueryRequest,
    ProcessQueryRequest,
    QueryHistoryItem,
    QueryTemplateResponse,
    ValidateQueryRequest,
)
from src.services.column_analyzer import ColumnAnalyzer
from src.services.extractor import ExtractorService
from src.services.llm_client import BaseLLMClient, LLMError
from src.services.query_generator import QueryGenerator
from src.services.query_validation import QueryValidation
from src.services.relationship_inference import RelationshipInference
from src.services.sap_query_generator import (
    QueryExecutionError,
    QueryGenerationError,
    SAPQueryGenerator,
    SAPQueryRequest,
)
from src.services.sql_utils import apply_row_limit
from src.services.validator_agent import ValidatorAgent

logger = get_logger(__name__)

router = APIRouter()

PROMPT_REQUIRED = "Prompt is required and must be a string"
SQL_REQUIRED = "SQL query is required and must be a string"


# =============================================================================
# Generation and Validation
# =============================================================================


@router.post(
    "/generate",
    response_model=APIResponse[dict],
    summary="Generate SQL from a natural-language prompt",
)
async def generate_query(
    request: GenerateQueryRequest,
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[dict]:
    require_text(request.prompt, PROMPT_REQUIRED)
    context = request.context

    sap_request = SAPQueryRequest(prompt=request.prompt)
    if context is not None:
        sap_request.max_tables = context.max_tables or sap_request.max_tables
        sap_request.preferred_join_type = context.preferred_join_type
        sap_request.business_context = context.business_context

    try:
        result = await SAPQueryGenerator(db, llm).generate_sap_query(sap_request)
    except QueryGenerationError as e:
        raise server_error("generate query", e) from e

    return APIResponse.ok(result.to_dict(), "Query generated successfully")


@router.post(
    "/generate-basic",
    response_model=APIResponse[dict],
    summary="Generate SQL from stored column metadata",
    description="Uses analyzed column metadata, stored relationships and query templates instead of the SAP catalogue.",
)
async def generate_basic_query(
    request: GenerateBasicRequest,
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[dict]:
    require_text(request.prompt, PROMPT_REQUIRED)

    try:
        result = await QueryGenerator(db, llm).generate_query(request.prompt)
    except QueryGenerationError as e:
        raise server_error("generate query", e) from e

    return APIResponse.ok(result.to_dict(), "Query generated successfully")


@router.post(
    "/validate",
    response_model=APIResponse[dict],
    summary="Validate SQL against the ground truth",
)
async def validate_query(
    request: ValidateQueryRequest,
    db: AsyncSession = Depends(get_db),
) -> APIResponse[dict]:
    require_text(request.sql, SQL_REQUIRED)

    validator = ValidatorAgent(db)
    ground_truth = await validator.get_ground_truth_for_validation()
    if not ground_truth:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Ground truth data not available for validation",
        )

    business_context = request.context.business_context if request.context else None
    result = validator.validate_query(request.sql, ground_truth, business_context)
    return APIResponse.ok(result.to_dict(), "Query validation completed")


@router.post(
    "/execute",
    response_model=APIResponse[dict],
    summary="Execute SQL in a read-only transaction",
    description=(
        "With validate=true (default) the statement is checked first and rejected with 400 "
        "on critical or high severity issues. A LIMIT is appended when missing."
    ),
)
async def execute_query(
    request: ExecuteQueryRequest,
    db: AsyncSession = Depends(get_db),
) -> APIResponse[dict]:
    require_text(request.sql, SQL_REQUIRED)

    validation = None
    if request.validate_first:
        validation = await QueryValidation(db).validate_query(request.sql)
        blocking = validation.blocking_errors
        if blocking:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Query validation failed: " + "; ".join(e.message for e in blocking),
            )

    sql = apply_row_limit(request.sql, request.limit)
    try:
        execution = await SAPQueryGenerator(db).execute_query(sql)
    except QueryExecutionError as e:
        raise server_error("execute query", e) from e

    return APIResponse.ok(
        {
            **execution,
            "sql": sql,
            "validation": validation.to_dict() if validation else None,
        },
        "Query executed successfully",
    )


@router.post(
    "/process",
    response_model=APIResponse[dict],
    summary="Generate, validate and optionally execute",
)
async def process_query(
    request: ProcessQueryRequest,
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[dict]:
    require_text(request.prompt, PROMPT_REQUIRED)
    generator = SAPQueryGenerator(db, llm)

    try:
        generation = await generator.generate_sap_query(SAPQueryRequest(prompt=request.prompt))

        validator = ValidatorAgent(db)
        ground_truth = await validator.get_ground_truth_for_validation()
        validation = validator.validate_query(generation.sql, ground_truth) if ground_truth else None

        execution = None
        if request.execute_query and validation is not None and validation.is_valid:
            execution = await generator.execute_query(apply_row_limit(generation.sql, request.limit))
    except (QueryGenerationError, QueryExecutionError) as e:
        raise server_error("process query pipeline", e) from e

    return APIResponse.ok(
        {
            "generation": generation.to_dict(),
            "validation": validation.to_dict() if validation else None,
            "execution": execution,
        },
        "Query processing pipeline completed successfully",
    )


# =============================================================================
# History and Templates
# =============================================================================


@router.get(
    "/history",
    response_model=APIResponse[list[QueryHistoryItem]],
    summary="Generated query history",
)
async def get_history(
    limit: int = Query(default=50, ge=1, le=500, description="Rows to return"),
    offset: int = Query(default=0, ge=0, description="Rows to skip"),
    db: AsyncSession = Depends(get_db),
) -> APIResponse[list[QueryHistoryItem]]:
    result = await db.execute(
        select(GeneratedQuery)
        .order_by(GeneratedQuery.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    history = [QueryHistoryItem.model_validate(row) for row in result.scalars().all()]
    return APIResponse.ok(history, "Query history retrieved successfully")


@router.get(
    "/templates",
    response_model=APIResponse[list[QueryTemplateResponse]],
    summary="Query templates, most confident first",
)
async def get_templates(db: AsyncSession = Depends(get_db)) -> APIResponse[list[QueryTemplateResponse]]:
    result = await db.execute(select(QueryTemplate).order_by(QueryTemplate.confidence.desc()))
    templates = [QueryTemplateResponse.model_validate(row) for row in result.scalars().all()]
    return APIResponse.ok(templates, "Query templates retrieved successfully")


# =============================================================================
# Metadata Maintenance
# =============================================================================


@router.post(
    "/analyze-columns",
    response_model=APIResponse[dict],
    summary="Analyze and store column metadata",
    description=(
        "Analyze one table (table_name) or all SAP tables. Tables that already have "
        "column metadata are skipped unless force_refresh is set."
    ),
)
async def analyze_columns(
    request: AnalyzeColumnsRequest,
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[dict]:
    if request.table_name:
        table_name = request.table_name.upper()
        if table_name not in SAP_TABLE_MODELS:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Table {request.table_name} not found",
            )
        table_names = [table_name]
    else:
        table_names = list(SAP_TABLE_MODELS)

    try:
        skipped: list[str] = []
        if not request.force_refresh:
            result = await db.execute(
                select(ColumnMetadata.table_name)
                .where(ColumnMetadata.table_name.in_(table_names))
                .distinct()
            )
            skipped = sorted(result.scalars().all())
            table_names = [t for t in table_names if t not in skipped]

        extractor = ExtractorService(db)
        tables = [await extractor.extract_table_structure(name) for name in table_names]

        analyzer = ColumnAnalyzer(db, llm)
        analyses = await analyzer.analyze_all_columns(tables)
        saved = await analyzer.save_column_analyses(analyses)
    except (SQLAlchemyError, LLMError) as e:
        raise server_error("analyze columns", e) from e

    logger.info("Columns analyzed", tables=table_names, skipped=skipped, saved=saved)
    return APIResponse.ok(
        {
            "analyzed_tables": table_names,
            "skipped_tables": skipped,
            "columns_saved": saved,
            "analyses": [a.to_dict() for a in analyses],
        },
        "Column analysis completed successfully",
    )


@router.post(
    "/infer-relationships",
    response_model=APIResponse[dict],
    summary="Infer and store table relationships",
)
async def infer_relationships(
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[dict]:
    inference = RelationshipInference(db, llm)
    try:
        relationships = await inference.infer_all_relationships()
        quality = await inference.analyze_relationship_quality()
    except SQLAlchemyError as e:
        raise server_error("infer relationships", e) from e

    return APIResponse.ok(
        {
            "relationships": [r.to_dict() for r in relationships],
            "quality": quality,
        },
        "Relationship inference completed successfully",
    )


@router.get(
    "/settings",
    response_model=APIResponse[dict],
    summary="Generation and execution limits",
)
async def get_query_settings() -> APIResponse[dict]:
    return APIResponse.ok(
        {
            "default_max_tables": settings.default_max_tables,
            "max_query_joins": settings.max_query_joins,
            "execution_row_limit": settings.execution_row_limit,
            "duplicate_window_minutes": settings.duplicate_window_minutes,
        },
        "Query settings retrieved successfully",
    )
