"""Metadata API endpoints: extraction, schema summaries and ground truth."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_llm, require_text, server_error
from src.db import get_db
from src.schemas import APIResponse, SAPQueryGenerateRequest, SearchColumnsRequest, SearchSchemasRequest
from src.services.column_analyzer import ColumnAnalyzer
from src.services.extractor import ExtractorService, TableStructure
from src.services.ground_truth import GroundTruthBuilder
from src.services.llm_client import BaseLLMClient, LLMError
from src.services.sap_query_generator import QueryGenerationError, SAPQueryGenerator
from src.services.schema_summarizer import SchemaSummarizerAgent

router = APIRouter()


async def _build_ground_truth(db: AsyncSession, tables: list[TableStructure]) -> dict[str, Any]:
    builder = GroundTruthBuilder(db)
    graph = builder.build_ground_truth(tables)
    validation = builder.validate_ground_truth(graph)
    ground_truth_id = await builder.save_ground_truth(graph)
    return {"graph": graph, "validation": validation, "id": ground_truth_id}


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "/extract",
    response_model=APIResponse[dict],
    summary="Extract SAP table structures",
    description="Read field lists, sample rows and counts of MARA, KNA1, VBAK and VBAP and dump them to JSON.",
)
async def extract(db: AsyncSession = Depends(get_db)) -> APIResponse[dict]:
    extractor = ExtractorService(db)
    try:
        data = await extractor.extract_all_tables()
        filepath = extractor.save_extracted_data(data)
    except (SQLAlchemyError, OSError) as e:
        raise server_error("extract data", e) from e

    return APIResponse.ok(
        {"extraction": data.to_dict(), "filepath": filepath},
        "Data extraction completed successfully",
    )


@router.post(
    "/summarize-schemas",
    response_model=APIResponse[list[dict]],
    summary="Generate schema summaries",
)
async def summarize_schemas(
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[list[dict]]:
    try:
        data = await ExtractorService(db).extract_all_tables()
        summaries = await SchemaSummarizerAgent(db, llm).process_all_tables(data.tables)
    except (SQLAlchemyError, LLMError) as e:
        raise server_error("generate schema summaries", e) from e

    return APIResponse.ok(
        [s.to_dict() for s in summaries],
        "Schema summarization completed successfully",
    )


@router.post(
    "/build-ground-truth",
    response_model=APIResponse[dict],
    summary="Build and store a ground truth graph",
)
async def build_ground_truth(db: AsyncSession = Depends(get_db)) -> APIResponse[dict]:
    try:
        data = await ExtractorService(db).extract_all_tables()
        result = await _build_ground_truth(db, data.tables)
    except SQLAlchemyError as e:
        raise server_error("build ground truth", e) from e

    return APIResponse.ok(result, "Ground truth building completed successfully")


@router.post(
    "/search-schemas",
    response_model=APIResponse[dict],
    summary="Semantic search over table summaries",
)
async def search_schemas(
    request: SearchSchemasRequest,
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[dict]:
    require_text(request.query, "Query parameter is required")

    try:
        results = await SchemaSummarizerAgent(db, llm).find_similar_schemas(request.query, request.limit)
    except (SQLAlchemyError, LLMError) as e:
        raise server_error("search schemas", e) from e

    return APIResponse.ok(
        {"query": request.query, "results": results},
        "Schema search completed successfully",
    )


@router.post(
    "/search-columns",
    response_model=APIResponse[dict],
    summary="Semantic search over analyzed columns",
)
async def search_columns(
    request: SearchColumnsRequest,
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[dict]:
    require_text(request.query, "Query parameter is required")

    try:
        results = await ColumnAnalyzer(db, llm).find_similar_columns(request.query, request.limit)
    except SQLAlchemyError as e:
        raise server_error("search columns", e) from e

    return APIResponse.ok(
        {"query": request.query, "results": results},
        "Column search completed successfully",
    )


@router.get(
    "/ground-truth",
    response_model=APIResponse[dict],
    summary="Latest ground truth graph",
)
async def get_ground_truth(db: AsyncSession = Depends(get_db)) -> APIResponse[dict]:
    graph = await GroundTruthBuilder(db).get_latest_ground_truth()
    if not graph:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No ground truth found. Please build ground truth first.",
        )
    return APIResponse.ok(graph, "Ground truth retrieved successfully")


@router.get(
    "/ground-truth/versions",
    response_model=APIResponse[list[dict]],
    summary="All stored ground truth versions",
)
async def get_ground_truth_versions(db: AsyncSession = Depends(get_db)) -> APIResponse[list[dict]]:
    versions = await GroundTruthBuilder(db).get_all_versions()
    return APIResponse.ok(versions, "Ground truth versions retrieved successfully")


@router.post(
    "/process-all",
    response_model=APIResponse[dict],
    summary="Extract, summarize and build ground truth",
)
async def process_all(
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[dict]:
    extractor = ExtractorService(db)
    try:
        data = await extractor.extract_all_tables()
        filepath = extractor.save_extracted_data(data)
        summaries = await SchemaSummarizerAgent(db, llm).process_all_tables(data.tables)
        ground_truth = await _build_ground_truth(db, data.tables)
    except (SQLAlchemyError, LLMError, OSError) as e:
        raise server_error("execute AI pipeline", e) from e

    return APIResponse.ok(
        {
            "extraction": {"data": data.to_dict(), "filepath": filepath},
            "summarization": {"summaries": [s.to_dict() for s in summaries]},
            "ground_truth": ground_truth,
        },
        "Complete AI pipeline executed successfully",
    )


@router.post(
    "/generate-query",
    response_model=APIResponse[dict],
    summary="Generate SAP SQL from a prompt",
)
async def generate_query(
    request: SAPQueryGenerateRequest,
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[dict]:
    require_text(request.prompt, "Prompt is required and must be a string")

    try:
        result = await SAPQueryGenerator(db, llm).generate_sap_query(request.to_request())
    except QueryGenerationError as e:
        raise server_error("generate SAP query", e) from e

    return APIResponse.ok(result.to_dict(), "SAP query generated successfully")
