"""SAP query API endpoints: generate, execute, examples and history."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_llm, require_text, server_error
from src.db import get_db
from src.schemas import (
    APIResponse,
    ExecutionResponse,
    GenerateAndExecuteRequest,
    SAPExecuteRequest,
    SAPQueryExample,
    SAPQueryGenerateRequest,
)
from src.services.llm_client import BaseLLMClient
from src.services.sap_query_generator import (
    QueryExecutionError,
    QueryGenerationError,
    SAPQueryGenerator,
    SAPQueryRequest,
)
from src.services.sql_utils import apply_row_limit

router = APIRouter()

EXAMPLES = [
    SAPQueryExample(
        prompt="Show me sales order data with material information for a specific sales order",
        expected_sql=(
            'SELECT "VBAK"."VBELN", "VBAK"."ERDAT", "VBAP"."POSNR", "VBAP"."MATNR", "MARA"."MTART" '
            'FROM "VBAK" INNER JOIN "VBAP" ON "VBAK"."VBELN" = "VBAP"."VBELN" '
            'INNER JOIN "MARA" ON "VBAP"."MATNR" = "MARA"."MATNR" '
            "WHERE \"VBAK\".\"VBELN\" = '0000012345'"
        ),
        description="Join sales order header, items and material master for one order",
        complexity="medium",
        sap_modules=["SD", "MM"],
    ),
    SAPQueryExample(
        prompt="Get customer information with their sales orders",
        expected_sql=(
            'SELECT "KNA1"."KUNNR", "KNA1"."NAME1", "VBAK"."VBELN", "VBAK"."ERDAT" '
            'FROM "KNA1" INNER JOIN "VBAK" ON "KNA1"."KUNNR" = "VBAK"."KUNNR"'
        ),
        description="Customers joined to the sales orders they placed",
        complexity="simple",
        sap_modules=["SD"],
    ),
    SAPQueryExample(
        prompt="Show material master data with sales information",
        expected_sql=(
            'SELECT "MARA"."MATNR", "MARA"."MTART", "VBAP"."VBELN", "VBAP"."KWMENG" '
            'FROM "MARA" LEFT JOIN "VBAP" ON "MARA"."MATNR" = "VBAP"."MATNR"'
        ),
        description="Materials with any sales order items that reference them",
        complexity="simple",
        sap_modules=["MM", "SD"],
    ),
]


def _limited(sql: str, limit: int | None) -> str:
    return apply_row_limit(sql, limit) if limit else sql


@router.post(
    "/generate",
    response_model=APIResponse[dict],
    summary="Generate SAP SQL from a prompt",
    description=(
        "Pick relevant SAP tables by keyword, draft SQL with the LLM (deterministic "
        "fallback on failure), validate against the ground truth and record it."
    ),
)
async def generate(
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


@router.post(
    "/execute",
    response_model=APIResponse[ExecutionResponse],
    summary="Execute SQL in a read-only transaction",
)
async def execute(
    request: SAPExecuteRequest,
    db: AsyncSession = Depends(get_db),
) -> APIResponse[ExecutionResponse]:
    require_text(request.sql, "SQL query is required and must be a string")

    sql = _limited(request.sql, request.limit)
    try:
        execution = await SAPQueryGenerator(db).execute_query(sql)
    except QueryExecutionError as e:
        raise server_error("execute SAP query", e) from e

    return APIResponse.ok(
        ExecutionResponse(**execution, sql=sql),
        "SAP query executed successfully",
    )


@router.post(
    "/generate-and-execute",
    response_model=APIResponse[dict],
    summary="Generate SAP SQL and execute it when valid",
)
async def generate_and_execute(
    request: GenerateAndExecuteRequest,
    db: AsyncSession = Depends(get_db),
    llm: BaseLLMClient = Depends(get_llm),
) -> APIResponse[dict]:
    require_text(request.prompt, "Prompt is required and must be a string")
    generator = SAPQueryGenerator(db, llm)

    try:
        result = await generator.generate_sap_query(
            SAPQueryRequest(prompt=request.prompt, business_context=request.business_context)
        )
    except QueryGenerationError as e:
        raise server_error("generate SAP query", e) from e

    if result.is_invalid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Generated query is invalid",
        )

    sql = _limited(result.sql, request.limit)
    try:
        execution = await generator.execute_query(sql)
    except QueryExecutionError as e:
        raise server_error("execute SAP query", e) from e

    return APIResponse.ok(
        {"query": result.to_dict(), "execution": {**execution, "sql": sql}},
        "SAP query generated and executed successfully",
    )


@router.get(
    "/examples",
    response_model=APIResponse[list[SAPQueryExample]],
    summary="Example prompts with expected SQL",
)
async def get_examples() -> APIResponse[list[SAPQueryExample]]:
    return APIResponse.ok(EXAMPLES, "SAP query examples retrieved successfully")


@router.get(
    "/history",
    response_model=APIResponse[list[dict]],
    summary="Recently generated SAP queries",
)
async def get_history(
    limit: int = Query(default=10, ge=1, le=100, description="Rows to return"),
    db: AsyncSession = Depends(get_db),
) -> APIResponse[list[dict]]:
    history = await SAPQueryGenerator(db).get_query_history(limit)
    return APIResponse.ok(history, "SAP query history retrieved successfully")
