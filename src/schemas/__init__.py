"""Pydantic schemas for API request/response models."""

from src.schemas.ai import SearchColumnsRequest, SearchSchemasRequest
from src.schemas.common import APIResponse, ErrorResponse, SAPTableStats
from src.schemas.jobs import (
    InitializeJobRequest,
    JobCreateResponse,
    JobResponse,
    JobStatus,
    JobType,
)
from src.schemas.pipeline import (
    BatchQueryItem,
    BatchQueryRequest,
    BatchQueryResponse,
    BatchQueryResult,
    BatchSummary,
    PipelineContext,
    PipelineMetadata,
    PipelineQueryRequest,
)
from src.schemas.query import (
    AnalyzeColumnsRequest,
    ExecuteQueryRequest,
    GenerateBasicRequest,
    GenerateQueryRequest,
    ProcessQueryRequest,
    QueryContext,
    QueryHistoryItem,
    QueryTemplateResponse,
    ValidateQueryRequest,
)
from src.schemas.sap_query import (
    ExecutionResponse,
    GenerateAndExecuteRequest,
    SAPExecuteRequest,
    SAPQueryExample,
    SAPQueryGenerateRequest,
)

__all__ = [
    # Common
    "APIResponse",
    "ErrorResponse",
    "SAPTableStats",
    # Metadata
    "SearchColumnsRequest",
    "SearchSchemasRequest",
    # Jobs
    "InitializeJobRequest",
    "JobCreateResponse",
    "JobResponse",
    "JobStatus",
    "JobType",
    # Pipeline
    "BatchQueryItem",
    "BatchQueryRequest",
    "BatchQueryResponse",
    "BatchQueryResult",
    "BatchSummary",
    "PipelineContext",
    "PipelineMetadata",
    "PipelineQueryRequest",
    # Query
    "AnalyzeColumnsRequest",
    "ExecuteQueryRequest",
    "GenerateBasicRequest",
    "GenerateQueryRequest",
    "ProcessQueryRequest",
    "QueryContext",
    "QueryHistoryItem",
    "QueryTemplateResponse",
    "ValidateQueryRequest",
    # SAP query
    "ExecutionResponse",
    "GenerateAndExecuteRequest",
    "SAPExecuteRequest",
    "SAPQueryExample",
    "SAPQueryGenerateRequest",
]
