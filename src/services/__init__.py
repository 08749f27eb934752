"""
Services package - Business logic and external API clients.

This package contains:
- LLM client abstraction (Gemini, mock) with schema-validated reply parsing
- Extractor and schema summarizer for the simulated SAP tables
- Column analyzer, relationship inference and ground truth builder
- SAP query generator, generic query generator and the two validators
- AI pipeline orchestrator tying the stages together
"""

from src.services.column_analyzer import ColumnAnalysis, ColumnAnalyzer
from src.services.extractor import ExtractedData, ExtractorService, FieldInfo, TableStructure
from src.services.ground_truth import GroundTruthBuilder
from src.services.llm_client import (
    BaseLLMClient,
    GeminiClient,
    LLMAPIError,
    LLMConnectionError,
    LLMError,
    LLMMessage,
    LLMParseError,
    LLMProvider,
    LLMRateLimitError,
    LLMResponse,
    MockLLMClient,
    get_llm_client,
    parse_llm_json,
)
from src.services.pipeline import AIPipelineOrchestrator, PipelineError, PipelineRequest, PipelineResult
from src.services.query_generator import BasicQueryResult, QueryGenerator
from src.services.query_validation import QueryValidation, QueryValidationResult
from src.services.relationship_inference import InferredRelationship, RelationshipInference
from src.services.sap_query_generator import (
    QueryExecutionError,
    QueryGenerationError,
    SAPQueryGenerator,
    SAPQueryRequest,
    SAPQueryResult,
)
from src.services.schema_summarizer import SchemaSummarizerAgent, TableSummary
from src.services.validator_agent import ValidationResult, ValidatorAgent

__all__ = [
    # LLM Client
    "BaseLLMClient",
    "GeminiClient",
    "MockLLMClient",
    "LLMProvider",
    "LLMMessage",
    "LLMResponse",
    "LLMError",
    "LLMAPIError",
    "LLMConnectionError",
    "LLMParseError",
    "LLMRateLimitError",
    "get_llm_client",
    "parse_llm_json",
    # Metadata
    "ExtractorService",
    "ExtractedData",
    "FieldInfo",
    "TableStructure",
    "SchemaSummarizerAgent",
    "TableSummary",
    "ColumnAnalyzer",
    "ColumnAnalysis",
    "RelationshipInference",
    "InferredRelationship",
    "GroundTruthBuilder",
    # Query generation
    "SAPQueryGenerator",
    "SAPQueryRequest",
    "SAPQueryResult",
    "QueryGenerationError",
    "QueryExecutionError",
    "QueryGenerator",
    "BasicQueryResult",
    # Validation
    "ValidatorAgent",
    "ValidationResult",
    "QueryValidation",
    "QueryValidationResult",
    # Pipeline
    "AIPipelineOrchestrator",
    "PipelineRequest",
    "PipelineResult",
    "PipelineError",
]
