"""
AI pipeline orchestrator: metadata-aware, multi-stage query generation.

Stages of ``process_query`` (names recorded in ``stages_executed``):
1. intent_analysis        - LLM reading of the request
2. metadata_collection    - ground truth, summaries, relationships, columns
3. context_enrichment     - LLM picks tables and business logic
4. relationship_mapping   - stored joins plus LLM join-path suggestion
5. query_generation       - SAP query generator with the enriched context
6. optimization_validation - validator agent plus LLM optimization notes
7. recommendations        - LLM follow-up suggestions

Every LLM stage has a deterministic fallback, so the pipeline completes
with the mock client or when the provider is down.

``initialize_pipeline`` populates the metadata the stages read:
extraction, schema summaries, column analysis, relationship inference.
"""

import json
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import bind_context, clear_context, get_logger
from src.db.enums import ValidationStatus
from src.db.models import ColumnMetadata, GroundTruth, SchemaSummary, TableRelationship
from src.services.column_analyzer import ColumnAnalyzer
from src.services.extractor import ExtractorService
from src.services.llm_client import BaseLLMClient, LLMError, LLMMessage, parse_llm_json
from src.services.relationship_inference import RelationshipInference
from src.services.sap_catalog import SAP_TABLES
from src.services.sap_query_generator import SAPQueryGenerator, SAPQueryRequest, SAPQueryResult
from src.services.schema_summarizer import SchemaSummarizerAgent
from src.services.sql_utils import clamp_confidence
from src.services.validator_agent import ValidatorAgent

logger = get_logger(__name__)


class PipelineError(Exception):
    """Raised when the pipeline fails outside its per-stage fallbacks."""

    pass


# =============================================================================
# Prompts
# =============================================================================

INTENT_PROMPT = """You are an expert SAP business analyst. Analyze the user's query intent and extract:
1. Query type (reporting, analysis, lookup, aggregation, etc.)
2. Business domain (sales, finance, materials, customers, etc.)
3. Key entities mentioned
4. Required operations (join, filter, aggregate, etc.)
5. Relevant SAP tables (VBAK, VBAP, MARA, KNA1, etc.)
6. Query complexity level (simple, medium, complex)

Respond with a JSON object with the fields queryType, businessDomain,
entities, operations, relevantTables, complexity and confidence (0.0-1.0)."""

ENRICHMENT_PROMPT = """You are an expert SAP data architect. Using the provided metadata context, enrich the query understanding with:
1. Optimal table selection based on business logic
2. Recommended join strategies
3. Business logic interpretation
4. Query optimization hints

Consider the schema summaries, table relationships, and column metadata provided.
Respond with a JSON object with the fields suggestedTables, recommendedJoins,
businessLogic and optimizationHints."""

RELATIONSHIP_PROMPT = """You are an expert in SAP table relationships. Analyze the provided relationships and suggest optimal join paths.
Respond with a JSON object with the fields joinPaths (list of {from, to, type}),
relationshipConfidence (0.0-1.0) and alternativePaths."""

OPTIMIZATION_PROMPT = """You are an expert query optimizer for SAP systems. Analyze and suggest optimizations for the provided query.
Respond with a JSON object with the fields suggestions (list of strings) and confidence (0.0-1.0)."""

RECOMMENDATIONS_PROMPT = """Generate helpful recommendations for the user based on their request and the generated query.
Respond with a JSON object with the fields alternativeQueries, optimizationSuggestions
and dataQualityInsights, each a list of strings."""


# =============================================================================
# Reply Schemas
# =============================================================================


class PipelineIntent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query_type: str = Field(alias="queryType")
    business_domain: str = Field(default="unknown", alias="businessDomain")
    entities: list[str] = Field(default_factory=list)
    operations: list[str] = Field(default_factory=list)
    relevant_tables: list[str] = Field(default_factory=list, alias="relevantTables")
    complexity: str = "medium"
    confidence: float = 0.5


class EnrichedContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    suggested_tables: list[str] = Field(default_factory=list, alias="suggestedTables")
    recommended_joins: list[Any] = Field(default_factory=list, alias="recommendedJoins")
    business_logic: str = Field(alias="businessLogic")
    optimization_hints: list[str] = Field(default_factory=list, alias="optimizationHints")


class JoinPath(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from")
    to: str
    type: str = "inner"


class RelationshipMapping(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    join_paths: list[JoinPath] = Field(alias="joinPaths")
    relationship_confidence: float = Field(default=0.5, alias="relationshipConfidence")
    alternative_paths: list[Any] = Field(default_factory=list, alias="alternativePaths")


class QueryOptimization(BaseModel):
    model_config = ConfigDict(extra="allow")

    suggestions: list[str] = Field(default_factory=list)
    confidence: float = 0.5


class Recommendations(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    alternative_queries: list[str] = Field(default_factory=list, alias="alternativeQueries")
    optimization_suggestions: list[str] = Field(default_factory=list, alias="optimizationSuggestions")
    data_quality_insights: list[str] = Field(default_factory=list, alias="dataQualityInsights")


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class PipelineOptions:
    """Caller hints for the generation stage."""

    business_domain: str | None = None
    preferred_complexity: str | None = None
    include_explanation: bool = True
    max_tables: int = 5
    output_format: str = "both"


@dataclass
class MetadataOptions:
    """Which metadata sources feed the pipeline."""

    use_ground_truth: bool = True
    use_schema_summary: bool = True
    use_table_relationships: bool = True
    use_column_metadata: bool = True


@dataclass
class PipelineRequest:
    prompt: str
    context: PipelineOptions = field(default_factory=PipelineOptions)
    metadata: MetadataOptions = field(default_factory=MetadataOptions)


@dataclass
class MetadataContext:
    ground_truth: dict[str, Any] | None = None
    schema_summaries: list[dict[str, Any]] = field(default_factory=list)
    table_relationships: list[dict[str, Any]] = field(default_factory=list)
    column_metadata: list[dict[str, Any]] = field(default_factory=list)

    def summary(self) -> str:
        return (
            f"Schema Summaries: {len(self.schema_summaries)} tables\n"
            f"Table Relationships: {len(self.table_relationships)} relationships\n"
            f"Column Metadata: {len(self.column_metadata)} columns analyzed\n"
            f"Ground Truth: {'Available' if self.ground_truth else 'Not available'}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "ground_truth": self.ground_truth,
            "schema_summaries": self.schema_summaries,
            "table_relationships": self.table_relationships,
            "column_metadata": self.column_metadata,
        }


@dataclass
class PipelineResult:
    query: SAPQueryResult
    stages_executed: list[str]
    metadata_used: MetadataContext
    ai_analysis: dict[str, Any]
    confidence: float
    processing_time: float
    recommendations: Recommendations

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query.to_dict(),
            "pipeline": {
                "stages_executed": self.stages_executed,
                "metadata_used": self.metadata_used.to_dict(),
                "ai_analysis": self.ai_analysis,
                "confidence": self.confidence,
                "processing_time": self.processing_time,
            },
            "recommendations": self.recommendations.model_dump(),
        }


@dataclass
class InitializationResult:
    tables_analyzed: int
    columns_analyzed: int
    relationships_inferred: int
    schemas_processed: int
    status: str = "Pipeline initialized successfully"

    def to_dict(self) -> dict[str, Any]:
        return {
            "tables_analyzed": self.tables_analyzed,
            "columns_analyzed": self.columns_analyzed,
            "relationships_inferred": self.relationships_inferred,
            "schemas_processed": self.schemas_processed,
            "status": self.status,
        }


def overall_confidence(
    query: SAPQueryResult,
    intent: PipelineIntent,
    mapping: RelationshipMapping,
) -> float:
    """Mean of query, intent and relationship confidence and a validity factor."""
    factors = [
        query.confidence,
        intent.confidence or 0.5,
        mapping.relationship_confidence or 0.5,
        1.0 if query.validation_status == ValidationStatus.VALID.value else 0.3,
    ]
    return clamp_confidence(sum(factors) / len(factors))


def build_business_context(enriched: EnrichedContext, metadata: MetadataContext) -> str:
    summaries = "\n".join(f"{s['table']}: {s['summary']}" for s in metadata.schema_summaries)
    relationships = "\n".join(
        f"{r['left_table']}.{r['left_column']} -> {r['right_table']}.{r['right_column']} "
        f"({r['relationship_type']})"
        for r in metadata.table_relationships
    )
    hints = "\n".join(enriched.optimization_hints) or "None"
    return (
        f"Business Context:\n{enriched.business_logic}\n\n"
        f"Schema Summaries:\n{summaries}\n\n"
        f"Key Relationships:\n{relationships}\n\n"
        f"Optimization Hints:\n{hints}"
    )


# =============================================================================
# Orchestrator
# =============================================================================


class AIPipelineOrchestrator:
    """
    Runs the staged pipeline over the metadata services.

    Args:
        db: Async database session
        llm_client: LLM client (must be entered as async context manager)
    """

    def __init__(self, db: AsyncSession, llm_client: BaseLLMClient):
        self.db = db
        self.llm = llm_client
        self.sap_query_generator = SAPQueryGenerator(db, llm_client)
        self.relationship_inference = RelationshipInference(db, llm_client)
        self.column_analyzer = ColumnAnalyzer(db, llm_client)
        self.schema_summarizer = SchemaSummarizerAgent(db, llm_client)
        self.validator = ValidatorAgent(db)

    async def process_query(self, request: PipelineRequest) -> PipelineResult:
        start = time.perf_counter()
        stages: list[str] = []
        ai_analysis: dict[str, Any] = {}
        bind_context(pipeline_run_id=str(uuid.uuid4()))

        try:
            stages.append("intent_analysis")
            intent = await self.analyze_intent(request.prompt)
            ai_analysis["intent_analysis"] = intent.model_dump(by_alias=True)

            stages.append("metadata_collection")
            metadata = await self.collect_metadata_context(intent.relevant_tables, request.metadata)

            stages.append("context_enrichment")
            enriched = await self.enrich_context(request.prompt, intent, metadata)
            ai_analysis["context_enrichment"] = enriched.model_dump(by_alias=True)

            stages.append("relationship_mapping")
            mapping = await self.map_relationships(enriched.suggested_tables, metadata)
            ai_analysis["relationship_mapping"] = mapping.model_dump(by_alias=True)

            stages.append("query_generation")
            query = await self.sap_query_generator.generate_sap_query(
                SAPQueryRequest(
                    prompt=request.prompt,
                    max_tables=request.context.max_tables or 5,
                    include_explanation=request.context.include_explanation,
                    business_context=build_business_context(enriched, metadata),
                    auto_save=False,
                )
            )

            stages.append("optimization_validation")
            query, optimization = await self.optimize_and_validate(query, metadata, mapping)
            ai_analysis["query_optimization"] = optimization.model_dump()

            stages.append("recommendations")
            recommendations = await self.generate_recommendations(request.prompt, query, metadata)

            result = PipelineResult(
                query=query,
                stages_executed=stages,
                metadata_used=metadata,
                ai_analysis=ai_analysis,
                confidence=overall_confidence(query, intent, mapping),
                processing_time=(time.perf_counter() - start) * 1000,
                recommendations=recommendations,
            )
            logger.info(
                "Pipeline completed",
                stages=len(stages),
                confidence=round(result.confidence, 3),
                processing_time_ms=round(result.processing_time, 1),
            )
            return result
        except Exception as e:
            logger.error("Pipeline failed", stage=stages[-1] if stages else None, error=str(e))
            raise PipelineError(f"AI Pipeline failed: {e}") from e
        finally:
            clear_context()

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def analyze_intent(self, prompt: str) -> PipelineIntent:
        try:
            response = await self.llm.complete(
                [
                    LLMMessage(role="system", content=INTENT_PROMPT),
                    LLMMessage(role="user", content=f'Analyze this query: "{prompt}"'),
                ],
                temperature=0.1,
            )
            return parse_llm_json(response.content, PipelineIntent)
        except LLMError as e:
            logger.warning("Intent analysis fell back to defaults", error=str(e))
            return PipelineIntent(
                query_type="general",
                operations=["select"],
                relevant_tables=list(SAP_TABLES),
            )

    async def collect_metadata_context(
        self,
        relevant_tables: list[str],
        options: MetadataOptions,
    ) -> MetadataContext:
        context = MetadataContext()

        if options.use_ground_truth:
            result = await self.db.execute(
                select(GroundTruth).order_by(GroundTruth.created_at.desc()).limit(1)
            )
            row = result.scalar_one_or_none()
            context.ground_truth = row.graph if row else None

        if options.use_schema_summary:
            stmt = select(SchemaSummary.table, SchemaSummary.summary)
            if relevant_tables:
                stmt = stmt.where(SchemaSummary.table.in_(relevant_tables))
            result = await self.db.execute(stmt)
            context.schema_summaries = [
                {"table": row.table, "summary": row.summary} for row in result.all()
            ]

        if options.use_table_relationships:
            stmt = select(TableRelationship)
            if relevant_tables:
                stmt = stmt.where(
                    or_(
                        TableRelationship.left_table.in_(relevant_tables),
                        TableRelationship.right_table.in_(relevant_tables),
                    )
                )
            result = await self.db.execute(stmt)
            context.table_relationships = [
                {
                    "left_table": r.left_table,
                    "left_column": r.left_column,
                    "right_table": r.right_table,
                    "right_column": r.right_column,
                    "relationship_type": r.relationship_type,
                    "confidence": r.confidence,
                    "business_rule": r.business_rule,
                }
                for r in result.scalars().all()
            ]

        if options.use_column_metadata:
            stmt = select(ColumnMetadata)
            if relevant_tables:
                stmt = stmt.where(ColumnMetadata.table_name.in_(relevant_tables))
            result = await self.db.execute(stmt)
            context.column_metadata = [
                {
                    "table_name": c.table_name,
                    "column_name": c.column_name,
                    "semantic_type": c.semantic_type,
                    "business_context": c.business_context,
                    "description": c.description,
                    "sample_values": c.sample_values or [],
                    "possible_join_keys": c.possible_join_keys or [],
                }
                for c in result.scalars().all()
            ]

        logger.debug(
            "Metadata collected",
            tables=relevant_tables,
            summaries=len(context.schema_summaries),
            relationships=len(context.table_relationships),
            columns=len(context.column_metadata),
        )
        return context

    async def enrich_context(
        self,
        prompt: str,
        intent: PipelineIntent,
        metadata: MetadataContext,
    ) -> EnrichedContext:
        user = (
            f'Original Query: "{prompt}"\n'
            f"Intent Analysis: {intent.model_dump_json(by_alias=True)}\n"
            f"Metadata Context:\n{metadata.summary()}"
        )
        try:
            response = await self.llm.complete(
                [
                    LLMMessage(role="system", content=ENRICHMENT_PROMPT),
                    LLMMessage(role="user", content=user),
                ],
                temperature=0.2,
            )
            return parse_llm_json(response.content, EnrichedContext)
        except LLMError as e:
            logger.warning("Context enrichment fell back to intent tables", error=str(e))
            return EnrichedContext(
                suggested_tables=intent.relevant_tables,
                business_logic="Standard SAP business logic applies",
            )

    async def map_relationships(
        self,
        suggested_tables: list[str],
        metadata: MetadataContext,
    ) -> RelationshipMapping:
        rows = await self.relationship_inference.get_relationships_for_tables(suggested_tables)
        available = [
            {
                "left": f"{r.left_table}.{r.left_column}",
                "right": f"{r.right_table}.{r.right_column}",
                "join_type": r.join_type,
                "confidence": r.confidence,
            }
            for r in rows
        ]
        user = (
            f"Tables: {', '.join(suggested_tables)}\n"
            f"Available Relationships: {json.dumps(available)}\n"
            f"Column Metadata: {json.dumps(metadata.column_metadata, default=str)}"
        )
        try:
            response = await self.llm.complete(
                [
                    LLMMessage(role="system", content=RELATIONSHIP_PROMPT),
                    LLMMessage(role="user", content=user),
                ],
                temperature=0.1,
            )
            return parse_llm_json(response.content, RelationshipMapping)
        except LLMError as e:
            logger.warning("Relationship mapping fell back to stored joins", error=str(e))
            return RelationshipMapping(
                join_paths=[
                    JoinPath(from_=path["left"], to=path["right"], type=path["join_type"] or "inner")
                    for path in available
                ],
                relationship_confidence=0.8,
            )

    async def optimize_and_validate(
        self,
        query: SAPQueryResult,
        metadata: MetadataContext,
        mapping: RelationshipMapping,
    ) -> tuple[SAPQueryResult, QueryOptimization]:
        validation = self.validator.validate_query(query.sql, metadata.ground_truth)

        user = (
            f"Query: {query.sql}\n"
            f"Validation Result: {json.dumps(validation.to_dict())}\n"
            f"Available Relationships: {mapping.model_dump_json(by_alias=True)}"
        )
        try:
            response = await self.llm.complete(
                [
                    LLMMessage(role="system", content=OPTIMIZATION_PROMPT),
                    LLMMessage(role="user", content=user),
                ],
                temperature=0.1,
            )
            optimization = parse_llm_json(response.content, QueryOptimization)
        except LLMError as e:
            logger.warning("Query optimization skipped", error=str(e))
            optimization = QueryOptimization()

        if not validation.is_valid:
            query = replace(
                query,
                validation_status=ValidationStatus.INVALID.value,
                validation_errors=validation.errors,
                validation_result=validation,
            )
        return query, optimization

    async def generate_recommendations(
        self,
        prompt: str,
        query: SAPQueryResult,
        metadata: MetadataContext,
    ) -> Recommendations:
        user = (
            f'Original Request: "{prompt}"\n'
            f"Generated Query: {query.sql}\n"
            f"Metadata Available: {json.dumps(metadata.schema_summaries)}"
        )
        try:
            response = await self.llm.complete(
                [
                    LLMMessage(role="system", content=RECOMMENDATIONS_PROMPT),
                    LLMMessage(role="user", content=user),
                ],
                temperature=0.3,
            )
            return parse_llm_json(response.content, Recommendations)
        except LLMError as e:
            logger.warning("Recommendations unavailable", error=str(e))
            return Recommendations()

    # -------------------------------------------------------------------------
    # Initialization
    # -------------------------------------------------------------------------

    async def initialize_pipeline(self) -> InitializationResult:
        """Extract, summarize, analyze columns and infer relationships, in order."""
        logger.info("Initializing AI pipeline")

        extracted = await ExtractorService(self.db).extract_all_tables()
        summaries = await self.schema_summarizer.process_all_tables(extracted.tables)

        analyses = await self.column_analyzer.analyze_all_columns(extracted.tables)
        columns_saved = await self.column_analyzer.save_column_analyses(analyses)

        relationships = await self.relationship_inference.infer_all_relationships()

        result = InitializationResult(
            tables_analyzed=len(extracted.tables),
            columns_analyzed=columns_saved,
            relationships_inferred=len(relationships),
            schemas_processed=len(summaries),
        )
        logger.info("AI pipeline initialized", **result.to_dict())
        return result
