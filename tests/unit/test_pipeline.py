"""Unit tests for the AI pipeline helpers and stages."""

import json
from typing import Any

import pytest

from src.services.llm_client import MockLLMClient
from src.services.pipeline import (
    AIPipelineOrchestrator,
    EnrichedContext,
    MetadataContext,
    PipelineIntent,
    PipelineResult,
    Recommendations,
    RelationshipMapping,
    build_business_context,
    overall_confidence,
)
from src.services.sap_query_generator import SAPQueryResult


def _query(sql: str = 'SELECT "VBAK"."VBELN" FROM "VBAK" LIMIT 10', **overrides: Any) -> SAPQueryResult:
    values: dict[str, Any] = {
        "sql": sql,
        "confidence": 0.8,
        "explanation": "",
        "business_logic": "",
        "tables_used": ["VBAK"],
        "join_types": [],
        "complexity": "simple",
        "sap_modules": ["SD"],
        "validation_status": "valid",
    }
    values.update(overrides)
    return SAPQueryResult(**values)


# =============================================================================
# Helper Tests
# =============================================================================


class TestHelpers:
    """Tests for confidence and context assembly."""

    def test_overall_confidence_valid(self) -> None:
        """The mean of query, intent, relationship and validity factors."""
        intent = PipelineIntent(query_type="lookup", confidence=0.6)
        mapping = RelationshipMapping(join_paths=[], relationship_confidence=0.6)
        assert overall_confidence(_query(), intent, mapping) == pytest.approx((0.8 + 0.6 + 0.6 + 1.0) / 4)

    def test_overall_confidence_invalid(self) -> None:
        """Invalid queries contribute 0.3; zero confidences default to 0.5."""
        intent = PipelineIntent(query_type="lookup", confidence=0.0)
        mapping = RelationshipMapping(join_paths=[], relationship_confidence=0.0)
        query = _query(confidence=0.2, validation_status="invalid")
        assert overall_confidence(query, intent, mapping) == pytest.approx((0.2 + 0.5 + 0.5 + 0.3) / 4)

    def test_business_context_text(self) -> None:
        """Summaries, relationships and hints are laid out in sections."""
        enriched = EnrichedContext(business_logic="Orders per customer", optimization_hints=[])
        metadata = MetadataContext(
            schema_summaries=[{"table": "VBAK", "summary": "Sales headers"}],
            table_relationships=[{
                "left_table": "VBAK",
                "left_column": "KUNNR",
                "right_table": "KNA1",
                "right_column": "KUNNR",
                "relationship_type": "inferred",
            }],
        )
        text = build_business_context(enriched, metadata)
        assert text == (
            "Business Context:\nOrders per customer\n\n"
            "Schema Summaries:\nVBAK: Sales headers\n\n"
            "Key Relationships:\nVBAK.KUNNR -> KNA1.KUNNR (inferred)\n\n"
            "Optimization Hints:\nNone"
        )

    def test_metadata_summary_counts_only(self) -> None:
        """The summary sent to the LLM holds counts, not contents."""
        summary = MetadataContext(column_metadata=[{}, {}], ground_truth={"joins": []}).summary()
        assert "Column Metadata: 2 columns analyzed" in summary
        assert "Ground Truth: Available" in summary

    def test_result_shape(self) -> None:
        """Serialized results nest pipeline details."""
        result = PipelineResult(
            query=_query(),
            stages_executed=["intent_analysis"],
            metadata_used=MetadataContext(),
            ai_analysis={},
            confidence=0.7,
            processing_time=12.5,
            recommendations=Recommendations(),
        )
        data = result.to_dict()
        assert set(data) == {"query", "pipeline", "recommendations"}
        assert data["pipeline"]["stages_executed"] == ["intent_analysis"]
        assert data["recommendations"]["alternative_queries"] == []


# =============================================================================
# Stage Tests
# =============================================================================


class TestStages:
    """Tests for the LLM stages and their fallbacks."""

    async def test_intent_fallback(self, mock_llm: MockLLMClient) -> None:
        """An unusable reply selects every SAP table."""
        orchestrator = AIPipelineOrchestrator(None, mock_llm)  # type: ignore[arg-type]
        intent = await orchestrator.analyze_intent("top customers")
        assert intent.query_type == "general"
        assert intent.relevant_tables == ["MARA", "KNA1", "VBAK", "VBAP"]
        assert intent.confidence == 0.5

    async def test_intent_from_reply(self, mock_llm: MockLLMClient) -> None:
        """camelCase replies populate the intent."""
        mock_llm.set_responses([json.dumps({
            "queryType": "aggregation",
            "businessDomain": "sales",
            "relevantTables": ["VBAK", "KNA1"],
            "confidence": 0.9,
        })])
        orchestrator = AIPipelineOrchestrator(None, mock_llm)  # type: ignore[arg-type]
        intent = await orchestrator.analyze_intent("revenue per customer")
        assert intent.relevant_tables == ["VBAK", "KNA1"]
        assert intent.model_dump(by_alias=True)["businessDomain"] == "sales"

    async def test_enrichment_fallback(self, mock_llm: MockLLMClient) -> None:
        """Without businessLogic the intent's tables are reused."""
        orchestrator = AIPipelineOrchestrator(None, mock_llm)  # type: ignore[arg-type]
        intent = PipelineIntent(query_type="lookup", relevant_tables=["VBAK"])
        enriched = await orchestrator.enrich_context("orders", intent, MetadataContext())
        assert enriched.suggested_tables == ["VBAK"]
        assert enriched.business_logic == "Standard SAP business logic applies"

    async def test_invalid_validation_marks_query(
        self, mock_llm: MockLLMClient, sample_ground_truth: dict[str, Any]
    ) -> None:
        """A query the validator rejects is marked invalid with its errors."""
        orchestrator = AIPipelineOrchestrator(None, mock_llm)  # type: ignore[arg-type]
        query = _query(sql='SELECT * FROM "BSEG"')
        mapping = RelationshipMapping(join_paths=[])

        checked, optimization = await orchestrator.optimize_and_validate(
            query, MetadataContext(ground_truth=sample_ground_truth), mapping
        )

        assert checked.validation_status == "invalid"
        assert checked.validation_errors == ["Invalid tables detected: BSEG"]
        assert optimization.suggestions == []
        assert query.validation_status == "valid"

    async def test_valid_validation_keeps_query(
        self, mock_llm: MockLLMClient, sample_ground_truth: dict[str, Any]
    ) -> None:
        """A valid query is passed through unchanged."""
        orchestrator = AIPipelineOrchestrator(None, mock_llm)  # type: ignore[arg-type]
        query = _query()
        checked, _ = await orchestrator.optimize_and_validate(
            query, MetadataContext(ground_truth=sample_ground_truth), RelationshipMapping(join_paths=[])
        )
        assert checked is query

    async def test_recommendations_fallback(self, mock_llm: MockLLMClient) -> None:
        """A broken reply yields empty recommendation lists."""
        mock_llm.set_responses(["{not json"])
        orchestrator = AIPipelineOrchestrator(None, mock_llm)  # type: ignore[arg-type]
        recommendations = await orchestrator.generate_recommendations("orders", _query(), MetadataContext())
        assert recommendations == Recommendations()
