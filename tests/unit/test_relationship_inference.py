"""Unit tests for relationship inference methods."""

import json
from typing import Any

import pytest
from sqlalchemy.exc import SQLAlchemyError

from src.db.enums import InferenceMethod, RelationshipType
from src.services.llm_client import MockLLMClient
from src.services.relationship_inference import (
    ColumnProfile,
    InferredRelationship,
    RelationshipInference,
    TableProfile,
    _fallback_tables,
    deduplicate_relationships,
    infer_by_business_logic,
    infer_by_column_names,
    infer_by_data_patterns,
    infer_relationship_type,
)


def _rel(left: str, right: str, confidence: float, **kwargs) -> InferredRelationship:
    left_table, left_column = left.split(".")
    right_table, right_column = right.split(".")
    return InferredRelationship(
        left_table=left_table,
        left_column=left_column,
        right_table=right_table,
        right_column=right_column,
        relationship_type=RelationshipType.ONE_TO_MANY.value,
        join_type="left",
        confidence=confidence,
        inference_method=kwargs.pop("method", InferenceMethod.COLUMN_NAME.value),
        **kwargs,
    )


# =============================================================================
# Column Name Tests
# =============================================================================


class TestColumnNameInference:
    """Tests for name-based inference."""

    def test_exact_key_match_uses_pattern(self) -> None:
        """A shared KUNNR column links header and customer."""
        tables = [
            TableProfile("VBAK", [ColumnProfile("VBELN", "VARCHAR(10)"), ColumnProfile("KUNNR", "VARCHAR(10)")]),
            TableProfile("KNA1", [ColumnProfile("KUNNR", "VARCHAR(10)"), ColumnProfile("NAME1", "VARCHAR(35)")]),
        ]
        relationships = infer_by_column_names(tables)
        assert len(relationships) == 1
        rel = relationships[0]
        assert rel.key == "VBAK.KUNNR-KNA1.KUNNR"
        assert rel.confidence == 0.95
        assert rel.join_type == "left"
        assert rel.inference_method == InferenceMethod.COLUMN_NAME.value

    def test_header_item_match_is_inner(self) -> None:
        """VBELN is an inner join with 0.90 confidence."""
        tables = [
            TableProfile("VBAK", [ColumnProfile("VBELN", "VARCHAR(10)")]),
            TableProfile("VBAP", [ColumnProfile("VBELN", "VARCHAR(10)")]),
        ]
        rel = infer_by_column_names(tables)[0]
        assert rel.join_type == "inner"
        assert rel.confidence == 0.90

    def test_non_key_exact_match_skipped(self) -> None:
        """Identical names that are not key-like are ignored."""
        tables = [
            TableProfile("VBAK", [ColumnProfile("ERDAT", "DATE")]),
            TableProfile("VBAP", [ColumnProfile("ERDAT", "DATE")]),
        ]
        assert infer_by_column_names(tables) == []

    def test_similar_names(self) -> None:
        """Near-identical names yield a weak left join."""
        tables = [
            TableProfile("ZORDERS", [ColumnProfile("ZCUSTOMER", "VARCHAR(10)")]),
            TableProfile("ZCUSTOMERS", [ColumnProfile("ZCUSTOMR", "VARCHAR(10)")]),
        ]
        rel = infer_by_column_names(tables)[0]
        assert rel.confidence == 0.6
        assert rel.join_type == "left"
        assert "similarity" in rel.evidence[0]


# =============================================================================
# Data Pattern Tests
# =============================================================================


class TestDataPatternInference:
    """Tests for value-overlap inference."""

    def test_overlap_above_threshold(self) -> None:
        """Half the values shared gives 0.5 confidence."""
        tables = [
            TableProfile("A", [ColumnProfile("X", "INT", sample_values=[1, 2, 3])]),
            TableProfile("B", [ColumnProfile("Y", "INT", sample_values=[2, 3, 4])]),
        ]
        rel = infer_by_data_patterns(tables)[0]
        assert rel.confidence == pytest.approx(0.5)
        assert rel.evidence == ["Value overlap: 50.0%"]

    def test_confidence_capped(self) -> None:
        """Identical samples are capped at 0.8."""
        tables = [
            TableProfile("A", [ColumnProfile("X", "VARCHAR", sample_values=["a", "b"])]),
            TableProfile("B", [ColumnProfile("Y", "VARCHAR", sample_values=["a", "b"])]),
        ]
        assert infer_by_data_patterns(tables)[0].confidence == 0.8

    def test_no_overlap_or_no_samples(self) -> None:
        """Disjoint or missing samples produce nothing."""
        tables = [
            TableProfile("A", [ColumnProfile("X", "INT", sample_values=[1, 2]), ColumnProfile("Z", "INT")]),
            TableProfile("B", [ColumnProfile("Y", "INT", sample_values=[5, 6])]),
        ]
        assert infer_by_data_patterns(tables) == []


# =============================================================================
# Business Rule and Deduplication Tests
# =============================================================================


class TestBusinessLogicInference:
    """Tests for the fixed SAP rules."""

    def test_rules_on_fallback_tables(self) -> None:
        """All three rules apply to the fallback structure."""
        relationships = infer_by_business_logic(_fallback_tables())
        keys = {rel.key: rel.confidence for rel in relationships}
        assert keys == {
            "VBAK.KUNNR-KNA1.KUNNR": 0.95,
            "VBAP.VBELN-VBAK.VBELN": 0.98,
            "VBAP.MATNR-MARA.MATNR": 0.90,
        }
        assert all(rel.business_rule for rel in relationships)

    def test_rule_needs_both_tables(self) -> None:
        """A rule is skipped when one side is absent."""
        tables = [TableProfile("VBAK", [ColumnProfile("KUNNR", "VARCHAR(10)")])]
        assert infer_by_business_logic(tables) == []

    def test_provenance(self) -> None:
        """Stored provenance is the rule, else method plus evidence."""
        with_rule = _rel("VBAK.KUNNR", "KNA1.KUNNR", 0.95, business_rule="Header to customer")
        without_rule = _rel("VBAK.KUNNR", "KNA1.KUNNR", 0.95, evidence=["Exact column name match: KUNNR"])
        assert with_rule.provenance() == "Header to customer"
        assert without_rule.provenance() == "column_name: Exact column name match: KUNNR"


class TestDeduplication:
    """Tests for direction-insensitive deduplication."""

    def test_reverse_pair_keeps_highest(self) -> None:
        """A reversed duplicate with higher confidence replaces the first."""
        relationships = [
            _rel("VBAK.KUNNR", "KNA1.KUNNR", 0.6),
            _rel("KNA1.KUNNR", "VBAK.KUNNR", 0.9),
        ]
        unique = deduplicate_relationships(relationships)
        assert len(unique) == 1
        assert unique[0].confidence == 0.9
        assert unique[0].left_table == "KNA1"

    def test_sorted_by_confidence(self) -> None:
        """Results are ordered best first."""
        unique = deduplicate_relationships([
            _rel("A.X", "B.X", 0.5),
            _rel("C.Y", "D.Y", 0.95),
            _rel("E.Z", "F.Z", 0.7),
        ])
        assert [r.confidence for r in unique] == [0.95, 0.7, 0.5]

    def test_relationship_type_from_uniqueness(self) -> None:
        """Two unique sample sets make a one-to-one relationship."""
        unique = ColumnProfile("A", "INT", sample_values=[1, 2, 3], unique_value_count=3)
        repeated = ColumnProfile("B", "INT", sample_values=[1, 1, 2, 2], unique_value_count=2)
        assert infer_relationship_type(unique, unique) == RelationshipType.ONE_TO_ONE.value
        assert infer_relationship_type(unique, repeated) == RelationshipType.ONE_TO_MANY.value
        assert infer_relationship_type(ColumnProfile("C", "INT"), repeated) == RelationshipType.ONE_TO_MANY.value


# =============================================================================
# AI Analysis Tests
# =============================================================================


class TestAIAnalysis:
    """Tests for LLM-proposed relationships."""

    async def test_reply_is_normalized(self, mock_llm: MockLLMClient) -> None:
        """Join types are normalized and confidence clamped."""
        mock_llm.set_responses([json.dumps({
            "relationships": [{
                "leftTable": "VBAP",
                "leftColumn": "MATNR",
                "rightTable": "MARA",
                "rightColumn": "MATNR",
                "joinType": "LEFT JOIN",
                "confidence": 1.4,
                "explanation": "Items reference materials",
            }],
        })])
        inference = RelationshipInference(None, mock_llm)  # type: ignore[arg-type]
        relationships = await inference.infer_by_ai_analysis(_fallback_tables())

        assert len(relationships) == 1
        rel = relationships[0]
        assert rel.join_type == "left"
        assert rel.confidence == 1.0
        assert rel.inference_method == InferenceMethod.AI_ANALYSIS.value
        assert rel.evidence == ["Items reference materials"]

    async def test_bad_reply_yields_nothing(self, mock_llm: MockLLMClient) -> None:
        """An unparseable reply is dropped."""
        mock_llm.set_responses(["not json"])
        inference = RelationshipInference(None, mock_llm)  # type: ignore[arg-type]
        assert await inference.infer_by_ai_analysis(_fallback_tables()) == []

    async def test_single_table_skips_llm(self, mock_llm: MockLLMClient) -> None:
        """Fewer than two tables never reaches the LLM."""
        inference = RelationshipInference(None, mock_llm)  # type: ignore[arg-type]
        assert await inference.infer_by_ai_analysis(_fallback_tables()[:1]) == []
        assert mock_llm.requests == []


# =============================================================================
# Persistence Tests
# =============================================================================


class TestSaveRelationships:
    """Replacing inferred rows is all-or-nothing."""

    async def test_delete_and_inserts_commit_together(self, recording_session: Any) -> None:
        inference = RelationshipInference(recording_session, MockLLMClient())
        relationships = [
            _rel("VBAK.KUNNR", "KNA1.KUNNR", 0.95),
            _rel("VBAP.MATNR", "MARA.MATNR", 0.85),
        ]

        await inference.save_inferred_relationships(relationships)

        assert recording_session.calls == ["execute", "add", "add", "commit"]
        stored = recording_session.added
        assert [(r.left_table, r.right_table) for r in stored] == [("VBAK", "KNA1"), ("VBAP", "MARA")]
        assert all(r.relationship_type == RelationshipType.INFERRED.value for r in stored)
        assert stored[0].business_rule.startswith("column_name")

    async def test_failed_commit_rolls_back(self, recording_session: Any) -> None:
        """A failed insert leaves the previous rows in place."""
        recording_session.fail_commit = True
        inference = RelationshipInference(recording_session, MockLLMClient())

        with pytest.raises(SQLAlchemyError):
            await inference.save_inferred_relationships([_rel("VBAK.KUNNR", "KNA1.KUNNR", 0.95)])

        assert recording_session.calls == ["execute", "add", "commit", "rollback"]
