"""Unit tests for ground-truth based SQL validation."""

from typing import Any

import pytest

from src.services.validator_agent import (
    QueryAnalysis,
    ValidatorAgent,
    parse_sql,
    validate_business_logic,
    validate_joins,
    validate_sap_best_practices,
    validate_tables,
)

CUSTOMER_ORDERS_SQL = (
    'SELECT "VBAK"."VBELN", "KNA1"."NAME1" FROM "VBAK" '
    'INNER JOIN "KNA1" ON "VBAK"."KUNNR" = "KNA1"."KUNNR" '
    "WHERE \"VBAK\".\"ERDAT\" > '2025-01-01'"
)


# =============================================================================
# SQL Parsing Tests
# =============================================================================


class TestParseSQL:
    """Tests for regex-based SQL structure extraction."""

    def test_tables_and_joins(self) -> None:
        """FROM and JOIN tables are collected with their conditions."""
        analysis = parse_sql(CUSTOMER_ORDERS_SQL)
        assert analysis.tables == ["VBAK", "KNA1"]
        assert len(analysis.joins) == 1
        join = analysis.joins[0]
        assert join.key == "VBAK.KUNNR = KNA1.KUNNR"
        assert join.join_type == "INNER"

    def test_left_join_type(self) -> None:
        """Outer join keywords are kept."""
        analysis = parse_sql(
            "select vbap.vbeln from vbap left outer join mara on vbap.matnr = mara.matnr"
        )
        assert analysis.joins[0].join_type == "LEFT"
        assert analysis.joins[0].right_table == "MARA"

    def test_columns_and_aliases(self) -> None:
        """Select items lose quotes and aliases; aggregation is detected."""
        analysis = parse_sql('SELECT "VBAK"."VBELN" AS doc, COUNT(*) FROM "VBAK" GROUP BY "VBAK"."VBELN"')
        assert analysis.columns == ["VBAK.VBELN", "COUNT(*)"]
        assert analysis.has_aliases is True
        assert analysis.has_aggregation is True

    def test_where_conditions(self) -> None:
        """WHERE conditions are split on AND/OR and stop at LIMIT."""
        analysis = parse_sql(
            "SELECT * FROM VBAK WHERE VBAK.VKORG = '1000' AND VBAK.AUART = 'OR' LIMIT 10"
        )
        assert analysis.where_conditions == ["VBAK.VKORG = '1000'", "VBAK.AUART = 'OR'"]

    def test_subquery_detection(self) -> None:
        """A nested SELECT marks the statement as having subqueries."""
        analysis = parse_sql("SELECT * FROM VBAK WHERE KUNNR IN (SELECT KUNNR FROM KNA1)")
        assert analysis.has_subqueries is True


# =============================================================================
# Check Tests
# =============================================================================


class TestChecks:
    """Tests for individual ground-truth checks."""

    def test_known_join_is_valid_in_either_direction(self, sample_ground_truth: dict[str, Any]) -> None:
        """A join matches the graph regardless of side order."""
        analysis = parse_sql(
            'SELECT * FROM "KNA1" JOIN "VBAK" ON "KNA1"."KUNNR" = "VBAK"."KUNNR"'
        )
        result = validate_joins(analysis, sample_ground_truth)
        assert result.valid_joins == ["KNA1.KUNNR = VBAK.KUNNR"]
        assert result.invalid_joins == []

    def test_wrong_columns_are_invalid(self, sample_ground_truth: dict[str, Any]) -> None:
        """A join on the wrong columns is invalid, not missing."""
        analysis = parse_sql(
            'SELECT * FROM "VBAP" JOIN "VBAK" ON "VBAP"."MATNR" = "VBAK"."VBELN"'
        )
        result = validate_joins(analysis, sample_ground_truth)
        assert result.invalid_joins == ["VBAP.MATNR = VBAK.VBELN"]
        assert result.missing_joins == []

    def test_unjoined_pair_is_missing(self, sample_ground_truth: dict[str, Any]) -> None:
        """Two related tables without any join condition between them."""
        analysis = QueryAnalysis(tables=["VBAP", "VBAK"])
        result = validate_joins(analysis, sample_ground_truth)
        assert result.missing_joins == ["VBAP.VBELN = VBAK.VBELN"]

    def test_tables(self, sample_ground_truth: dict[str, Any]) -> None:
        """Unknown tables are invalid; adjacent unused tables are listed."""
        analysis = QueryAnalysis(tables=["VBAK", "BSEG"])
        result = validate_tables(analysis, sample_ground_truth)
        assert result.valid_tables == ["VBAK"]
        assert result.invalid_tables == ["BSEG"]
        assert sorted(result.unused_tables) == ["KNA1", "VBAP"]

    def test_bridge_table_rule(self) -> None:
        """VBAK with MARA but without VBAP breaks the business logic."""
        result = validate_business_logic(QueryAnalysis(tables=["VBAK", "MARA"]))
        assert result.is_business_logic_valid is False
        assert any("VBAP" in v for v in result.business_rule_violations)

    def test_customer_suggestion_keeps_logic_valid(self) -> None:
        """Missing KNA1 is a suggestion, not a violation of validity."""
        result = validate_business_logic(QueryAnalysis(tables=["VBAK"]))
        assert result.is_business_logic_valid is True
        assert len(result.business_rule_violations) == 1

    def test_large_table_without_where(self) -> None:
        """VBAP without WHERE raises a performance warning."""
        warnings, suggestions = validate_sap_best_practices(QueryAnalysis(tables=["VBAP"]))
        assert len(warnings) == 1
        assert "WHERE" in warnings[0]
        assert any("aliases" in s for s in suggestions)

    def test_many_tables(self) -> None:
        """More than five tables is flagged."""
        analysis = QueryAnalysis(
            tables=["A", "B", "C", "D", "E", "F"],
            where_conditions=["A.X = 1"],
            has_aliases=True,
        )
        warnings, suggestions = validate_sap_best_practices(analysis)
        assert warnings == ["Query involves many tables, consider performance impact"]
        assert len(suggestions) == 1


# =============================================================================
# Validator Agent Tests
# =============================================================================


class TestValidatorAgent:
    """Tests for the combined validation result."""

    def test_valid_query(self, sample_ground_truth: dict[str, Any]) -> None:
        """A query following the graph is valid with full confidence."""
        result = ValidatorAgent(None).validate_query(CUSTOMER_ORDERS_SQL, sample_ground_truth)  # type: ignore[arg-type]
        assert result.is_valid is True
        assert result.errors == []
        assert result.confidence == 1.0
        assert result.join_validation.valid_joins == ["VBAK.KUNNR = KNA1.KUNNR"]

    def test_invalid_join_lowers_confidence(self, sample_ground_truth: dict[str, Any]) -> None:
        """Errors cost 0.3 and warnings 0.1 each."""
        sql = 'SELECT * FROM "VBAK" JOIN "MARA" ON "VBAK"."VBELN" = "MARA"."MATNR"'
        result = ValidatorAgent(None).validate_query(sql, sample_ground_truth)  # type: ignore[arg-type]
        assert result.is_valid is False
        assert result.errors == ["Invalid joins detected: VBAK.VBELN = MARA.MATNR"]
        # Bridge-table violation plus the customer suggestion
        assert len(result.warnings) == 2
        assert result.confidence == pytest.approx(0.5)

    def test_unknown_table(self, sample_ground_truth: dict[str, Any]) -> None:
        """Tables outside the graph are errors."""
        result = ValidatorAgent(None).validate_query('SELECT * FROM "BSEG"', sample_ground_truth)  # type: ignore[arg-type]
        assert result.is_valid is False
        assert "Invalid tables detected: BSEG" in result.errors

    def test_without_ground_truth(self) -> None:
        """No graph means a failed result with zero confidence."""
        result = ValidatorAgent(None).validate_query("SELECT 1", None)  # type: ignore[arg-type]
        assert result.is_valid is False
        assert result.confidence == 0.0
        assert result.errors == ["Validation failed: No ground truth available"]
        assert result.business_logic_validation.is_business_logic_valid is False

    def test_to_dict_shape(self, sample_ground_truth: dict[str, Any]) -> None:
        """Serialized results carry the nested validations."""
        data = ValidatorAgent(None).validate_query(CUSTOMER_ORDERS_SQL, sample_ground_truth).to_dict()  # type: ignore[arg-type]
        assert set(data) >= {"join_validation", "table_validation", "business_logic_validation"}
        assert data["table_validation"]["valid_tables"] == ["VBAK", "KNA1"]
