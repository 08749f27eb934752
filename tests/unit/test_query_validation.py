"""Unit tests for pre-execution query validation."""

import pytest

from src.services.query_validation import (
    QueryContext,
    QueryValidation,
    validate_performance,
    validate_security,
    validate_syntax,
)
from src.services.sap_catalog import SAP_TABLES


def _context(tables: list[str], relationships: list[dict] | None = None) -> QueryContext:
    return QueryContext.from_dict({
        "tables": tables,
        "columns": [
            {"table": name, "column": col.name, "type": col.type}
            for name in tables
            for col in SAP_TABLES[name].columns
        ],
        "relationships": relationships or [],
    })


CUSTOMER_RELATIONSHIP = {
    "left_table": "VBAK",
    "left_column": "KUNNR",
    "right_table": "KNA1",
    "right_column": "KUNNR",
}

VALID_SQL = (
    'SELECT "VBAK"."VBELN", "KNA1"."NAME1" FROM "VBAK" '
    'INNER JOIN "KNA1" ON "VBAK"."KUNNR" = "KNA1"."KUNNR" '
    "WHERE \"VBAK\".\"VKORG\" = '1000' LIMIT 10"
)


@pytest.fixture
def validator() -> QueryValidation:
    return QueryValidation(None, max_joins=5)  # type: ignore[arg-type]


# =============================================================================
# Individual Check Tests
# =============================================================================


class TestSyntaxChecks:
    """Tests for syntax validation."""

    def test_valid_select(self) -> None:
        """A well-formed SELECT has no syntax errors."""
        assert validate_syntax(VALID_SQL) == []

    def test_not_select(self) -> None:
        """Only SELECT statements are accepted."""
        errors = validate_syntax('UPDATE "VBAK" SET "AUART" = \'OR\'')
        assert errors[0].severity == "critical"
        assert errors[0].message == "Query must start with SELECT statement"

    def test_unbalanced_parentheses(self) -> None:
        """Parenthesis mismatch is a high severity error."""
        errors = validate_syntax('SELECT COUNT(* FROM "VBAK"')
        assert [e.severity for e in errors] == ["high"]

    def test_missing_from(self) -> None:
        """A SELECT without FROM is critical."""
        errors = validate_syntax("SELECT 1")
        assert errors[0].message == "SELECT statement missing FROM clause"
        assert errors[0].severity == "critical"

    def test_trailing_comma(self) -> None:
        """A comma right before FROM is flagged."""
        errors = validate_syntax('SELECT "VBAK"."VBELN", FROM "VBAK"')
        assert errors[0].message == "Trailing comma before FROM clause"


class TestSecurityChecks:
    """Tests for injection and dangerous operation detection."""

    def test_clean_query(self) -> None:
        """A plain SELECT passes."""
        assert validate_security(VALID_SQL) == []

    def test_stacked_statement(self) -> None:
        """A second destructive statement is caught twice."""
        errors = validate_security('SELECT * FROM "VBAK"; DROP TABLE "VBAK"')
        messages = [e.message for e in errors]
        assert "Potential SQL injection: Multiple statements detected" in messages
        assert "Dangerous operation 'DROP' detected" in messages
        assert all(e.severity == "critical" for e in errors)

    def test_union_and_comments(self) -> None:
        """UNION SELECT and comments are injection vectors."""
        errors = validate_security('SELECT * FROM "VBAK" UNION SELECT * FROM "KNA1" -- x')
        assert len(errors) == 2


class TestPerformanceChecks:
    """Tests for performance validation."""

    def test_too_many_joins(self) -> None:
        """Exceeding the join limit is a high severity error."""
        sql = (
            'SELECT * FROM "VBAP" JOIN "VBAK" ON "VBAP"."VBELN" = "VBAK"."VBELN" '
            'JOIN "KNA1" ON "VBAK"."KUNNR" = "KNA1"."KUNNR" WHERE "VBAK"."VKORG" = \'1000\' LIMIT 5'
        )
        errors, _ = validate_performance(sql, max_joins=1)
        assert len(errors) == 1
        assert errors[0].severity == "high"
        assert errors[0].message == "Too many joins (2). Maximum allowed: 1"

    def test_unbounded_select_star(self) -> None:
        """Missing LIMIT and SELECT * are warnings, not errors."""
        errors, warnings = validate_performance('SELECT * FROM "VBAK"', max_joins=5)
        assert errors == []
        assert len(warnings) == 2


# =============================================================================
# Combined Validation Tests
# =============================================================================


class TestQueryValidation:
    """Tests for the combined validation result."""

    def test_valid_query(self, validator: QueryValidation) -> None:
        """A query over related, known tables is executable."""
        result = validator.check(VALID_SQL, _context(["VBAK", "KNA1"], [CUSTOMER_RELATIONSHIP]))
        assert result.is_valid is True
        assert result.errors == []
        # Client filtering is only ever a warning
        assert result.has_warnings is True
        assert result.performance_score == 100
        assert result.security_score == 100

    def test_unknown_column(self, validator: QueryValidation) -> None:
        """A column outside the table's metadata is critical."""
        result = validator.check('SELECT "VBAK"."FOO" FROM "VBAK" LIMIT 5', _context(["VBAK"]))
        assert result.is_valid is False
        assert result.blocking_errors[0].message == "Column 'FOO' does not exist in table 'VBAK'"

    def test_unknown_table(self, validator: QueryValidation) -> None:
        """A table outside the context is critical."""
        result = validator.check('SELECT * FROM "BSEG" LIMIT 5', _context(["VBAK"]))
        assert result.is_valid is False
        assert any(e.message == "Table 'BSEG' does not exist" for e in result.errors)

    def test_unrelated_tables_do_not_block(self, validator: QueryValidation) -> None:
        """A missing relationship is a medium error and does not block execution."""
        sql = (
            'SELECT "MARA"."MATNR" FROM "MARA" JOIN "KNA1" ON "MARA"."MATNR" = "KNA1"."KUNNR" '
            "WHERE \"MARA\".\"MTART\" = 'FERT' LIMIT 5"
        )
        result = validator.check(sql, _context(["MARA", "KNA1"]))
        assert result.is_valid is True
        assert [e.severity for e in result.errors] == ["medium"]
        assert result.errors[0].type == "business_rule"

    def test_destructive_statement(self, validator: QueryValidation) -> None:
        """DELETE fails syntax and security and lowers the security score."""
        result = validator.check('DELETE FROM "VBAK"', _context(["VBAK"]))
        assert result.is_valid is False
        assert result.security_score == 75

    def test_performance_score(self, validator: QueryValidation) -> None:
        """Unbounded SELECT * costs two warnings plus the LIMIT and star penalties."""
        result = validator.check('SELECT * FROM "VBAK"', _context(["VBAK"]))
        assert result.performance_score == 55
        assert "Add LIMIT clause to control result set size" in result.suggestions

    async def test_validate_query_with_context(self, validator: QueryValidation) -> None:
        """With an explicit context no database access is needed."""
        result = await validator.validate_query(VALID_SQL, _context(["VBAK", "KNA1"], [CUSTOMER_RELATIONSHIP]))
        assert result.is_valid is True
        assert result.to_dict()["errors"] == []
