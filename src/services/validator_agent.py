"""
Validator agent: cross-check generated SQL against the ground truth graph.

The SQL is not parsed by a grammar. A handful of regular expressions pull
out the tables, join conditions, select list and WHERE conditions of the
uppercased, whitespace-collapsed statement, and the result is compared
with the ground truth tables and joins plus a few SAP business rules.

Confidence is a linear penalty: 1 - 0.3 per error - 0.1 per warning.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import get_logger
from src.services.ground_truth import GroundTruthBuilder
from src.services.sql_utils import normalize_sql, penalty_confidence

logger = get_logger(__name__)

# =============================================================================
# Patterns
# =============================================================================

_FROM_TABLE = re.compile(r'\bFROM\s+"?(\w+)"?')
_JOIN_TABLE = re.compile(r'(?:\b(?:INNER|LEFT|RIGHT|FULL)\s+(?:OUTER\s+)?)?\bJOIN\s+"?(\w+)"?')
_JOIN_CONDITION = re.compile(
    r'(?:\b(INNER|LEFT|RIGHT|FULL)\s+(?:OUTER\s+)?)?\bJOIN\s+"?(\w+)"?(?:\s+(?:AS\s+)?\w+)?'
    r'\s+ON\s+"?(\w+)"?\."?(\w+)"?\s*=\s*"?(\w+)"?\."?(\w+)"?'
)
_SELECT_LIST = re.compile(r"\bSELECT\s+(.*?)\s+FROM\b")
_WHERE_CLAUSE = re.compile(r"\bWHERE\s+(.*?)(?:\s+ORDER\s+BY|\s+GROUP\s+BY|\s+LIMIT\b|\s*$)")
_ALIAS = re.compile(r"\s+AS\s+\w+")
_AGGREGATION = re.compile(r"\b(COUNT|SUM|AVG|MAX|MIN|GROUP BY)\b")
_SUBQUERY = re.compile(r"\bSELECT\b.*\bSELECT\b")

LARGE_TABLES = ("VBAP", "BSEG", "KONV")
MAX_TABLES = 5


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class QueryJoin:
    left_table: str
    left_column: str
    right_table: str
    right_column: str
    join_type: str = "INNER"

    @property
    def key(self) -> str:
        return f"{self.left_table}.{self.left_column} = {self.right_table}.{self.right_column}"


@dataclass
class QueryAnalysis:
    """Structure pulled out of a SQL statement."""

    tables: list[str] = field(default_factory=list)
    joins: list[QueryJoin] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)
    where_conditions: list[str] = field(default_factory=list)
    has_aggregation: bool = False
    has_subqueries: bool = False
    has_aliases: bool = False


@dataclass
class JoinValidation:
    valid_joins: list[str] = field(default_factory=list)
    invalid_joins: list[str] = field(default_factory=list)
    missing_joins: list[str] = field(default_factory=list)


@dataclass
class TableValidation:
    valid_tables: list[str] = field(default_factory=list)
    invalid_tables: list[str] = field(default_factory=list)
    unused_tables: list[str] = field(default_factory=list)


@dataclass
class BusinessLogicValidation:
    is_business_logic_valid: bool = True
    business_rule_violations: list[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    is_valid: bool
    confidence: float
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    join_validation: JoinValidation = field(default_factory=JoinValidation)
    table_validation: TableValidation = field(default_factory=TableValidation)
    business_logic_validation: BusinessLogicValidation = field(default_factory=BusinessLogicValidation)

    @classmethod
    def failed(cls, reason: str) -> "ValidationResult":
        return cls(
            is_valid=False,
            confidence=0.0,
            errors=[f"Validation failed: {reason}"],
            suggestions=["Please check SQL syntax and try again"],
            business_logic_validation=BusinessLogicValidation(
                is_business_logic_valid=False,
                business_rule_violations=["Validation process failed"],
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "confidence": self.confidence,
            "errors": self.errors,
            "warnings": self.warnings,
            "suggestions": self.suggestions,
            "join_validation": {
                "valid_joins": self.join_validation.valid_joins,
                "invalid_joins": self.join_validation.invalid_joins,
                "missing_joins": self.join_validation.missing_joins,
            },
            "table_validation": {
                "valid_tables": self.table_validation.valid_tables,
                "invalid_tables": self.table_validation.invalid_tables,
                "unused_tables": self.table_validation.unused_tables,
            },
            "business_logic_validation": {
                "is_business_logic_valid": self.business_logic_validation.is_business_logic_valid,
                "business_rule_violations": self.business_logic_validation.business_rule_violations,
            },
        }


# =============================================================================
# SQL Parsing
# =============================================================================


def extract_tables(sql: str) -> list[str]:
    """FROM table plus every JOIN table, deduplicated in order."""
    tables = []
    match = _FROM_TABLE.search(sql)
    if match:
        tables.append(match.group(1))
    tables.extend(m.group(1) for m in _JOIN_TABLE.finditer(sql))
    return list(dict.fromkeys(tables))


def extract_joins(sql: str) -> list[QueryJoin]:
    return [
        QueryJoin(
            left_table=m.group(3),
            left_column=m.group(4),
            right_table=m.group(5),
            right_column=m.group(6),
            join_type=(m.group(1) or "INNER").strip(),
        )
        for m in _JOIN_CONDITION.finditer(sql)
    ]


def _select_items(sql: str) -> list[str]:
    match = _SELECT_LIST.search(sql)
    if not match:
        return []
    return [item.strip() for item in match.group(1).split(",")]


def extract_columns(sql: str) -> list[str]:
    """Select-list items without quotes and aliases."""
    return [_ALIAS.sub("", item.replace('"', "")).strip() for item in _select_items(sql)]


def extract_where_conditions(sql: str) -> list[str]:
    match = _WHERE_CLAUSE.search(sql)
    if not match:
        return []
    return [c.strip() for c in re.split(r"\s+AND\s+|\s+OR\s+", match.group(1)) if c.strip()]


def parse_sql(sql: str) -> QueryAnalysis:
    normalized = normalize_sql(sql)
    return QueryAnalysis(
        tables=extract_tables(normalized),
        joins=extract_joins(normalized),
        columns=extract_columns(normalized),
        where_conditions=extract_where_conditions(normalized),
        has_aggregation=_AGGREGATION.search(normalized) is not None,
        has_subqueries=_SUBQUERY.search(normalized) is not None,
        has_aliases=any(" AS " in item for item in _select_items(normalized)),
    )


# =============================================================================
# Checks
# =============================================================================


def _table_of(qualified: str) -> str:
    return qualified.split(".")[0]


def validate_joins(analysis: QueryAnalysis, ground_truth: dict[str, Any]) -> JoinValidation:
    result = JoinValidation()
    gt_joins = ground_truth.get("joins", [])

    for join in analysis.joins:
        left = f"{join.left_table}.{join.left_column}"
        right = f"{join.right_table}.{join.right_column}"
        known = any(
            (gt["left"] == left and gt["right"] == right)
            or (gt["left"] == right and gt["right"] == left)
            for gt in gt_joins
        )
        (result.valid_joins if known else result.invalid_joins).append(join.key)

    if len(analysis.tables) > 1:
        for gt in gt_joins:
            left_table, right_table = _table_of(gt["left"]), _table_of(gt["right"])
            if left_table not in analysis.tables or right_table not in analysis.tables:
                continue
            joined = any(
                {j.left_table, j.right_table} == {left_table, right_table}
                for j in analysis.joins
            )
            if not joined:
                result.missing_joins.append(f"{gt['left']} = {gt['right']}")

    return result


def validate_tables(analysis: QueryAnalysis, ground_truth: dict[str, Any]) -> TableValidation:
    result = TableValidation()
    gt_tables = ground_truth.get("tables", {})

    for table in analysis.tables:
        (result.valid_tables if table in gt_tables else result.invalid_tables).append(table)

    for table in gt_tables:
        if table in analysis.tables:
            continue
        adjacent = any(
            (_table_of(j["left"]) in analysis.tables and _table_of(j["right"]) == table)
            or (_table_of(j["right"]) in analysis.tables and _table_of(j["left"]) == table)
            for j in ground_truth.get("joins", [])
        )
        if adjacent:
            result.unused_tables.append(table)

    return result


def validate_business_logic(analysis: QueryAnalysis) -> BusinessLogicValidation:
    result = BusinessLogicValidation()
    tables = analysis.tables

    if "VBAK" in tables and "MARA" in tables and "VBAP" not in tables:
        result.business_rule_violations.append(
            "VBAP table should be included as bridge between VBAK and MARA"
        )
        result.is_business_logic_valid = False

    if "VBAK" in tables and "KNA1" not in tables:
        result.business_rule_violations.append(
            "Consider including KNA1 for customer information with sales orders"
        )

    if "MARA" in tables and "MARC" not in tables and any("WERKS" in c for c in analysis.columns):
        result.business_rule_violations.append(
            "Consider including MARC table for plant-specific material data"
        )

    return result


def validate_sap_best_practices(analysis: QueryAnalysis) -> tuple[list[str], list[str]]:
    warnings: list[str] = []
    suggestions: list[str] = []

    if len(analysis.tables) > MAX_TABLES:
        warnings.append("Query involves many tables, consider performance impact")
        suggestions.append("Consider breaking down into smaller queries or using views")

    if any(t in LARGE_TABLES for t in analysis.tables) and not analysis.where_conditions:
        warnings.append("Large tables used without WHERE conditions may impact performance")
        suggestions.append("Add appropriate WHERE conditions to limit result set")

    if not analysis.has_aliases:
        suggestions.append("Consider using meaningful column aliases for better readability")

    return warnings, suggestions


# =============================================================================
# Validator Agent
# =============================================================================


class ValidatorAgent:
    """Validates SQL against the stored ground truth."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def validate_query(
        self,
        sql: str,
        ground_truth: dict[str, Any] | None,
        business_context: str | None = None,
    ) -> ValidationResult:
        if not ground_truth:
            return ValidationResult.failed("No ground truth available")

        try:
            analysis = parse_sql(sql)
            join_validation = validate_joins(analysis, ground_truth)
            table_validation = validate_tables(analysis, ground_truth)
            business = validate_business_logic(analysis)
            sap_warnings, suggestions = validate_sap_best_practices(analysis)
        except Exception as e:
            logger.error("Query validation failed", error=str(e))
            return ValidationResult.failed(str(e))

        errors: list[str] = []
        warnings = list(sap_warnings)

        if join_validation.invalid_joins:
            errors.append(f"Invalid joins detected: {', '.join(join_validation.invalid_joins)}")
        if table_validation.invalid_tables:
            errors.append(f"Invalid tables detected: {', '.join(table_validation.invalid_tables)}")
        if not business.is_business_logic_valid:
            warnings.extend(business.business_rule_violations)
        if join_validation.missing_joins:
            warnings.append(f"Potentially missing joins: {', '.join(join_validation.missing_joins)}")

        result = ValidationResult(
            is_valid=not errors,
            confidence=penalty_confidence(len(errors), len(warnings)),
            errors=errors,
            warnings=warnings,
            suggestions=suggestions,
            join_validation=join_validation,
            table_validation=table_validation,
            business_logic_validation=business,
        )
        logger.debug(
            "Query validated",
            is_valid=result.is_valid,
            confidence=result.confidence,
            has_context=business_context is not None,
        )
        return result

    async def get_ground_truth_for_validation(self) -> dict[str, Any] | None:
        return await GroundTruthBuilder(self.db).get_latest_ground_truth()
