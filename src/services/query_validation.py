"""
Query validation: syntax, schema, security and performance checks.

Unlike the validator agent, which compares a query with the ground truth
graph, this validator checks a statement against the column metadata and
stored relationships of the tables it references. It is the gate in front
of query execution: a statement with any critical or high severity error
is not run.

Scores:
    performance = 100 - 20/perf error - 10/perf warning - 15 (no LIMIT)
                  - 10 (SELECT *) - 5 per join beyond 3
    security    = 100 - 25/security error - 10 (comments present)
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.logging import get_logger
from src.db.models import ColumnMetadata, TableRelationship
from src.services.sap_catalog import SAP_TABLES

logger = get_logger(__name__)

# =============================================================================
# Patterns
# =============================================================================

_TABLE_REF = re.compile(r'\b(?:FROM|JOIN)\s+"?(\w+)"?', re.IGNORECASE)
_QUALIFIED_COLUMN = re.compile(r'"?\b(\w+)"?\."?(\w+)\b"?')
_JOIN_ON = re.compile(
    r"\bJOIN\s+\S+(?:\s+\w+)?\s+ON\s+(.+?)(?=\s+(?:INNER\s+|LEFT\s+|RIGHT\s+|FULL\s+)?JOIN\b|\s+WHERE\b|\s+GROUP\s+BY\b|\s+ORDER\s+BY\b|\s+LIMIT\b|;|$)",
    re.IGNORECASE | re.DOTALL,
)
_JOIN_KEYWORD = re.compile(r"\bJOIN\b", re.IGNORECASE)
_SELECT_LIST = re.compile(r"\bSELECT\s+(.+?)\s+FROM\b", re.IGNORECASE | re.DOTALL)
_WHERE_COLUMNS = re.compile(
    r"\bWHERE\s+(.+?)(?:\s+GROUP\s+BY|\s+ORDER\s+BY|\s+LIMIT|$)", re.IGNORECASE | re.DOTALL
)
_TABLE_ALIAS = re.compile(
    r'\b(?:FROM|JOIN)\s+"?\w+"?\s+(?:AS\s+)?(?!(?:WHERE|JOIN|INNER|LEFT|RIGHT|FULL|CROSS|ON|GROUP|ORDER|LIMIT)\b)\w+',
    re.IGNORECASE,
)

TRAILING_COMMAS = [
    (re.compile(r",\s*FROM\b", re.IGNORECASE), "Trailing comma before FROM clause"),
    (re.compile(r",\s*WHERE\b", re.IGNORECASE), "Trailing comma before WHERE clause"),
    (re.compile(r",\s*GROUP\s+BY\b", re.IGNORECASE), "Trailing comma before GROUP BY clause"),
    (re.compile(r",\s*ORDER\s+BY\b", re.IGNORECASE), "Trailing comma before ORDER BY clause"),
]

INJECTION_PATTERNS = [
    (
        re.compile(r";\s*(DROP|DELETE|UPDATE|INSERT|ALTER|CREATE)\b", re.IGNORECASE),
        "Potential SQL injection: Multiple statements detected",
    ),
    (re.compile(r"\bUNION\s+(ALL\s+)?SELECT\b", re.IGNORECASE), "Potential SQL injection: UNION SELECT detected"),
    (re.compile(r"--"), "SQL comments detected - potential injection vector"),
    (re.compile(r"/\*"), "SQL block comments detected - potential injection vector"),
]

DANGEROUS_OPERATIONS = ("DROP", "DELETE", "UPDATE", "INSERT", "ALTER", "CREATE", "TRUNCATE")

BLOCKING_SEVERITIES = ("critical", "high")


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ValidationIssue:
    """An error found in a query."""

    type: str  # syntax, schema, security, performance, business_rule
    message: str
    severity: str  # critical, high, medium, low
    location: str | None = None
    suggestion: str | None = None


@dataclass
class ValidationWarning:
    type: str  # performance, best_practice, data_quality
    message: str
    suggestion: str


@dataclass
class ContextColumn:
    table: str
    column: str
    type: str = ""
    nullable: bool = True
    primary_key: bool = False
    foreign_key: bool = False


@dataclass
class ContextRelationship:
    left_table: str
    left_column: str
    right_table: str
    right_column: str
    join_type: str = "inner"


@dataclass
class QueryContext:
    """Known tables, columns and relationships to validate against."""

    tables: list[str] = field(default_factory=list)
    columns: list[ContextColumn] = field(default_factory=list)
    relationships: list[ContextRelationship] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueryContext":
        return cls(
            tables=[t.upper() for t in data.get("tables", [])],
            columns=[ContextColumn(**c) for c in data.get("columns", [])],
            relationships=[ContextRelationship(**r) for r in data.get("relationships", [])],
        )

    def columns_of(self, table: str) -> list[str]:
        return [c.column.upper() for c in self.columns if c.table.upper() == table]


@dataclass
class QueryValidationResult:
    is_valid: bool
    has_warnings: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    performance_score: int = 100
    security_score: int = 100

    @property
    def blocking_errors(self) -> list[ValidationIssue]:
        return [e for e in self.errors if e.severity in BLOCKING_SEVERITIES]

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "has_warnings": self.has_warnings,
            "errors": [asdict(e) for e in self.errors],
            "warnings": [asdict(w) for w in self.warnings],
            "suggestions": self.suggestions,
            "performance_score": self.performance_score,
            "security_score": self.security_score,
        }


# =============================================================================
# SQL Helpers
# =============================================================================


def extract_tables(sql: str) -> list[str]:
    return list(dict.fromkeys(m.group(1).upper() for m in _TABLE_REF.finditer(sql)))


def extract_qualified_columns(sql: str) -> list[tuple[str, str]]:
    return [(m.group(1).upper(), m.group(2).upper()) for m in _QUALIFIED_COLUMN.finditer(sql)]


def count_joins(sql: str) -> int:
    return len(_JOIN_KEYWORD.findall(sql))


def extract_where_columns(sql: str) -> list[str]:
    match = _WHERE_COLUMNS.search(sql)
    if not match:
        return []
    columns = re.findall(r'\b(\w+)"?\s*[=<>!]', match.group(1))
    return list(dict.fromkeys(columns))


def has_table_aliases(sql: str) -> bool:
    return _TABLE_ALIAS.search(sql) is not None


def has_unqualified_columns(sql: str) -> bool:
    """True when a select-list item names a bare column (no ``table.`` prefix)."""
    match = _SELECT_LIST.search(sql)
    if not match:
        return False
    for item in match.group(1).split(","):
        expression = re.split(r"\s+AS\s+", item.strip(), flags=re.IGNORECASE)[0].strip()
        if expression == "*" or expression.endswith(".*"):
            continue
        if re.fullmatch(r'"?\w+"?', expression) and not re.fullmatch(r"\d+", expression):
            return True
    return False


# =============================================================================
# Checks
# =============================================================================


def validate_syntax(sql: str) -> list[ValidationIssue]:
    errors = []
    upper = sql.upper().strip()

    if not upper.startswith("SELECT"):
        errors.append(ValidationIssue(
            "syntax", "Query must start with SELECT statement", "critical",
            suggestion="Ensure your query begins with SELECT",
        ))

    if sql.count("(") != sql.count(")"):
        errors.append(ValidationIssue(
            "syntax", "Unbalanced parentheses in query", "high",
            suggestion="Check that all opening parentheses have corresponding closing parentheses",
        ))

    if "SELECT" in upper and not re.search(r"\bFROM\b", upper):
        errors.append(ValidationIssue(
            "syntax", "SELECT statement missing FROM clause", "critical",
            suggestion="Add a FROM clause to specify the source table(s)",
        ))

    for pattern, message in TRAILING_COMMAS:
        if pattern.search(sql):
            errors.append(ValidationIssue(
                "syntax", message, "high", suggestion="Remove the trailing comma",
            ))

    return errors


def validate_schema(sql: str, context: QueryContext) -> list[ValidationIssue]:
    errors = []
    known_tables = {t.upper() for t in context.tables}

    for table in extract_tables(sql):
        if table not in known_tables:
            errors.append(ValidationIssue(
                "schema", f"Table '{table}' does not exist", "critical",
                location=f"Table: {table}",
                suggestion=f"Available tables: {', '.join(context.tables)}",
            ))

    for table, column in extract_qualified_columns(sql):
        table_columns = context.columns_of(table)
        if table_columns and column not in table_columns:
            errors.append(ValidationIssue(
                "schema", f"Column '{column}' does not exist in table '{table}'", "critical",
                location=f"{table}.{column}",
                suggestion=f"Available columns in {table}: {', '.join(table_columns)}",
            ))

    for match in _JOIN_ON.finditer(sql):
        condition = match.group(1).strip()
        if "=" not in condition:
            errors.append(ValidationIssue(
                "schema", "JOIN condition should include equality comparison", "medium",
                location=f"JOIN condition: {condition}",
                suggestion="Use proper JOIN conditions like table1.id = table2.foreign_id",
            ))

    return errors


def validate_security(sql: str) -> list[ValidationIssue]:
    errors = []

    for pattern, message in INJECTION_PATTERNS:
        if pattern.search(sql):
            errors.append(ValidationIssue(
                "security", message, "critical",
                suggestion="Use parameterized queries and validate input",
            ))

    for operation in DANGEROUS_OPERATIONS:
        if re.search(rf"\b{operation}\b", sql, re.IGNORECASE):
            errors.append(ValidationIssue(
                "security", f"Dangerous operation '{operation}' detected", "critical",
                suggestion="Only SELECT operations are allowed",
            ))

    return errors


def validate_performance(sql: str, max_joins: int) -> tuple[list[ValidationIssue], list[ValidationWarning]]:
    errors: list[ValidationIssue] = []
    warnings: list[ValidationWarning] = []
    upper = sql.upper()
    joins = count_joins(sql)

    if "LIMIT" not in upper and "TOP" not in upper:
        warnings.append(ValidationWarning(
            "performance",
            "Query without LIMIT clause may return large result sets",
            "Add LIMIT clause to control result set size",
        ))

    if "SELECT *" in upper:
        warnings.append(ValidationWarning(
            "performance",
            "SELECT * may retrieve unnecessary columns",
            "Specify only the columns you need",
        ))

    if joins > max_joins:
        errors.append(ValidationIssue(
            "performance", f"Too many joins ({joins}). Maximum allowed: {max_joins}", "high",
            suggestion="Consider breaking the query into smaller parts or using views",
        ))

    if joins > 0 and "WHERE" not in upper:
        warnings.append(ValidationWarning(
            "performance",
            "Joins without WHERE clause may produce cartesian products",
            "Add appropriate WHERE conditions to filter results",
        ))

    if re.search(r"\bWHERE\b.*\w+\s*\(", sql, re.IGNORECASE | re.DOTALL):
        warnings.append(ValidationWarning(
            "performance",
            "Functions in WHERE clause may prevent index usage",
            "Consider restructuring conditions to avoid functions on columns",
        ))

    return errors, warnings


def validate_business_rules(
    sql: str, context: QueryContext
) -> tuple[list[ValidationIssue], list[ValidationWarning]]:
    errors: list[ValidationIssue] = []
    warnings: list[ValidationWarning] = []
    upper = sql.upper()

    if any(t in SAP_TABLES for t in context.tables) and "MANDT" not in upper:
        warnings.append(ValidationWarning(
            "best_practice",
            "SAP tables should include client (MANDT) filtering",
            "Add WHERE MANDT = '800' or appropriate client code",
        ))

    if "DATE" in upper and "WHERE" not in upper:
        warnings.append(ValidationWarning(
            "best_practice",
            "Date columns should typically include range filtering",
            "Add date range conditions to improve performance",
        ))

    tables = extract_tables(sql)
    for i, table1 in enumerate(tables):
        for table2 in tables[i + 1:]:
            related = any(
                {r.left_table.upper(), r.right_table.upper()} == {table1, table2}
                for r in context.relationships
            )
            if not related:
                errors.append(ValidationIssue(
                    "business_rule",
                    f"No established relationship found between {table1} and {table2}",
                    "medium",
                    suggestion="Verify that the join condition is correct and necessary",
                ))

    return errors, warnings


def validate_best_practices(sql: str) -> list[ValidationWarning]:
    warnings = []
    upper = sql.upper()
    joins = count_joins(sql)

    if joins > 1 and not has_table_aliases(sql):
        warnings.append(ValidationWarning(
            "best_practice",
            "Consider using table aliases for better readability",
            'Use aliases like "SELECT c.name FROM customers c JOIN orders o ON c.id = o.customer_id"',
        ))

    if joins > 0 and has_unqualified_columns(sql):
        warnings.append(ValidationWarning(
            "best_practice",
            "Some columns may not be properly qualified with table names",
            "Prefix columns with table names or aliases to avoid ambiguity",
        ))

    if "ORDER BY" in upper and "LIMIT" not in upper:
        warnings.append(ValidationWarning(
            "best_practice",
            "ORDER BY without LIMIT may sort unnecessary rows",
            "Add LIMIT clause when using ORDER BY",
        ))

    return warnings


def generate_suggestions(sql: str) -> list[str]:
    suggestions = []
    upper = sql.upper()

    if "LIMIT" not in upper:
        suggestions.append("Add LIMIT clause to control result set size")
    if "SELECT *" in upper:
        suggestions.append("Specify only the columns you need instead of SELECT *")

    where_columns = extract_where_columns(sql)
    if where_columns:
        suggestions.append(
            f"Consider creating indexes on frequently filtered columns: {', '.join(where_columns)}"
        )

    if count_joins(sql) > 2:
        suggestions.append("Consider using views or materialized views for complex joins")

    return suggestions


def performance_score(sql: str, errors: list[ValidationIssue], warnings: list[ValidationWarning]) -> int:
    upper = sql.upper()
    score = 100
    score -= 20 * sum(1 for e in errors if e.type == "performance")
    score -= 10 * sum(1 for w in warnings if w.type == "performance")
    if "LIMIT" not in upper:
        score -= 15
    if "SELECT *" in upper:
        score -= 10
    joins = count_joins(sql)
    if joins > 3:
        score -= (joins - 3) * 5
    return max(0, score)


def security_score(sql: str, errors: list[ValidationIssue]) -> int:
    score = 100 - 25 * sum(1 for e in errors if e.type == "security")
    if "--" in sql or "/*" in sql:
        score -= 10
    return max(0, score)


# =============================================================================
# Query Validation Service
# =============================================================================


class QueryValidation:
    """
    Validates a SQL statement before execution.

    Args:
        db: Async database session, used to build a context when none is given
        max_joins: Join count above which a query is rejected
    """

    def __init__(self, db: AsyncSession, max_joins: int | None = None):
        self.db = db
        self.max_joins = settings.max_query_joins if max_joins is None else max_joins

    async def validate_query(self, sql: str, context: QueryContext | None = None) -> QueryValidationResult:
        try:
            if context is None:
                context = await self.build_query_context(sql)
            return self.check(sql, context)
        except Exception as e:
            logger.error("Query validation failed", error=str(e))
            return QueryValidationResult(
                is_valid=False,
                has_warnings=False,
                errors=[ValidationIssue("syntax", f"Validation failed: {e}", "critical")],
                performance_score=0,
                security_score=0,
            )

    def check(self, sql: str, context: QueryContext) -> QueryValidationResult:
        """Run every check against an already built context."""
        errors: list[ValidationIssue] = []
        warnings: list[ValidationWarning] = []

        errors.extend(validate_syntax(sql))
        errors.extend(validate_schema(sql, context))
        errors.extend(validate_security(sql))

        perf_errors, perf_warnings = validate_performance(sql, self.max_joins)
        errors.extend(perf_errors)
        warnings.extend(perf_warnings)

        rule_errors, rule_warnings = validate_business_rules(sql, context)
        errors.extend(rule_errors)
        warnings.extend(rule_warnings)

        warnings.extend(validate_best_practices(sql))

        result = QueryValidationResult(
            is_valid=not any(e.severity in BLOCKING_SEVERITIES for e in errors),
            has_warnings=bool(warnings),
            errors=errors,
            warnings=warnings,
            suggestions=generate_suggestions(sql),
            performance_score=performance_score(sql, errors, warnings),
            security_score=security_score(sql, errors),
        )
        logger.debug(
            "Query checked",
            is_valid=result.is_valid,
            errors=len(errors),
            warnings=len(warnings),
        )
        return result

    async def build_query_context(self, sql: str) -> QueryContext:
        """Column metadata and relationships of the tables ``sql`` references."""
        tables = extract_tables(sql)
        context = QueryContext(tables=list(tables))
        if not tables:
            return context

        try:
            result = await self.db.execute(
                select(ColumnMetadata).where(ColumnMetadata.table_name.in_(tables))
            )
            context.columns = [
                ContextColumn(
                    table=row.table_name,
                    column=row.column_name,
                    type=row.data_type,
                    nullable=row.is_nullable,
                    primary_key=row.is_primary_key,
                    foreign_key=row.is_foreign_key,
                )
                for row in result.scalars().all()
            ]

            result = await self.db.execute(
                select(TableRelationship).where(
                    TableRelationship.left_table.in_(tables),
                    TableRelationship.right_table.in_(tables),
                )
            )
            context.relationships = [
                ContextRelationship(
                    left_table=row.left_table,
                    left_column=row.left_column,
                    right_table=row.right_table,
                    right_column=row.right_column,
                    join_type=row.join_type,
                )
                for row in result.scalars().all()
            ]
        except SQLAlchemyError as e:
            logger.warning("Could not load validation context", error=str(e))
            await self.db.rollback()

        # Tables only exist if metadata describes them or they are catalogued SAP tables
        known = {c.table.upper() for c in context.columns} | set(SAP_TABLES)
        context.tables = [t for t in tables if t in known]
        return context
