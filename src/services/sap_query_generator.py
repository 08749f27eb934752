"""
SAP query generator: natural language to SQL over the SAP catalogue.

Flow for one request:
1. Business intent (LLM, falls back to a generic complex_join intent)
2. Relevant tables from prompt keywords, plus the fixed SAP join paths
3. SQL draft (LLM, single schema-validated parse, identifiers quoted);
   any failure produces a deterministic fallback query
4. Basic checks, then the validator agent when a ground truth exists
5. Complexity, status and confidence
6. Optional audit row (deduplicated within a short window)

Execution runs the SQL inside a read-only transaction.
"""

import re
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.logging import get_logger
from src.db.enums import JoinType, QueryComplexity, RelationshipType, ValidationStatus
from src.db.models import GeneratedQuery
from src.services.llm_client import BaseLLMClient, LLMError, LLMMessage, parse_llm_json
from src.services.sap_catalog import SAP_TABLES, SAPTable, sap_identifiers
from src.services.sql_utils import clamp_confidence, quote_identifiers, safe_alias
from src.services.validator_agent import ValidationResult, ValidatorAgent

logger = get_logger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class QueryGenerationError(Exception):
    """Raised when a query cannot be generated at all."""

    pass


class QueryExecutionError(Exception):
    """Raised when the database rejects a query."""

    pass


# =============================================================================
# Prompts and Reply Schemas
# =============================================================================

INTENT_SYSTEM_PROMPT = """You are an SAP business analyst. Analyze the user's request to understand the business intent.

SAP Modules:
- FI: Financial Accounting
- CO: Controlling
- MM: Materials Management
- SD: Sales & Distribution
- HR: Human Resources
- PP: Production Planning
- PM: Plant Maintenance
- QM: Quality Management

Common SAP Business Objects:
- Sales Orders (VBAK/VBAP)
- Materials (MARA)
- Customers (KNA1)
- Vendors (LFA1)
- Purchase Orders (EKKO/EKPO)
- Deliveries (LIKP/LIPS)
- Invoices (VBRK/VBRP)

Return a JSON object with the fields: type (sales_analysis, material_inquiry,
customer_data, financial_report, procurement or complex_join), entities,
businessObjects, operations, filters and sapModules."""

SQL_SYSTEM_PROMPT = """You are an expert SAP consultant and SQL developer. Generate optimized SQL queries for SAP systems.

REQUIREMENTS:
1. Use EXACT table names as provided (case-sensitive): {table_names}
2. Use EXACT column names as provided - all column names are UPPERCASE
3. Double-quote every table and column name, e.g. "VBAK"."VBELN"
4. Use column aliases with descriptive business names joined by underscores
5. Use {join_type} JOINs unless business logic requires otherwise
6. Include appropriate WHERE clauses for filtering
7. Return only valid PostgreSQL SQL

Available SAP Tables:
{tables}

Available Relationships:
{relationships}
{business_context}"""

SQL_USER_PROMPT = """Business Requirement: {prompt}

Return ONLY a JSON object, without markdown or any text around it:
{{
  "sql": "SELECT ... FROM ... WHERE ...",
  "confidence": 0.95,
  "explanation": "Technical explanation of the query structure and joins",
  "businessLogic": "Business logic explanation"
}}"""


class SAPIntent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: str
    entities: list[str] = Field(default_factory=list)
    business_objects: list[str] = Field(default_factory=list, alias="businessObjects")
    operations: list[str] = Field(default_factory=list)
    filters: list[str] = Field(default_factory=list)
    sap_modules: list[str] = Field(default_factory=list, alias="sapModules")


FALLBACK_INTENT = SAPIntent(
    type="complex_join",
    operations=["select"],
    sap_modules=["SD", "MM"],
)


class SAPSQLReply(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sql: str = Field(min_length=1)
    confidence: float = 0.5
    explanation: str = "SQL query generated"
    business_logic: str = Field(default="Business logic explanation", alias="businessLogic")


# (left table, left column, right table, right column, business rule)
SAP_RELATIONSHIPS: list[tuple[str, str, str, str, str]] = [
    ("VBAK", "VBELN", "VBAP", "VBELN", "Sales document header to items relationship"),
    ("VBAP", "MATNR", "MARA", "MATNR", "Sales item to material master relationship"),
    ("VBAK", "KUNNR", "KNA1", "KUNNR", "Sales document to customer relationship"),
]

# (prompt keywords, tables)
TABLE_KEYWORDS: list[tuple[tuple[str, ...], tuple[str, ...]]] = [
    (("sales", "order"), ("VBAK", "VBAP")),
    (("material", "product"), ("MARA",)),
    (("customer",), ("KNA1",)),
]

NO_TABLES_SQL = "SELECT 'No relevant tables found' AS message;"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class SAPQueryRequest:
    prompt: str
    max_tables: int = field(default_factory=lambda: settings.default_max_tables)
    include_explanation: bool = True
    preferred_join_type: str | None = None
    business_context: str | None = None
    auto_save: bool = True


@dataclass
class SAPRelationship:
    left_table: str
    left_column: str
    right_table: str
    right_column: str
    relationship_type: str
    join_type: str
    confidence: float
    business_rule: str


@dataclass
class SAPContext:
    tables: list[SAPTable] = field(default_factory=list)
    relationships: list[SAPRelationship] = field(default_factory=list)

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]


@dataclass
class SQLDraft:
    sql: str
    confidence: float
    explanation: str
    business_logic: str


@dataclass
class SAPQueryResult:
    sql: str
    confidence: float
    explanation: str
    business_logic: str
    tables_used: list[str]
    join_types: list[str]
    complexity: str
    sap_modules: list[str]
    validation_status: str
    validation_errors: list[str] | None = None
    validation_result: ValidationResult | None = None
    execution_time: float | None = None
    result_count: int | None = None
    query_id: str | None = None

    @property
    def is_invalid(self) -> bool:
        return self.validation_status == ValidationStatus.INVALID.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "sql": self.sql,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "business_logic": self.business_logic,
            "tables_used": self.tables_used,
            "join_types": self.join_types,
            "complexity": self.complexity,
            "sap_modules": self.sap_modules,
            "validation_status": self.validation_status,
            "validation_errors": self.validation_errors,
            "validation_result": self.validation_result.to_dict() if self.validation_result else None,
            "execution_time": self.execution_time,
            "result_count": self.result_count,
            "query_id": self.query_id,
        }


# =============================================================================
# Pure Helpers
# =============================================================================


def find_relevant_context(prompt: str, max_tables: int) -> SAPContext:
    """Tables picked by prompt keywords, capped at ``max_tables``, with their join paths."""
    lowered = prompt.lower()
    names: list[str] = []
    for keywords, tables in TABLE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            names.extend(t for t in tables if t not in names)
    names = names[:max_tables]

    relationships = [
        SAPRelationship(
            left_table=left,
            left_column=left_col,
            right_table=right,
            right_column=right_col,
            relationship_type=RelationshipType.FOREIGN_KEY.value,
            join_type=JoinType.INNER.sql,
            confidence=1.0,
            business_rule=rule,
        )
        for left, left_col, right, right_col, rule in SAP_RELATIONSHIPS
        if left in names and right in names
    ]
    return SAPContext(tables=[SAP_TABLES[name] for name in names], relationships=relationships)


def generate_fallback_query(context: SAPContext) -> SQLDraft:
    """Deterministic query over the context; never raises."""
    if not context.tables:
        return SQLDraft(
            sql=NO_TABLES_SQL,
            confidence=0.1,
            explanation="No relevant SAP tables could be identified for this query.",
            business_logic="Unable to determine business context.",
        )

    columns = [
        f'    "{table.name}".{col.name} AS {safe_alias(col.description)}'
        for table in context.tables
        for col in table.columns[:3]
    ]
    lines = ["SELECT", ",\n".join(columns), f'FROM "{context.tables[0].name}"']
    lines.extend(
        f'{rel.join_type} JOIN "{rel.right_table}" '
        f'ON "{rel.left_table}".{rel.left_column} = "{rel.right_table}".{rel.right_column}'
        for rel in context.relationships
    )

    return SQLDraft(
        sql=quote_identifiers("\n".join(lines), sap_identifiers(context.table_names)),
        confidence=0.6,
        explanation="Generated fallback query with basic table joins.",
        business_logic="Basic multi-table query to retrieve related SAP data.",
    )


def basic_check(sql: str, context: SAPContext) -> tuple[bool, bool, list[str]]:
    """SELECT-only check and table references; returns (is_valid, has_warnings, messages)."""
    errors: list[str] = []
    has_warnings = False

    if not sql.strip().upper().startswith("SELECT"):
        errors.append("Query must start with SELECT")

    upper = sql.upper()
    for table in context.tables:
        if table.name not in upper:
            has_warnings = True
            errors.append(f"Warning: Table {table.name} not referenced in query")

    is_valid = not [e for e in errors if not e.startswith("Warning:")]
    return is_valid, has_warnings, errors


def calculate_complexity(sql: str, table_count: int) -> str:
    upper = sql.upper()
    score = 0
    if "JOIN" in upper:
        score += 1
    if len(re.findall(r"JOIN", upper)) > 2:
        score += 2
    if "WHERE" in upper:
        score += 1
    if "GROUP BY" in upper:
        score += 2
    if "HAVING" in upper:
        score += 2
    if "ORDER BY" in upper:
        score += 1
    if table_count > 3:
        score += 2

    if score <= 2:
        return QueryComplexity.SIMPLE.value
    if score <= 5:
        return QueryComplexity.MEDIUM.value
    return QueryComplexity.COMPLEX.value


def determine_sap_modules(tables: list[SAPTable]) -> list[str]:
    return list(dict.fromkeys(t.module for t in tables))


def resolve_status(
    validation: ValidationResult | None,
    basic_valid: bool,
    basic_warnings: bool,
) -> str:
    """valid > warning > invalid; without a ground truth only the basic check counts."""
    validator_valid = validation is None or validation.is_valid
    if validator_valid and basic_valid:
        return ValidationStatus.VALID.value
    if (validation is not None and validation.warnings) or basic_warnings:
        return ValidationStatus.WARNING.value
    return ValidationStatus.INVALID.value


def json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


# =============================================================================
# SAP Query Generator
# =============================================================================


class SAPQueryGenerator:
    """
    Natural language to SQL over the SAP catalogue.

    Args:
        db: Async database session
        llm_client: LLM client (must be entered as async context manager).
            Only generation needs it; execution and history run without one.
    """

    def __init__(self, db: AsyncSession, llm_client: BaseLLMClient | None = None):
        self.db = db
        self.llm = llm_client
        self.validator = ValidatorAgent(db)

    async def generate_sap_query(self, request: SAPQueryRequest) -> SAPQueryResult:
        if self.llm is None:
            raise QueryGenerationError("SAP query generation requires an LLM client")
        try:
            return await self._generate(request)
        except QueryGenerationError:
            raise
        except Exception as e:
            logger.error("SAP query generation failed", prompt=request.prompt[:100], error=str(e))
            raise QueryGenerationError(f"Failed to generate SAP query: {e}") from e

    async def _generate(self, request: SAPQueryRequest) -> SAPQueryResult:
        intent = await self.analyze_business_intent(request.prompt)
        context = find_relevant_context(request.prompt, request.max_tables)
        draft = await self.generate_sql(request, context)

        basic_valid, basic_warnings, basic_errors = basic_check(draft.sql, context)

        validation: ValidationResult | None = None
        ground_truth = await self.validator.get_ground_truth_for_validation()
        if ground_truth:
            validation = self.validator.validate_query(draft.sql, ground_truth, request.business_context)

        validator_confidence = validation.confidence if validation is not None else 1.0
        all_errors = basic_errors + (validation.errors if validation else [])

        result = SAPQueryResult(
            sql=draft.sql,
            confidence=clamp_confidence(min(draft.confidence, validator_confidence)),
            explanation=draft.explanation if request.include_explanation else "",
            business_logic=draft.business_logic,
            tables_used=context.table_names,
            join_types=[rel.join_type for rel in context.relationships],
            complexity=calculate_complexity(draft.sql, len(context.tables)),
            sap_modules=determine_sap_modules(context.tables),
            validation_status=resolve_status(validation, basic_valid, basic_warnings),
            validation_errors=all_errors or None,
            validation_result=validation,
        )

        if request.auto_save:
            result.query_id = await self.save_generated_query(request.prompt, result)

        logger.info(
            "SAP query generated",
            intent=intent.type,
            tables=result.tables_used,
            status=result.validation_status,
            confidence=round(result.confidence, 3),
        )
        return result

    async def analyze_business_intent(self, prompt: str) -> SAPIntent:
        try:
            response = await self.llm.complete(
                [
                    LLMMessage(role="system", content=INTENT_SYSTEM_PROMPT),
                    LLMMessage(role="user", content=f'Analyze this SAP query request: "{prompt}"'),
                ],
                temperature=0.1,
            )
            return parse_llm_json(response.content, SAPIntent)
        except LLMError as e:
            logger.warning("Business intent fell back to default", error=str(e))
            return FALLBACK_INTENT.model_copy(deep=True)

    async def generate_sql(self, request: SAPQueryRequest, context: SAPContext) -> SQLDraft:
        tables_text = "\n".join(
            f"{t.name} ({t.module} Module) - {t.description}\n"
            f"Business Purpose: {t.business_purpose}\n"
            f"Columns: {', '.join(f'{c.name} ({c.type}) - {c.description}' for c in t.columns)}"
            for t in context.tables
        )
        relationships_text = "\n".join(
            f"{r.left_table}.{r.left_column} = {r.right_table}.{r.right_column} "
            f"({r.join_type} JOIN) - {r.business_rule}"
            for r in context.relationships
        )
        system = SQL_SYSTEM_PROMPT.format(
            table_names=", ".join(context.table_names),
            join_type=JoinType.from_string(request.preferred_join_type).sql,
            tables=tables_text,
            relationships=relationships_text,
            business_context=f"\n{request.business_context}" if request.business_context else "",
        )

        try:
            response = await self.llm.complete(
                [
                    LLMMessage(role="system", content=system),
                    LLMMessage(role="user", content=SQL_USER_PROMPT.format(prompt=request.prompt)),
                ],
                temperature=0.1,
                max_tokens=1500,
            )
            reply = parse_llm_json(response.content, SAPSQLReply)
        except LLMError as e:
            logger.warning("SQL generation fell back to template query", error=str(e))
            return generate_fallback_query(context)

        return SQLDraft(
            sql=quote_identifiers(reply.sql, sap_identifiers(context.table_names)),
            confidence=reply.confidence,
            explanation=reply.explanation,
            business_logic=reply.business_logic,
        )

    async def save_generated_query(self, prompt: str, result: SAPQueryResult) -> str | None:
        """Audit row for ``result``; an identical prompt and SQL within the window reuses its id."""
        since = datetime.now(timezone.utc) - timedelta(minutes=settings.duplicate_window_minutes)
        try:
            existing = await self.db.execute(
                select(GeneratedQuery.id)
                .where(
                    GeneratedQuery.prompt == prompt,
                    GeneratedQuery.sql == result.sql,
                    GeneratedQuery.created_at >= since,
                )
                .limit(1)
            )
            existing_id = existing.scalar_one_or_none()
            if existing_id is not None:
                logger.info("Skipping duplicate query save", query_id=str(existing_id))
                return str(existing_id)

            row = GeneratedQuery(
                prompt=prompt,
                sql=result.sql,
                confidence=result.confidence,
                complexity=result.complexity,
                tables_used=result.tables_used,
                join_types=result.join_types,
                validation_status=result.validation_status,
                validation_errors=result.validation_errors or [],
                explanation=result.explanation,
                business_logic=result.business_logic,
                sap_modules=result.sap_modules,
                execution_time=result.execution_time,
                result_count=result.result_count,
            )
            self.db.add(row)
            await self.db.commit()
            return str(row.id)
        except SQLAlchemyError as e:
            logger.error("Failed to save generated query", error=str(e))
            await self.db.rollback()
            return None

    async def execute_query(self, sql: str) -> dict[str, Any]:
        """
        Run ``sql`` in a read-only transaction.

        Returns:
            {"results": [...], "execution_time": ms, "row_count": n}

        Raises:
            QueryExecutionError: The database rejected the statement
        """
        if self.db.in_transaction():
            await self.db.commit()

        start = time.perf_counter()
        try:
            await self.db.execute(text("SET TRANSACTION READ ONLY"))
            result = await self.db.execute(text(sql))
            rows = (
                [{k: json_safe(v) for k, v in row.items()} for row in result.mappings().all()]
                if result.returns_rows
                else []
            )
        except SQLAlchemyError as e:
            logger.warning("Query execution failed", error=str(e).splitlines()[0])
            raise QueryExecutionError(f"Query execution failed: {e}") from e
        finally:
            await self.db.rollback()

        execution_time = (time.perf_counter() - start) * 1000
        logger.info("Query executed", row_count=len(rows), execution_time_ms=round(execution_time, 2))
        return {"results": rows, "execution_time": execution_time, "row_count": len(rows)}

    async def get_query_history(self, limit: int = 10) -> list[dict[str, Any]]:
        result = await self.db.execute(
            select(GeneratedQuery).order_by(GeneratedQuery.created_at.desc()).limit(limit)
        )
        return [
            {
                "id": str(row.id),
                "prompt": row.prompt,
                "sql": row.sql,
                "confidence": row.confidence,
                "complexity": row.complexity,
                "tables_used": row.tables_used,
                "validation_status": row.validation_status,
                "created_at": row.created_at,
            }
            for row in result.scalars().all()
        ]
