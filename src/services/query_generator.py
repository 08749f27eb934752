"""
Metadata-driven query generator.

This generator predates the SAP catalogue in ``sap_query_generator``: it
builds its context from whatever the column analyzer and relationship
inference stored, optionally guided by a matching ``QueryTemplate``.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import case, func, literal, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import get_logger
from src.db.enums import QueryComplexity, ValidationStatus
from src.db.models import ColumnMetadata, GeneratedQuery, QueryTemplate, TableRelationship
from src.services.llm_client import BaseLLMClient, LLMError, LLMMessage, parse_llm_json
from src.services.sap_query_generator import QueryGenerationError
from src.services.sql_utils import clamp_confidence, quote_identifiers

logger = get_logger(__name__)

RELEVANT_SEMANTIC_TYPES = ("identifier", "name", "amount", "date", "status")
RELEVANT_COLUMN_LIMIT = 20

# (table, column, type, semantic type, description, business context)
FALLBACK_COLUMNS: list[tuple[str, str, str, str, str, str]] = [
    ("KNA1", "KUNNR", "VARCHAR(10)", "identifier", "Customer number", "Unique identifier for customers"),
    ("KNA1", "NAME1", "VARCHAR(35)", "name", "Customer name", "Primary name of the customer"),
    ("MARA", "MATNR", "VARCHAR(18)", "identifier", "Material number", "Unique identifier for materials"),
    ("VBAK", "VBELN", "VARCHAR(10)", "identifier", "Sales document number", "Unique identifier for sales orders"),
]

# (left table, left column, right table, right column, join type, confidence)
FALLBACK_RELATIONSHIPS: list[tuple[str, str, str, str, str, float]] = [
    ("VBAK", "KUNNR", "KNA1", "KUNNR", "left", 0.9),
    ("VBAP", "VBELN", "VBAK", "VBELN", "inner", 0.95),
    ("VBAP", "MATNR", "MARA", "MATNR", "left", 0.85),
]

ENTITY_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("customer", "client"), "customer"),
    (("material", "product"), "material"),
    (("sales", "order"), "sales"),
    (("item", "line"), "item"),
]

_TABLE_REF = re.compile(r'\b(?:FROM|JOIN)\s+"?(\w+)"?', re.IGNORECASE)


# =============================================================================
# Prompts and Reply Schemas
# =============================================================================

INTENT_PROMPT = """Analyze this natural language database query and extract the intent:

Query: "{prompt}"

Identify:
1. Query type: select, aggregate, filter, join, or complex
2. Entities mentioned (table names, business objects)
3. Operations requested (count, sum, average, list, etc.)
4. Filters or conditions mentioned

Respond in JSON format:
{{
  "type": "...",
  "entities": ["..."],
  "operations": ["..."],
  "filters": ["..."]
}}"""

SQL_SYSTEM_PROMPT = """You are an expert SQL query generator for SAP-like database systems. Generate precise SQL queries based on natural language requests.

Available Tables and Columns:
{tables}

Available Relationships:
{relationships}

Rules:
1. Use proper SQL syntax for PostgreSQL
2. Include appropriate JOIN clauses based on relationships
3. Use table aliases for readability
4. Include only necessary columns in SELECT
5. Add appropriate WHERE clauses for filtering
6. Use proper data types in comparisons
7. Ensure the query is optimized and follows best practices
{template}"""

SQL_USER_PROMPT = """Generate a SQL query for: "{prompt}"

Provide response in JSON format:
{{
  "sql": "SELECT ... FROM ... WHERE ...",
  "confidence": 0.85,
  "explanation": "This query retrieves..."
}}"""


class PromptIntent(BaseModel):
    type: str
    entities: list[str] = Field(default_factory=list)
    operations: list[str] = Field(default_factory=list)
    filters: list[str] = Field(default_factory=list)


class BasicSQLReply(BaseModel):
    sql: str = Field(min_length=1)
    confidence: float = 0.5
    explanation: str = "SQL query generated"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ContextColumn:
    name: str
    type: str
    semantic_type: str | None = None
    description: str | None = None
    business_context: str | None = None


@dataclass
class ContextTable:
    name: str
    columns: list[ContextColumn] = field(default_factory=list)


@dataclass
class ContextRelationship:
    left_table: str
    left_column: str
    right_table: str
    right_column: str
    join_type: str
    confidence: float


@dataclass
class GenerationContext:
    tables: list[ContextTable] = field(default_factory=list)
    relationships: list[ContextRelationship] = field(default_factory=list)

    @property
    def table_names(self) -> list[str]:
        return [t.name for t in self.tables]

    def identifiers(self) -> list[str]:
        names = []
        for table in self.tables:
            names.append(table.name)
            names.extend(col.name for col in table.columns)
        for rel in self.relationships:
            names.extend([rel.left_table, rel.left_column, rel.right_table, rel.right_column])
        return names


@dataclass
class BasicQueryResult:
    sql: str
    confidence: float
    explanation: str
    tables_used: list[str]
    join_types: list[str]
    complexity: str
    validation_status: str
    validation_errors: list[str] = field(default_factory=list)
    template_used: str | None = None
    query_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sql": self.sql,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "tables_used": self.tables_used,
            "join_types": self.join_types,
            "complexity": self.complexity,
            "validation_status": self.validation_status,
            "validation_errors": self.validation_errors,
            "template_used": self.template_used,
            "query_id": self.query_id,
        }


# =============================================================================
# Pure Helpers
# =============================================================================


def extract_entities(prompt: str) -> list[str]:
    lowered = prompt.lower()
    return [
        entity
        for keywords, entity in ENTITY_KEYWORDS
        if any(keyword in lowered for keyword in keywords)
    ]


def extract_tables(sql: str) -> list[str]:
    return list(dict.fromkeys(m.group(1).upper() for m in _TABLE_REF.finditer(sql)))


def complexity_score(sql: str) -> int:
    """2 per JOIN, 3 per parenthesis, 2 per aggregate, 1 per WHERE/HAVING/CASE."""
    upper = sql.upper()
    score = 2 * len(re.findall(r"JOIN", upper))
    score += 3 * upper.count("(")
    score += 2 * len(re.findall(r"COUNT|SUM|AVG|MAX|MIN|GROUP BY", upper))
    score += len(re.findall(r"WHERE|HAVING|CASE", upper))
    return score


def calculate_complexity(sql: str) -> str:
    score = complexity_score(sql)
    if score <= 3:
        return QueryComplexity.SIMPLE.value
    if score <= 8:
        return QueryComplexity.MEDIUM.value
    return QueryComplexity.COMPLEX.value


def generate_fallback_query(context: GenerationContext) -> str:
    """First table's first five columns, up to two joins, LIMIT 100."""
    if not context.tables:
        return "SELECT 1 as result"

    main = context.tables[0]
    columns = [f"{main.name}.{col.name}" for col in main.columns[:5]] or ["*"]
    sql = f"SELECT {', '.join(columns)} FROM {main.name}"

    for rel in context.relationships[:2]:
        if rel.left_table == main.name:
            sql += (
                f" {rel.join_type.upper()} JOIN {rel.right_table}"
                f" ON {rel.left_table}.{rel.left_column} = {rel.right_table}.{rel.right_column}"
            )

    return f"{sql} LIMIT 100"


def validate_basic(sql: str, context: GenerationContext) -> tuple[bool, bool, list[str]]:
    """Returns (is_valid, has_warnings, messages); warnings are prefixed ``Warning:``."""
    errors: list[str] = []
    has_warnings = False

    if not sql.strip().upper().startswith("SELECT"):
        errors.append("Query must be a SELECT statement")

    available = {name.upper() for name in context.table_names}
    for table in extract_tables(sql):
        if table not in available:
            errors.append(f"Referenced table '{table}' not found in available tables")

    upper = sql.upper()
    if "LIMIT" not in upper and "WHERE" not in upper:
        has_warnings = True
        errors.append("Warning: Query may return large result set. Consider adding LIMIT or WHERE clause")

    is_valid = not [e for e in errors if not e.startswith("Warning:")]
    return is_valid, has_warnings, errors


# =============================================================================
# Query Generator
# =============================================================================


class QueryGenerator:
    """
    Generates SQL from stored column metadata and relationships.

    Args:
        db: Async database session
        llm_client: LLM client (must be entered as async context manager)
    """

    def __init__(self, db: AsyncSession, llm_client: BaseLLMClient):
        self.db = db
        self.llm = llm_client

    async def generate_query(self, prompt: str) -> BasicQueryResult:
        try:
            intent = await self.analyze_prompt_intent(prompt)
            context = await self.find_relevant_context(prompt)
            template = await self.find_matching_template(prompt)
            sql, confidence, explanation = await self.generate_sql(prompt, context, template)

            is_valid, has_warnings, messages = validate_basic(sql, context)
            if is_valid:
                status = ValidationStatus.VALID.value
            elif has_warnings:
                status = ValidationStatus.WARNING.value
            else:
                status = ValidationStatus.INVALID.value

            result = BasicQueryResult(
                sql=sql,
                confidence=confidence,
                explanation=explanation,
                tables_used=context.table_names,
                join_types=[rel.join_type for rel in context.relationships],
                complexity=calculate_complexity(sql),
                validation_status=status,
                validation_errors=messages,
                template_used=template.name if template else None,
            )
            result.query_id = await self.save_generated_query(prompt, result)

            logger.info(
                "Basic query generated",
                query_type=intent.type,
                tables=len(result.tables_used),
                status=status,
                template=result.template_used,
            )
            return result
        except SQLAlchemyError as e:
            logger.error("Basic query generation failed", error=str(e))
            raise QueryGenerationError(f"Failed to generate query: {e}") from e

    async def analyze_prompt_intent(self, prompt: str) -> PromptIntent:
        try:
            response = await self.llm.complete(
                [LLMMessage(role="user", content=INTENT_PROMPT.format(prompt=prompt))],
                temperature=0.1,
                max_tokens=300,
            )
            return parse_llm_json(response.content, PromptIntent)
        except LLMError as e:
            logger.warning("Intent analysis fell back to keywords", error=str(e))
            return PromptIntent(type="select", entities=extract_entities(prompt), operations=["list"])

    async def find_relevant_context(self, prompt: str) -> GenerationContext:
        columns = await self.find_relevant_columns(prompt)

        tables: dict[str, ContextTable] = {}
        for table_name, column in columns:
            tables.setdefault(table_name, ContextTable(table_name)).columns.append(column)

        relationships = await self.find_table_relationships(list(tables))
        return GenerationContext(tables=list(tables.values()), relationships=relationships)

    async def find_relevant_columns(
        self, prompt: str, limit: int = RELEVANT_COLUMN_LIMIT
    ) -> list[tuple[str, ContextColumn]]:
        """Columns whose description or context mentions the prompt, then common semantic types."""
        like = f"%{prompt}%"
        rank = case(
            (ColumnMetadata.description.ilike(like), 1),
            (ColumnMetadata.business_context.ilike(like), 2),
            else_=3,
        )
        try:
            result = await self.db.execute(
                select(ColumnMetadata)
                .where(or_(
                    ColumnMetadata.description.ilike(like),
                    ColumnMetadata.business_context.ilike(like),
                    ColumnMetadata.semantic_type.in_(RELEVANT_SEMANTIC_TYPES),
                ))
                .order_by(rank)
                .limit(limit)
            )
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.warning("Column lookup failed, using fallback columns", error=str(e))
            await self.db.rollback()
            rows = []

        if not rows:
            return [
                (table, ContextColumn(column, data_type, semantic, description, business))
                for table, column, data_type, semantic, description, business in FALLBACK_COLUMNS
            ]

        return [
            (
                row.table_name,
                ContextColumn(
                    name=row.column_name,
                    type=row.data_type,
                    semantic_type=row.semantic_type,
                    description=row.description,
                    business_context=row.business_context,
                ),
            )
            for row in rows
        ]

    async def find_table_relationships(self, table_names: list[str]) -> list[ContextRelationship]:
        try:
            result = await self.db.execute(
                select(TableRelationship)
                .where(
                    TableRelationship.left_table.in_(table_names),
                    TableRelationship.right_table.in_(table_names),
                )
                .order_by(TableRelationship.confidence.desc())
            )
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.warning("Relationship lookup failed, using fallback joins", error=str(e))
            await self.db.rollback()
            return [ContextRelationship(*rel) for rel in FALLBACK_RELATIONSHIPS]

        return [
            ContextRelationship(
                left_table=row.left_table,
                left_column=row.left_column,
                right_table=row.right_table,
                right_column=row.right_column,
                join_type=row.join_type,
                confidence=row.confidence,
            )
            for row in rows
        ]

    async def find_matching_template(self, prompt: str) -> QueryTemplate | None:
        """Best template whose pattern occurs in the prompt; its usage count is bumped."""
        try:
            result = await self.db.execute(
                select(QueryTemplate)
                .where(literal(prompt).ilike(func.concat("%", QueryTemplate.pattern, "%")))
                .order_by(QueryTemplate.confidence.desc())
                .limit(1)
            )
            template = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.warning("Template lookup failed", error=str(e))
            await self.db.rollback()
            return None

        if template is not None:
            template.usage_count += 1
        return template

    async def generate_sql(
        self,
        prompt: str,
        context: GenerationContext,
        template: QueryTemplate | None,
    ) -> tuple[str, float, str]:
        tables_text = "\n".join(
            f"Table: {table.name}\nColumns: "
            + ", ".join(f"{col.name} ({col.type}) - {col.description}" for col in table.columns)
            for table in context.tables
        )
        relationships_text = "\n".join(
            f"{rel.left_table}.{rel.left_column} -> {rel.right_table}.{rel.right_column} "
            f"({rel.join_type} join, confidence: {rel.confidence})"
            for rel in context.relationships
        )
        system = SQL_SYSTEM_PROMPT.format(
            tables=tables_text,
            relationships=relationships_text,
            template=f"\nTemplate available: {template.sql_template}" if template else "",
        )

        identifiers = context.identifiers()
        try:
            response = await self.llm.complete(
                [
                    LLMMessage(role="system", content=system),
                    LLMMessage(role="user", content=SQL_USER_PROMPT.format(prompt=prompt)),
                ],
                temperature=0.1,
                max_tokens=1000,
            )
            reply = parse_llm_json(response.content, BasicSQLReply)
            return (
                quote_identifiers(reply.sql, identifiers),
                clamp_confidence(reply.confidence),
                reply.explanation,
            )
        except LLMError as e:
            logger.warning("SQL generation fell back to template query", error=str(e))
            return (
                quote_identifiers(generate_fallback_query(context), identifiers),
                0.5,
                "Fallback query generated due to AI service error",
            )

    async def save_generated_query(self, prompt: str, result: BasicQueryResult) -> str | None:
        row = GeneratedQuery(
            prompt=prompt,
            sql=result.sql,
            confidence=result.confidence,
            tables_used=result.tables_used,
            join_types=result.join_types,
            complexity=result.complexity,
            template_used=result.template_used,
            validation_status=result.validation_status,
            validation_errors=result.validation_errors,
            explanation=result.explanation,
        )
        try:
            self.db.add(row)
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to save generated query", error=str(e))
            await self.db.rollback()
            return None
        return str(row.id)

