"""
Column analyzer: semantic and statistical profile of every SAP column.

For each field of each extracted table the analyzer:
1. Collects the sample values and derives value patterns
   (lengths, common prefixes, enum candidates, numeric range, date format)
2. Computes uniqueness and null statistics over the sample rows
3. Asks the LLM for a semantic type, business context and description,
   falling back to a name-based heuristic when the call or parse fails
4. Embeds the description for similarity search
5. Lists candidate join keys from explicit FKs and SAP naming patterns

Results are upserted into ``column_metadata``.
"""

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.logging import get_logger
from src.db.enums import SemanticType
from src.db.models import ColumnMetadata
from src.services.extractor import FieldInfo, TableStructure
from src.services.llm_client import BaseLLMClient, LLMError, LLMMessage, parse_llm_json

logger = get_logger(__name__)


# =============================================================================
# Prompts
# =============================================================================

COLUMN_ANALYSIS_PROMPT = """Analyze this database column and provide semantic information:

Table: {table_name}
Column: {column_name}
Data Type: {data_type}
Is Primary Key: {is_primary_key}
Is Foreign Key: {is_foreign_key}
{references}
Sample Values: {sample_values}
Value Patterns: {value_patterns}

Based on this information, provide:
1. Semantic Type: Choose from [{semantic_types}]
2. Business Context: What this column represents in business terms (1-2 sentences)
3. Description: A detailed description of what this column contains and how it's used

Respond in JSON format:
{{
  "semanticType": "...",
  "businessContext": "...",
  "description": "..."
}}"""


class ColumnSemantics(BaseModel):
    """Expected LLM reply for a column."""

    model_config = ConfigDict(populate_by_name=True)

    semantic_type: str = Field(alias="semanticType", min_length=1)
    business_context: str = Field(alias="businessContext")
    description: str = Field(min_length=1)


# (column name, target table, target column, reason)
SAP_JOIN_PATTERNS: list[tuple[str, str, str, str]] = [
    ("kunnr", "KNA1", "KUNNR", "SAP customer number pattern"),
    ("matnr", "MARA", "MATNR", "SAP material number pattern"),
    ("vbeln", "VBAK", "VBELN", "SAP sales document number pattern"),
]

DATE_FORMATS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"^\d{4}-\d{2}-\d{2}$"), "YYYY-MM-DD"),
    (re.compile(r"^\d{2}/\d{2}/\d{4}$"), "MM/DD/YYYY"),
    (re.compile(r"^\d{2}-\d{2}-\d{4}$"), "MM-DD-YYYY"),
    (re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}"), "ISO 8601"),
]

# Ordered: the first matching rule wins
SEMANTIC_NAME_RULES: list[tuple[tuple[str, ...], SemanticType]] = [
    (("id", "nr", "num"), SemanticType.IDENTIFIER),
    (("name", "title"), SemanticType.NAME),
    (("desc", "text"), SemanticType.DESCRIPTION),
    (("date", "time"), SemanticType.DATE),
    (("amount", "price", "cost"), SemanticType.AMOUNT),
    (("qty", "quantity", "count"), SemanticType.QUANTITY),
    (("status", "state"), SemanticType.STATUS),
    (("code", "type"), SemanticType.CODE),
    (("addr", "address"), SemanticType.ADDRESS),
    (("phone", "tel"), SemanticType.PHONE),
    (("email", "mail"), SemanticType.EMAIL),
    (("url", "link"), SemanticType.URL),
    (("cat", "class", "group"), SemanticType.CATEGORY),
]


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ColumnAnalysis:
    """Full analysis of one column, mirroring the ColumnMetadata row."""

    table_name: str
    column_name: str
    data_type: str
    is_nullable: bool
    is_primary_key: bool
    is_foreign_key: bool
    referenced_table: str | None
    referenced_column: str | None
    semantic_type: str
    business_context: str
    description: str
    embedding: list[float] = field(default_factory=list, repr=False)
    sample_values: list[Any] = field(default_factory=list)
    value_patterns: dict[str, Any] = field(default_factory=dict)
    unique_value_count: int = 0
    null_percentage: float = 0.0
    possible_join_keys: list[dict[str, Any]] = field(default_factory=list)
    semantic_similarity: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "column_name": self.column_name,
            "data_type": self.data_type,
            "is_nullable": self.is_nullable,
            "is_primary_key": self.is_primary_key,
            "is_foreign_key": self.is_foreign_key,
            "referenced_table": self.referenced_table,
            "referenced_column": self.referenced_column,
            "semantic_type": self.semantic_type,
            "business_context": self.business_context,
            "description": self.description,
            "sample_values": self.sample_values,
            "value_patterns": self.value_patterns,
            "unique_value_count": self.unique_value_count,
            "null_percentage": self.null_percentage,
            "possible_join_keys": self.possible_join_keys,
        }


# =============================================================================
# Pure Helpers
# =============================================================================


def extract_sample_values(sample_data: list[dict[str, Any]], column_name: str) -> list[Any]:
    """Value of ``column_name`` in each row; rows without the key are skipped."""
    return [row[column_name] for row in sample_data if column_name in row]


def find_common_prefixes(strings: list[str]) -> list[str]:
    """Prefixes (length 1-5) shared by at least 30% of values, longest first, top 3."""
    counts: dict[str, int] = {}
    for value in strings:
        for i in range(1, min(len(value), 5) + 1):
            prefix = value[:i]
            counts[prefix] = counts.get(prefix, 0) + 1

    threshold = len(strings) * 0.3
    common = [prefix for prefix, count in counts.items() if count >= threshold]
    return sorted(common, key=len, reverse=True)[:3]


def detect_date_format(value: str) -> str:
    for pattern, name in DATE_FORMATS:
        if pattern.search(value):
            return name
    return "Unknown"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def analyze_value_patterns(values: list[Any], data_type: str) -> dict[str, Any]:
    """Derive value patterns from samples according to the declared type."""
    patterns: dict[str, Any] = {}
    if not values:
        return patterns

    data_type = data_type.upper()

    if "CHAR" in data_type:
        strings = [v for v in values if isinstance(v, str)]
        if strings:
            patterns["min_length"] = min(len(s) for s in strings)
            patterns["max_length"] = max(len(s) for s in strings)

            prefixes = find_common_prefixes(strings)
            if prefixes:
                patterns["common_prefixes"] = prefixes

            unique = list(dict.fromkeys(strings))
            if len(unique) <= 20 and len(unique) < len(strings) * 0.5:
                patterns["enum_values"] = unique

    if any(t in data_type for t in ("INT", "DECIMAL", "FLOAT")):
        numbers = [v for v in values if _is_number(v)]
        if numbers:
            patterns["numeric_range"] = {"min": min(numbers), "max": max(numbers)}

    if "DATE" in data_type or "TIMESTAMP" in data_type:
        dates = [v for v in values if isinstance(v, str)]
        if dates:
            patterns["date_format"] = detect_date_format(dates[0])

    return patterns


def infer_semantic_type(column_name: str, data_type: str) -> str:
    """Name-based semantic type, used when the LLM is unavailable."""
    name = column_name.lower()
    for needles, semantic_type in SEMANTIC_NAME_RULES:
        if any(needle in name for needle in needles):
            return semantic_type.value
        if semantic_type is SemanticType.DATE and "DATE" in data_type.upper():
            return semantic_type.value
    return SemanticType.OTHER.value


def find_possible_join_keys(f: FieldInfo) -> list[dict[str, Any]]:
    """Explicit FK target plus SAP naming-pattern targets."""
    join_keys: list[dict[str, Any]] = []

    if f.is_foreign_key and f.referenced_table and f.referenced_field:
        join_keys.append({
            "target_table": f.referenced_table,
            "target_column": f.referenced_field,
            "confidence": 0.95,
            "reason": "Explicit foreign key relationship",
        })

    name = f.name.lower()
    for column, table, target_column, reason in SAP_JOIN_PATTERNS:
        if name == column:
            join_keys.append({
                "target_table": table,
                "target_column": target_column,
                "confidence": 0.9,
                "reason": reason,
            })

    return join_keys


# =============================================================================
# Column Analyzer
# =============================================================================


class ColumnAnalyzer:
    """
    Profiles columns and persists the results.

    Args:
        db: Async database session
        llm_client: LLM client (must be entered as async context manager)
    """

    def __init__(self, db: AsyncSession, llm_client: BaseLLMClient):
        self.db = db
        self.llm = llm_client

    async def analyze_all_columns(self, tables: list[TableStructure]) -> list[ColumnAnalysis]:
        analyses = []
        for table in tables:
            for f in table.fields:
                analyses.append(await self.analyze_column(table, f, table.sample_data or []))
        logger.info("Columns analyzed", columns=len(analyses), tables=len(tables))
        return analyses

    async def analyze_column(
        self,
        table: TableStructure,
        f: FieldInfo,
        sample_data: list[dict[str, Any]],
    ) -> ColumnAnalysis:
        sample_values = extract_sample_values(sample_data, f.name)
        value_patterns = analyze_value_patterns(sample_values, f.type)

        non_null = [v for v in sample_values if v is not None]
        unique_value_count = len({json.dumps(v, sort_keys=True, default=str) for v in non_null})
        null_count = len(sample_values) - len(non_null)
        null_percentage = (null_count / len(sample_data)) * 100 if sample_data else 0.0

        semantics = await self._generate_semantic_analysis(
            table.table_name, f, sample_values, value_patterns
        )
        embedding = await self._generate_embedding(semantics.description)

        return ColumnAnalysis(
            table_name=table.table_name,
            column_name=f.name,
            data_type=f.type,
            is_nullable=f.nullable,
            is_primary_key=f.is_primary_key,
            is_foreign_key=f.is_foreign_key,
            referenced_table=f.referenced_table,
            referenced_column=f.referenced_field,
            semantic_type=semantics.semantic_type,
            business_context=semantics.business_context,
            description=semantics.description,
            embedding=embedding,
            sample_values=sample_values[:10],
            value_patterns=value_patterns,
            unique_value_count=unique_value_count,
            null_percentage=null_percentage,
            possible_join_keys=find_possible_join_keys(f),
            semantic_similarity=[],
        )

    async def _generate_semantic_analysis(
        self,
        table_name: str,
        f: FieldInfo,
        sample_values: list[Any],
        patterns: dict[str, Any],
    ) -> ColumnSemantics:
        references = (
            f"References: {f.referenced_table}.{f.referenced_field}" if f.referenced_table else ""
        )
        prompt = COLUMN_ANALYSIS_PROMPT.format(
            table_name=table_name,
            column_name=f.name,
            data_type=f.type,
            is_primary_key=str(f.is_primary_key).lower(),
            is_foreign_key=str(f.is_foreign_key).lower(),
            references=references,
            sample_values=json.dumps(sample_values[:5], default=str),
            value_patterns=json.dumps(patterns, default=str),
            semantic_types=", ".join(SemanticType.values()),
        )

        try:
            response = await self.llm.complete(
                [LLMMessage(role="user", content=prompt)],
                temperature=0.1,
                max_tokens=500,
            )
            semantics = parse_llm_json(response.content, ColumnSemantics)
            semantic_type = SemanticType.from_string(semantics.semantic_type)
            if semantic_type is None:
                semantics.semantic_type = infer_semantic_type(f.name, f.type)
            else:
                semantics.semantic_type = semantic_type.value
            return semantics
        except LLMError as e:
            logger.warning(
                "Column analysis fell back to heuristics",
                table=table_name,
                column=f.name,
                error=str(e),
            )
            return ColumnSemantics(
                semantic_type=infer_semantic_type(f.name, f.type),
                business_context=f"Column {f.name} in table {table_name}",
                description=f"{f.type} column containing {f.name} data",
            )

    async def _generate_embedding(self, text: str) -> list[float]:
        try:
            return await self.llm.embed(text)
        except LLMError as e:
            logger.warning("Embedding failed, storing zero vector", error=str(e))
            return [0.0] * settings.embedding_dimensions

    async def save_column_analyses(self, analyses: list[ColumnAnalysis]) -> int:
        """Upsert every analysis on (table_name, column_name); returns the row count."""
        for analysis in analyses:
            result = await self.db.execute(
                select(ColumnMetadata).where(
                    ColumnMetadata.table_name == analysis.table_name,
                    ColumnMetadata.column_name == analysis.column_name,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = ColumnMetadata(
                    table_name=analysis.table_name,
                    column_name=analysis.column_name,
                )
                self.db.add(row)

            row.data_type = analysis.data_type
            row.is_nullable = analysis.is_nullable
            row.is_primary_key = analysis.is_primary_key
            row.is_foreign_key = analysis.is_foreign_key
            row.referenced_table = analysis.referenced_table
            row.referenced_column = analysis.referenced_column
            row.semantic_type = analysis.semantic_type
            row.business_context = analysis.business_context
            row.description = analysis.description
            row.embedding = analysis.embedding or None
            row.sample_values = analysis.sample_values
            row.value_patterns = analysis.value_patterns
            row.unique_value_count = analysis.unique_value_count
            row.null_percentage = analysis.null_percentage
            row.possible_join_keys = analysis.possible_join_keys
            row.semantic_similarity = analysis.semantic_similarity

        await self.db.commit()
        logger.info("Column metadata saved", columns=len(analyses))
        return len(analyses)

    async def find_similar_columns(self, query_text: str, limit: int = 5) -> list[dict[str, Any]]:
        """Columns whose description is closest to ``query_text``."""
        query_embedding = await self._generate_embedding(query_text)
        distance = ColumnMetadata.embedding.cosine_distance(query_embedding)

        result = await self.db.execute(
            select(
                ColumnMetadata.table_name,
                ColumnMetadata.column_name,
                ColumnMetadata.description,
                ColumnMetadata.semantic_type,
                distance.label("distance"),
            )
            .where(ColumnMetadata.embedding.is_not(None))
            .order_by(distance)
            .limit(limit)
        )
        return [
            {
                "table_name": row.table_name,
                "column_name": row.column_name,
                "description": row.description,
                "semantic_type": row.semantic_type,
                "similarity": 1.0 - float(row.distance),
            }
            for row in result.all()
        ]
