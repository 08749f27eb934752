"""
Relationship inference: guess join paths between the SAP tables.

Four independent methods propose relationships:

1. column_name    - identical key-like column names, or similar names
2. data_pattern   - overlap of sample values (Jaccard)
3. business_logic - hard-coded SAP rules (VBAK->KNA1, VBAP->VBAK, VBAP->MARA)
4. ai_analysis    - the LLM reads the table structure and proposes joins

The proposals are deduplicated (direction-insensitive, highest confidence
wins) and the ``inferred`` rows of ``table_relationships`` are rebuilt.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import get_logger
from src.db.enums import InferenceMethod, JoinType, RelationshipType
from src.db.models import ColumnMetadata, TableRelationship
from src.db.session import transaction
from src.services.llm_client import BaseLLMClient, LLMError, LLMMessage, parse_llm_json
from src.services.sql_utils import clamp_confidence, jaccard_similarity, string_similarity

logger = get_logger(__name__)


# =============================================================================
# Patterns and Rules
# =============================================================================


@dataclass(frozen=True)
class RelationshipPattern:
    pattern: str
    confidence: float
    join_type: str
    description: str


SAP_PATTERNS: list[RelationshipPattern] = [
    RelationshipPattern("KUNNR", 0.95, "left", "Customer number - links customer master to transactions"),
    RelationshipPattern("MATNR", 0.95, "left", "Material number - links material master to transactions"),
    RelationshipPattern("VBELN", 0.90, "inner", "Sales document number - links header to items"),
    RelationshipPattern("BUKRS", 0.85, "left", "Company code - organizational unit"),
    RelationshipPattern("WERKS", 0.85, "left", "Plant - organizational unit"),
    RelationshipPattern("LGORT", 0.80, "left", "Storage location"),
    RelationshipPattern("MANDT", 0.99, "inner", "Client - system partition key"),
]

FOREIGN_KEY_HINTS = ("KUNNR", "MATNR", "VBELN", "BUKRS", "WERKS", "MANDT")

# (left table, right table, column, join type, confidence, rule)
BUSINESS_RULES: list[tuple[str, str, str, str, float, str]] = [
    ("VBAK", "KNA1", "KUNNR", "left", 0.95, "Sales header always references customer master"),
    ("VBAP", "VBAK", "VBELN", "inner", 0.98, "Sales items always belong to a sales header"),
    ("VBAP", "MARA", "MATNR", "left", 0.90, "Sales items reference material master"),
]

NAME_SIMILARITY_THRESHOLD = 0.7
VALUE_OVERLAP_THRESHOLD = 0.3

CONFIDENCE_BUCKETS = ("high (>0.8)", "medium (0.6-0.8)", "low (<0.6)")

AI_RELATIONSHIP_PROMPT = """Analyze these database tables and infer potential relationships:

{tables}

Identify potential foreign key relationships based on:
1. Column name patterns
2. Data types compatibility
3. Business logic (this appears to be an SAP-like system)
4. Semantic meaning of columns

For each relationship, provide:
- Left table and column
- Right table and column
- Relationship type (one_to_one, one_to_many, many_to_many)
- Join type (inner, left, right, full)
- Confidence (0.0 to 1.0)
- Brief explanation

Respond in JSON format:
{{
  "relationships": [
    {{
      "leftTable": "...",
      "leftColumn": "...",
      "rightTable": "...",
      "rightColumn": "...",
      "relationshipType": "...",
      "joinType": "...",
      "confidence": 0.85,
      "explanation": "..."
    }}
  ]
}}"""


class AIRelationship(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    left_table: str = Field(alias="leftTable")
    left_column: str = Field(alias="leftColumn")
    right_table: str = Field(alias="rightTable")
    right_column: str = Field(alias="rightColumn")
    relationship_type: str = Field(default="one_to_many", alias="relationshipType")
    join_type: str = Field(default="inner", alias="joinType")
    confidence: float = 0.5
    explanation: str = ""


class AIRelationshipReply(BaseModel):
    relationships: list[AIRelationship] = Field(default_factory=list)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ColumnProfile:
    """The subset of column metadata the inference methods need."""

    name: str
    type: str
    semantic_type: str | None = None
    sample_values: list[Any] | None = None
    unique_value_count: int | None = None
    null_percentage: float | None = None


@dataclass
class TableProfile:
    name: str
    columns: list[ColumnProfile] = field(default_factory=list)

    def column(self, name: str) -> ColumnProfile | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None


@dataclass
class InferredRelationship:
    """A proposed join, before or after persistence."""

    left_table: str
    left_column: str
    right_table: str
    right_column: str
    relationship_type: str
    join_type: str
    confidence: float
    inference_method: str
    evidence: list[str] = field(default_factory=list)
    business_rule: str | None = None

    @property
    def key(self) -> str:
        return f"{self.left_table}.{self.left_column}-{self.right_table}.{self.right_column}"

    @property
    def reverse_key(self) -> str:
        return f"{self.right_table}.{self.right_column}-{self.left_table}.{self.left_column}"

    def provenance(self) -> str:
        """Stored ``business_rule``: the rule text, else ``method: evidence``."""
        if self.business_rule:
            return self.business_rule
        return f"{self.inference_method}: {', '.join(self.evidence)}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "left_table": self.left_table,
            "left_column": self.left_column,
            "right_table": self.right_table,
            "right_column": self.right_column,
            "relationship_type": self.relationship_type,
            "join_type": self.join_type,
            "confidence": self.confidence,
            "inference_method": self.inference_method,
            "evidence": self.evidence,
            "business_rule": self.business_rule,
        }


def _fallback_tables() -> list[TableProfile]:
    """Minimal SAP structure used when column metadata cannot be read."""
    mandt = ColumnProfile("MANDT", "VARCHAR(3)", "client")
    return [
        TableProfile("KNA1", [
            ColumnProfile("KUNNR", "VARCHAR(10)", "identifier"),
            ColumnProfile("NAME1", "VARCHAR(35)", "name"),
            mandt,
        ]),
        TableProfile("MARA", [
            ColumnProfile("MATNR", "VARCHAR(18)", "identifier"),
            ColumnProfile("MTART", "VARCHAR(4)", "type"),
            mandt,
        ]),
        TableProfile("VBAK", [
            ColumnProfile("VBELN", "VARCHAR(10)", "identifier"),
            ColumnProfile("KUNNR", "VARCHAR(10)", "identifier"),
            mandt,
        ]),
        TableProfile("VBAP", [
            ColumnProfile("VBELN", "VARCHAR(10)", "identifier"),
            ColumnProfile("POSNR", "VARCHAR(6)", "position"),
            ColumnProfile("MATNR", "VARCHAR(18)", "identifier"),
            mandt,
        ]),
    ]


# =============================================================================
# Pure Helpers
# =============================================================================


def is_likely_foreign_key(column_name: str) -> bool:
    return any(hint in column_name for hint in FOREIGN_KEY_HINTS)


def find_pattern(column_name: str) -> RelationshipPattern | None:
    for pattern in SAP_PATTERNS:
        if pattern.pattern in column_name:
            return pattern
    return None


def infer_relationship_type(col1: ColumnProfile, col2: ColumnProfile) -> str:
    """Cardinality from the uniqueness ratio of the two sample sets."""
    if col1.unique_value_count and col2.unique_value_count:
        ratio1 = col1.unique_value_count / (len(col1.sample_values or []) or 1)
        ratio2 = col2.unique_value_count / (len(col2.sample_values or []) or 1)
        if ratio1 > 0.9 and ratio2 > 0.9:
            return RelationshipType.ONE_TO_ONE.value
        if ratio1 > 0.9 or ratio2 > 0.9:
            return RelationshipType.ONE_TO_MANY.value
    return RelationshipType.ONE_TO_MANY.value


def _hashable(values: list[Any]) -> list[str]:
    return [str(v) for v in values]


def infer_by_column_names(tables: list[TableProfile]) -> list[InferredRelationship]:
    relationships = []
    for i, table1 in enumerate(tables):
        for table2 in tables[i + 1:]:
            for col1 in table1.columns:
                for col2 in table2.columns:
                    if col1.name == col2.name:
                        if not is_likely_foreign_key(col1.name):
                            continue
                        pattern = find_pattern(col1.name)
                        relationships.append(InferredRelationship(
                            left_table=table1.name,
                            left_column=col1.name,
                            right_table=table2.name,
                            right_column=col2.name,
                            relationship_type=infer_relationship_type(col1, col2),
                            join_type=pattern.join_type if pattern else JoinType.LEFT.value,
                            confidence=pattern.confidence if pattern else 0.7,
                            inference_method=InferenceMethod.COLUMN_NAME.value,
                            evidence=[
                                f"Exact column name match: {col1.name}",
                                pattern.description if pattern else "Common identifier pattern",
                            ],
                        ))
                    elif string_similarity(col1.name, col2.name) > NAME_SIMILARITY_THRESHOLD:
                        relationships.append(InferredRelationship(
                            left_table=table1.name,
                            left_column=col1.name,
                            right_table=table2.name,
                            right_column=col2.name,
                            relationship_type=infer_relationship_type(col1, col2),
                            join_type=JoinType.LEFT.value,
                            confidence=0.6,
                            inference_method=InferenceMethod.COLUMN_NAME.value,
                            evidence=[f"Semantic column name similarity: {col1.name} ~ {col2.name}"],
                        ))
    return relationships


def infer_by_data_patterns(tables: list[TableProfile]) -> list[InferredRelationship]:
    relationships = []
    for i, table1 in enumerate(tables):
        for table2 in tables[i + 1:]:
            for col1 in table1.columns:
                for col2 in table2.columns:
                    if not col1.sample_values or not col2.sample_values:
                        continue
                    overlap = jaccard_similarity(
                        _hashable(col1.sample_values), _hashable(col2.sample_values)
                    )
                    if overlap <= VALUE_OVERLAP_THRESHOLD:
                        continue
                    relationships.append(InferredRelationship(
                        left_table=table1.name,
                        left_column=col1.name,
                        right_table=table2.name,
                        right_column=col2.name,
                        relationship_type=infer_relationship_type(col1, col2),
                        join_type=JoinType.LEFT.value,
                        confidence=min(0.8, overlap),
                        inference_method=InferenceMethod.DATA_PATTERN.value,
                        evidence=[f"Value overlap: {overlap * 100:.1f}%"],
                    ))
    return relationships


def infer_by_business_logic(tables: list[TableProfile]) -> list[InferredRelationship]:
    by_name = {table.name: table for table in tables}
    relationships = []
    for left, right, column, join_type, confidence, rule in BUSINESS_RULES:
        left_table, right_table = by_name.get(left), by_name.get(right)
        if left_table is None or right_table is None:
            continue
        if left_table.column(column) is None or right_table.column(column) is None:
            continue
        relationships.append(InferredRelationship(
            left_table=left,
            left_column=column,
            right_table=right,
            right_column=column,
            relationship_type=RelationshipType.ONE_TO_MANY.value,
            join_type=join_type,
            confidence=confidence,
            inference_method=InferenceMethod.BUSINESS_LOGIC.value,
            evidence=[f"Business rule: {rule}"],
            business_rule=rule,
        ))
    return relationships


def deduplicate_relationships(
    relationships: list[InferredRelationship],
) -> list[InferredRelationship]:
    """One relationship per column pair regardless of direction; highest confidence wins."""
    unique: dict[str, InferredRelationship] = {}
    for rel in relationships:
        existing = unique.get(rel.key) or unique.get(rel.reverse_key)
        if existing is None or rel.confidence > existing.confidence:
            unique.pop(rel.reverse_key, None)
            unique[rel.key] = rel
    return sorted(unique.values(), key=lambda r: r.confidence, reverse=True)


def _method_of(row: TableRelationship) -> str:
    if row.inference_method:
        return row.inference_method
    prefix = (row.business_rule or "").split(":", 1)[0].strip()
    if prefix in {m.value for m in InferenceMethod}:
        return prefix
    return InferenceMethod.BUSINESS_LOGIC.value if row.business_rule else "unknown"


# =============================================================================
# Relationship Inference Service
# =============================================================================


class RelationshipInference:
    """
    Runs the inference methods and maintains ``table_relationships``.

    Args:
        db: Async database session
        llm_client: LLM client (must be entered as async context manager)
    """

    def __init__(self, db: AsyncSession, llm_client: BaseLLMClient):
        self.db = db
        self.llm = llm_client

    async def infer_all_relationships(self) -> list[InferredRelationship]:
        tables = await self.get_all_tables_with_columns()

        relationships: list[InferredRelationship] = []
        relationships.extend(infer_by_column_names(tables))
        relationships.extend(infer_by_data_patterns(tables))
        relationships.extend(infer_by_business_logic(tables))
        relationships.extend(await self.infer_by_ai_analysis(tables))

        unique = deduplicate_relationships(relationships)
        await self.save_inferred_relationships(unique)

        logger.info(
            "Relationships inferred",
            candidates=len(relationships),
            relationships=len(unique),
        )
        return unique

    async def get_all_tables_with_columns(self) -> list[TableProfile]:
        """Table structure from column metadata, or a fixed SAP structure on failure."""
        try:
            result = await self.db.execute(
                select(ColumnMetadata).order_by(ColumnMetadata.table_name, ColumnMetadata.created_at)
            )
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.warning("Column metadata unavailable, using fallback tables", error=str(e))
            await self.db.rollback()
            return _fallback_tables()

        tables: dict[str, TableProfile] = {}
        for row in rows:
            table = tables.setdefault(row.table_name, TableProfile(row.table_name))
            table.columns.append(ColumnProfile(
                name=row.column_name,
                type=row.data_type,
                semantic_type=row.semantic_type,
                sample_values=row.sample_values if isinstance(row.sample_values, list) else None,
                unique_value_count=row.unique_value_count,
                null_percentage=row.null_percentage,
            ))
        return list(tables.values())

    async def infer_by_ai_analysis(self, tables: list[TableProfile]) -> list[InferredRelationship]:
        if len(tables) < 2:
            return []

        described = "\n".join(
            f"Table: {table.name}\nColumns: "
            + ", ".join(
                f"{col.name} ({col.type}"
                + (f", semantic: {col.semantic_type}" if col.semantic_type else "")
                + ")"
                for col in table.columns
            )
            for table in tables
        )

        try:
            response = await self.llm.complete(
                [LLMMessage(role="user", content=AI_RELATIONSHIP_PROMPT.format(tables=described))],
                temperature=0.1,
                max_tokens=2000,
            )
            reply = parse_llm_json(response.content, AIRelationshipReply)
        except LLMError as e:
            logger.warning("AI relationship analysis failed", error=str(e))
            return []

        return [
            InferredRelationship(
                left_table=rel.left_table,
                left_column=rel.left_column,
                right_table=rel.right_table,
                right_column=rel.right_column,
                relationship_type=rel.relationship_type,
                join_type=JoinType.from_string(rel.join_type).value,
                confidence=clamp_confidence(rel.confidence),
                inference_method=InferenceMethod.AI_ANALYSIS.value,
                evidence=[rel.explanation],
            )
            for rel in reply.relationships
        ]

    async def save_inferred_relationships(self, relationships: list[InferredRelationship]) -> None:
        """Replace every rebuildable row with ``relationships``; rolled back as a whole on failure."""
        async with transaction(self.db):
            await self.db.execute(
                delete(TableRelationship).where(
                    TableRelationship.relationship_type.in_(RelationshipType.rebuildable())
                )
            )
            for rel in relationships:
                self.db.add(TableRelationship(
                    left_table=rel.left_table,
                    left_column=rel.left_column,
                    right_table=rel.right_table,
                    right_column=rel.right_column,
                    relationship_type=RelationshipType.INFERRED.value,
                    join_type=rel.join_type,
                    confidence=rel.confidence,
                    business_rule=rel.provenance(),
                    inference_method=rel.inference_method,
                    evidence=rel.evidence,
                ))
        logger.info("Inferred relationships saved", count=len(relationships))

    async def get_relationships_for_tables(self, table_names: list[str]) -> list[TableRelationship]:
        """Stored relationships with both sides in ``table_names``, best first."""
        if not table_names:
            return []
        result = await self.db.execute(
            select(TableRelationship)
            .where(
                TableRelationship.left_table.in_(table_names),
                TableRelationship.right_table.in_(table_names),
            )
            .order_by(TableRelationship.confidence.desc())
        )
        return list(result.scalars().all())

    async def analyze_relationship_quality(self) -> dict[str, Any]:
        result = await self.db.execute(select(TableRelationship))
        rows = result.scalars().all()

        by_method: dict[str, int] = {}
        by_confidence = {bucket: 0 for bucket in CONFIDENCE_BUCKETS}
        total_confidence = 0.0

        for row in rows:
            method = _method_of(row)
            by_method[method] = by_method.get(method, 0) + 1
            total_confidence += row.confidence

            if row.confidence > 0.8:
                by_confidence["high (>0.8)"] += 1
            elif row.confidence >= 0.6:
                by_confidence["medium (0.6-0.8)"] += 1
            else:
                by_confidence["low (<0.6)"] += 1

        return {
            "total_relationships": len(rows),
            "by_method": by_method,
            "by_confidence": by_confidence,
            "average_confidence": total_confidence / len(rows) if rows else 0.0,
        }
