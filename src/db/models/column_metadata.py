"""
ColumnMetadata model: per-column analysis results.

One row per (table_name, column_name). The column analyzer upserts these
rows on every re-analysis; nothing else writes them.

Each row combines:
- Physical facts copied from the extractor (type, nullability, keys)
- LLM-derived meaning (semantic type, business context, description)
- Sample-driven statistics (value patterns, uniqueness, null percentage)
- A description embedding for similarity search (pgvector)
- Candidate join keys derived from SAP naming patterns
"""

from pgvector.sqlalchemy import Vector
from sqlalchemy import Boolean, CheckConstraint, Float, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.core.config import settings
from src.db.base import UUIDTimestampBase


class ColumnMetadata(UUIDTimestampBase):
    """
    Analysis of a single column of a simulated SAP table.

    Attributes:
        table_name: SAP table name (e.g. "VBAK")
        column_name: Column name (e.g. "KUNNR")
        data_type: Declared SQL type (e.g. "VARCHAR(10)")
        is_nullable / is_primary_key / is_foreign_key: Physical flags
        referenced_table / referenced_column: FK target, if any
        semantic_type: One of SemanticType values
        business_context: One-sentence business meaning
        description: Human readable description (source of the embedding)
        embedding: Description embedding
        sample_values: First sample values observed (max 10)
        value_patterns: {min_length, max_length, common_prefixes, enum_values,
            numeric_range, date_format}
        unique_value_count: Distinct non-null sample values
        null_percentage: Share of sample rows with a null (0-100)
        possible_join_keys: [{table, column, confidence, reason}]
        semantic_similarity: Reserved for column-to-column similarity scores

    Example:
        ColumnMetadata(
            table_name="VBAK",
            column_name="KUNNR",
            data_type="VARCHAR(10)",
            is_foreign_key=True,
            referenced_table="KNA1",
            referenced_column="KUNNR",
            semantic_type="identifier",
        )
    """

    # === Identity ===
    table_name: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SAP table name",
    )

    column_name: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Column name within the table",
    )

    # === Physical Description ===
    data_type: Mapped[str] = mapped_column(String(64), nullable=False)
    is_nullable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_primary_key: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_foreign_key: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    referenced_table: Mapped[str | None] = mapped_column(String(64), nullable=True)
    referenced_column: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # === Semantic Description ===
    semantic_type: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        comment="identifier, name, date, amount, ...",
    )

    business_context: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=True,
        comment="Embedding of the column description",
    )

    # === Sample Statistics ===
    sample_values: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    value_patterns: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    unique_value_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    null_percentage: Mapped[float | None] = mapped_column(Float, nullable=True)

    # === Relationship Hints ===
    possible_join_keys: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    semantic_similarity: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    __table_args__ = (
        UniqueConstraint("table_name", "column_name", name="uq_column_metadata_table_column"),
        CheckConstraint(
            "null_percentage IS NULL OR (null_percentage >= 0 AND null_percentage <= 100)",
            name="null_percentage_range",
        ),
    )

    def __repr__(self) -> str:
        return f"<ColumnMetadata({self.table_name}.{self.column_name}, {self.semantic_type})>"


Index("ix_column_metadata_table_name", ColumnMetadata.table_name)
Index("ix_column_metadata_semantic_type", ColumnMetadata.semantic_type)
