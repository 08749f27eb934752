"""
GeneratedQuery model: audit log of natural-language prompts and their SQL.

Write-only from the application's perspective; rows are read back for the
history endpoints and the analytics summary.
"""

from sqlalchemy import CheckConstraint, Float, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import UUIDCreatedBase
from src.db.enums import QueryComplexity, ValidationStatus


class GeneratedQuery(UUIDCreatedBase):
    """
    One generated SQL query.

    Attributes:
        prompt: The user's natural-language request
        sql: Generated (and identifier-quoted) SQL
        confidence: Final confidence (0.0 to 1.0)
        complexity: simple / medium / complex
        tables_used: Table names the query draws from
        join_types: Join keywords used (e.g. ["INNER", "LEFT"])
        template_used: QueryTemplate name, if a template guided generation
        validation_status: valid / invalid / warning
        validation_errors: Error and warning strings, if any
        explanation / business_logic: LLM explanations
        sap_modules: SAP modules touched (SD, MM, ...)
        execution_time: Last execution time in milliseconds
        result_count: Rows returned by the last execution
    """

    # === Request / Result ===
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    sql: Mapped[str] = mapped_column(Text, nullable=False)

    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    complexity: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=QueryComplexity.SIMPLE.value,
    )

    tables_used: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    join_types: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    template_used: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # === Validation ===
    validation_status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ValidationStatus.VALID.value,
    )
    validation_errors: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    # === Explanations ===
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    business_logic: Mapped[str | None] = mapped_column(Text, nullable=True)
    sap_modules: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    # === Execution ===
    execution_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    result_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="confidence_range"),
        CheckConstraint(
            "validation_status IN ('valid', 'invalid', 'warning')",
            name="validation_status_values",
        ),
        CheckConstraint(
            "complexity IN ('simple', 'medium', 'complex')",
            name="complexity_values",
        ),
    )

    def __repr__(self) -> str:
        return f"<GeneratedQuery(id={self.id}, status={self.validation_status}, confidence={self.confidence:.2f})>"

    @property
    def is_valid(self) -> bool:
        return self.validation_status == ValidationStatus.VALID.value


Index("ix_generated_queries_created_at", GeneratedQuery.created_at.desc())
Index("ix_generated_queries_confidence", GeneratedQuery.confidence)
