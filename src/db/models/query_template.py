"""
QueryTemplate model: reusable SQL skeletons matched against prompts.

The generic query generator looks up the best template whose ``pattern``
occurs in the prompt and passes its ``sql_template`` to the LLM as a hint.
"""

from sqlalchemy import CheckConstraint, Float, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import UUIDTimestampBase


class QueryTemplate(UUIDTimestampBase):
    """
    A named SQL template.

    Attributes:
        name: Human readable template name
        description: What the template answers
        pattern: Text pattern matched (ILIKE) against prompts
        sql_template: SQL skeleton
        required_tables: Tables the template needs
        confidence: How trustworthy the template is (0.0 to 1.0)
        usage_count: Number of generations the template guided
    """

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    pattern: Mapped[str] = mapped_column(String(500), nullable=False)
    sql_template: Mapped[str] = mapped_column(Text, nullable=False)
    required_tables: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="confidence_range"),
    )

    def __repr__(self) -> str:
        return f"<QueryTemplate(name={self.name}, used={self.usage_count})>"


Index("ix_query_templates_pattern", QueryTemplate.pattern)
