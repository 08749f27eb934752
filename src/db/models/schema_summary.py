"""SchemaSummary model: one LLM-written business summary per SAP table."""

from pgvector.sqlalchemy import Vector
from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.core.config import settings
from src.db.base import UUIDTimestampBase


class SchemaSummary(UUIDTimestampBase):
    """
    Business summary of a table plus its embedding.

    ``table`` is unique; regenerating a summary overwrites the existing row.
    """

    table: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="SAP table name",
    )

    summary: Mapped[str] = mapped_column(Text, nullable=False)

    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=True,
        comment="Embedding of the summary text",
    )

    def __repr__(self) -> str:
        return f"<SchemaSummary(table={self.table})>"
