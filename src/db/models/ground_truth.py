"""
GroundTruth model: versioned table/join graph used for SQL validation.

Append-only. Every build inserts a new row; the most recent row by
``created_at`` is the current ground truth. There is no merge between
versions.
"""

from sqlalchemy import Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import UUIDCreatedBase


class GroundTruth(UUIDCreatedBase):
    """
    A snapshot of the ground truth graph.

    Attributes:
        version: "v<epoch millis>" at build time
        graph: ``{"version", "tables", "joins", "metadata"}`` where
            tables maps name -> {key, fields, delta_by}
            joins is a list of {left: "T.F", right: "T.F", type, confidence}
    """

    version: Mapped[str] = mapped_column(String(32), nullable=False)
    graph: Mapped[dict] = mapped_column(JSONB, nullable=False)

    def __repr__(self) -> str:
        return f"<GroundTruth(id={self.id}, version={self.version})>"

    @property
    def table_names(self) -> list[str]:
        return list((self.graph or {}).get("tables", {}).keys())


Index("ix_ground_truths_created_at", GroundTruth.created_at.desc())
