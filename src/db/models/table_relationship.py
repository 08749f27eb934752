"""
TableRelationship model: inferred join paths between SAP tables.

Relationship inference rebuilds its rows wholesale on every run
(delete the ``inferred`` rows, then insert), so there is no incremental
maintenance. The unique constraint on the four join columns keeps a run
from storing the same join twice.
"""

from sqlalchemy import CheckConstraint, Float, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import UUIDCreatedBase


class TableRelationship(UUIDCreatedBase):
    """
    A (directed) join between two table columns.

    Attributes:
        left_table / left_column: Referencing side (e.g. VBAK.KUNNR)
        right_table / right_column: Referenced side (e.g. KNA1.KUNNR)
        relationship_type: Cardinality or provenance tag (see RelationshipType)
        join_type: "inner" / "left" / "right" / "full"
        confidence: Inference confidence (0.0 to 1.0)
        business_rule: Provenance string, "<method>: <evidence>" or a rule text
        inference_method: Method that produced the relationship
        evidence: Evidence strings collected during inference

    Example:
        TableRelationship(
            left_table="VBAP", left_column="VBELN",
            right_table="VBAK", right_column="VBELN",
            relationship_type="inferred", join_type="inner",
            confidence=0.98,
            business_rule="Sales items always belong to a sales header",
        )
    """

    # === Join Columns ===
    left_table: Mapped[str] = mapped_column(String(64), nullable=False)
    left_column: Mapped[str] = mapped_column(String(64), nullable=False)
    right_table: Mapped[str] = mapped_column(String(64), nullable=False)
    right_column: Mapped[str] = mapped_column(String(64), nullable=False)

    # === Classification ===
    relationship_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="one_to_many, inferred, semantic_match, ...",
    )

    join_type: Mapped[str] = mapped_column(String(16), nullable=False, default="inner")

    confidence: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        comment="Inference confidence (0.0 to 1.0)",
    )

    # === Provenance ===
    business_rule: Mapped[str | None] = mapped_column(Text, nullable=True)
    inference_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    evidence: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "left_table", "left_column", "right_table", "right_column",
            name="uq_table_relationships_join",
        ),
        CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="confidence_range",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<TableRelationship({self.left_table}.{self.left_column} -> "
            f"{self.right_table}.{self.right_column}, {self.confidence:.2f})>"
        )


Index("ix_table_relationships_left", TableRelationship.left_table, TableRelationship.left_column)
Index("ix_table_relationships_right", TableRelationship.right_table, TableRelationship.right_column)
