"""
Simulated SAP tables: MARA, KNA1, VBAK, VBAP.

These mirror a small slice of SAP SD/MM:

    KNA1 (customer master) <-- VBAK (sales header) <-- VBAP (sales item) --> MARA (material master)

Table and column names are uppercase and therefore quoted in PostgreSQL.
That is why generated SQL must reference them as ``"VBAK"."VBELN"``; the
identifier quoting in ``src.services.sql_utils`` exists for this reason.

Rows are populated by ``scripts/seed.py`` with Faker data.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from src.db.base import Base


class Mara(Base):
    """General material master data (MM)."""

    __tablename__ = "MARA"

    MATNR: Mapped[str] = mapped_column("MATNR", String(18), primary_key=True, comment="Material number")
    MTART: Mapped[str] = mapped_column("MTART", String(4), nullable=False, comment="Material type")
    MATKL: Mapped[str | None] = mapped_column("MATKL", String(9), nullable=True, comment="Material group")
    MEINS: Mapped[str] = mapped_column("MEINS", String(3), nullable=False, comment="Base unit of measure")
    LAEDA: Mapped[date | None] = mapped_column("LAEDA", Date, nullable=True, comment="Date of last change")

    def __repr__(self) -> str:
        return f"<MARA(MATNR={self.MATNR}, MTART={self.MTART})>"


class Kna1(Base):
    """General customer master data (SD)."""

    __tablename__ = "KNA1"

    KUNNR: Mapped[str] = mapped_column("KUNNR", String(10), primary_key=True, comment="Customer number")
    LAND1: Mapped[str | None] = mapped_column("LAND1", String(2), nullable=True, comment="Country key")
    ORT01: Mapped[str | None] = mapped_column("ORT01", String(25), nullable=True, comment="City")
    NAME1: Mapped[str] = mapped_column("NAME1", String(35), nullable=False, comment="Name 1")
    REGIO: Mapped[str | None] = mapped_column("REGIO", String(3), nullable=True, comment="Region")

    def __repr__(self) -> str:
        return f"<KNA1(KUNNR={self.KUNNR}, NAME1={self.NAME1})>"


class Vbak(Base):
    """Sales document header data (SD)."""

    __tablename__ = "VBAK"

    VBELN: Mapped[str] = mapped_column("VBELN", String(10), primary_key=True, comment="Sales document")
    AUART: Mapped[str | None] = mapped_column("AUART", String(4), nullable=True, comment="Sales document type")
    ERDAT: Mapped[date | None] = mapped_column("ERDAT", Date, nullable=True, comment="Created on")
    KUNNR: Mapped[str] = mapped_column(
        "KUNNR",
        String(10),
        ForeignKey("KNA1.KUNNR"),
        nullable=False,
        comment="Sold-to party",
    )
    VKORG: Mapped[str | None] = mapped_column("VKORG", String(4), nullable=True, comment="Sales organization")

    def __repr__(self) -> str:
        return f"<VBAK(VBELN={self.VBELN}, KUNNR={self.KUNNR})>"


class Vbap(Base):
    """Sales document item data (SD)."""

    __tablename__ = "VBAP"

    VBELN: Mapped[str] = mapped_column(
        "VBELN",
        String(10),
        ForeignKey("VBAK.VBELN", ondelete="CASCADE"),
        primary_key=True,
        comment="Sales document",
    )
    POSNR: Mapped[str] = mapped_column("POSNR", String(6), primary_key=True, comment="Item number")
    MATNR: Mapped[str | None] = mapped_column(
        "MATNR",
        String(18),
        ForeignKey("MARA.MATNR"),
        nullable=True,
        comment="Material number",
    )
    KWMENG: Mapped[Decimal | None] = mapped_column(
        "KWMENG",
        Numeric(15, 3),
        nullable=True,
        comment="Cumulative order quantity",
    )
    WERKS: Mapped[str | None] = mapped_column("WERKS", String(4), nullable=True, comment="Plant")
    ERDAT: Mapped[date | None] = mapped_column("ERDAT", Date, nullable=True, comment="Created on")

    def __repr__(self) -> str:
        return f"<VBAP(VBELN={self.VBELN}, POSNR={self.POSNR}, MATNR={self.MATNR})>"


# Table name -> model, in extraction order
SAP_TABLE_MODELS: dict[str, type[Base]] = {
    "MARA": Mara,
    "KNA1": Kna1,
    "VBAK": Vbak,
    "VBAP": Vbap,
}


Index("ix_vbak_kunnr", Vbak.KUNNR)
Index("ix_vbap_matnr", Vbap.MATNR)
