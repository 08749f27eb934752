"""
Extractor service: table structures and sample rows of the SAP tables.

The extractor is the first stage of metadata initialization. For each of
the four simulated SAP tables it returns the field list (types, keys,
foreign keys), 5 sample rows and the row count. Downstream stages
(schema summarizer, column analyzer, ground truth builder) consume the
resulting ``ExtractedData``.

Usage:
    async with get_db_context() as db:
        extractor = ExtractorService(db)
        data = await extractor.extract_all_tables()
        path = extractor.save_extracted_data(data)
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.logging import get_logger
from src.db.models import SAP_TABLE_MODELS
from src.services.sap_catalog import SAP_TABLES, SAPColumn

logger = get_logger(__name__)

SAMPLE_SIZE = 5


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class FieldInfo:
    """Physical description of one table field."""

    name: str
    type: str
    nullable: bool = True
    is_primary_key: bool = False
    is_foreign_key: bool = False
    referenced_table: str | None = None
    referenced_field: str | None = None

    @classmethod
    def from_column(cls, column: SAPColumn) -> "FieldInfo":
        return cls(
            name=column.name,
            type=column.type,
            nullable=column.nullable,
            is_primary_key=column.is_key,
            is_foreign_key=column.is_foreign_key,
            referenced_table=column.referenced_table,
            referenced_field=column.referenced_column,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldInfo":
        return cls(
            name=data["name"],
            type=data.get("type", ""),
            nullable=data.get("nullable", True),
            is_primary_key=data.get("is_primary_key", False),
            is_foreign_key=data.get("is_foreign_key", False),
            referenced_table=data.get("referenced_table"),
            referenced_field=data.get("referenced_field"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "nullable": self.nullable,
            "is_primary_key": self.is_primary_key,
            "is_foreign_key": self.is_foreign_key,
            "referenced_table": self.referenced_table,
            "referenced_field": self.referenced_field,
        }


@dataclass
class TableStructure:
    """Fields, sample rows and record count of one table."""

    table_name: str
    fields: list[FieldInfo] = field(default_factory=list)
    sample_data: list[dict[str, Any]] = field(default_factory=list)
    record_count: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableStructure":
        return cls(
            table_name=data["table_name"],
            fields=[FieldInfo.from_dict(f) for f in data.get("fields", [])],
            sample_data=list(data.get("sample_data", [])),
            record_count=int(data.get("record_count", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "fields": [f.to_dict() for f in self.fields],
            "sample_data": self.sample_data,
            "record_count": self.record_count,
        }

    def get_field(self, name: str) -> FieldInfo | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass
class ExtractedData:
    """Result of a full extraction run."""

    tables: list[TableStructure]
    extracted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_records(self) -> int:
        return sum(t.record_count for t in self.tables)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tables": [t.to_dict() for t in self.tables],
            "extracted_at": self.extracted_at.isoformat(),
            "metadata": {
                "total_tables": len(self.tables),
                "total_records": self.total_records,
            },
        }


# =============================================================================
# Extractor Service
# =============================================================================


class ExtractorService:
    """
    Reads structure and samples of the simulated SAP tables.

    Args:
        db: Async database session
        extract_dir: Directory for JSON dumps (defaults to settings.extract_dir)
    """

    def __init__(self, db: AsyncSession, extract_dir: str | Path | None = None):
        self.db = db
        self.extract_dir = Path(extract_dir or settings.extract_dir)

    async def extract_all_tables(self) -> ExtractedData:
        """Extract MARA, KNA1, VBAK and VBAP, in that order."""
        tables = []
        for table_name in SAP_TABLE_MODELS:
            tables.append(await self.extract_table_structure(table_name))

        data = ExtractedData(tables=tables)
        logger.info(
            "Extraction complete",
            tables=len(tables),
            total_records=data.total_records,
        )
        return data

    async def extract_table_structure(self, table_name: str) -> TableStructure:
        """Field list from the catalogue plus sample rows and count from the database."""
        model = SAP_TABLE_MODELS[table_name]
        catalogue = SAP_TABLES[table_name]

        result = await self.db.execute(select(model).limit(SAMPLE_SIZE))
        sample_data = [row.to_dict() for row in result.scalars().all()]

        record_count = await self.db.scalar(select(func.count()).select_from(model)) or 0

        logger.debug(
            "Table extracted",
            table=table_name,
            samples=len(sample_data),
            record_count=record_count,
        )

        return TableStructure(
            table_name=table_name,
            fields=[FieldInfo.from_column(col) for col in catalogue.columns],
            sample_data=sample_data,
            record_count=int(record_count),
        )

    def save_extracted_data(self, data: ExtractedData) -> str:
        """
        Write the extraction to ``<extract_dir>/sap_extraction_<timestamp>.json``.

        Returns:
            Path of the written file
        """
        self.extract_dir.mkdir(parents=True, exist_ok=True)
        timestamp = data.extracted_at.isoformat().replace(":", "-").replace(".", "-")
        path = self.extract_dir / f"sap_extraction_{timestamp}.json"
        path.write_text(json.dumps(data.to_dict(), indent=2, default=str), encoding="utf-8")
        logger.info("Extracted data saved", path=str(path))
        return str(path)
