"""
Ground truth builder: the reference graph of tables and joins.

The graph is a plain JSON document::

    {
        "version": "v1730000000000",
        "tables": {"VBAK": {"key": ["VBELN"], "fields": [...], "delta_by": "ERDAT"}},
        "joins": [{"left": "VBAK.KUNNR", "right": "KNA1.KUNNR", "type": "left", "confidence": 0.8}],
        "metadata": {"generated_at": ..., "total_tables": 4, "total_joins": 3, "confidence": 0.87}
    }

It is built from the extracted table structures (explicit foreign keys
only), stored append-only and read back by the validators.
"""

import time
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import get_logger
from src.db.enums import JoinType
from src.db.models import GroundTruth
from src.services.extractor import TableStructure

logger = get_logger(__name__)

DELTA_FIELD_CANDIDATES = ("LAEDA", "ERDAT", "AEDAT", "CHANGED_ON")

DEFAULT_JOIN = (JoinType.INNER.value, 0.9)

# (left table, right table) -> (join type, confidence)
JOIN_OVERRIDES: dict[tuple[str, str], tuple[str, float]] = {
    ("VBAP", "MARA"): (JoinType.LEFT.value, 0.85),
    ("VBAP", "VBAK"): (JoinType.INNER.value, 0.95),
    ("VBAK", "KNA1"): (JoinType.LEFT.value, 0.8),
}

LOW_CONFIDENCE_THRESHOLD = 0.7


def find_delta_field(table: TableStructure) -> str | None:
    """Change-tracking field: a known SAP delta field, else any date field."""
    for candidate in DELTA_FIELD_CANDIDATES:
        f = table.get_field(candidate)
        if f is not None and "DATE" in f.type.upper():
            return candidate

    for f in table.fields:
        field_type = f.type.upper()
        if "DATE" in field_type or "TIMESTAMP" in field_type:
            return f.name
    return None


def build_table_definition(table: TableStructure) -> dict[str, Any]:
    return {
        "key": [f.name for f in table.fields if f.is_primary_key],
        "fields": [f.name for f in table.fields],
        "delta_by": find_delta_field(table),
    }


def create_join(left_table: str, left_field: str, right_table: str, right_field: str) -> dict[str, Any]:
    join_type, confidence = JOIN_OVERRIDES.get((left_table, right_table), DEFAULT_JOIN)
    return {
        "left": f"{left_table}.{left_field}",
        "right": f"{right_table}.{right_field}",
        "type": join_type,
        "confidence": confidence,
    }


def infer_joins(tables: list[TableStructure]) -> list[dict[str, Any]]:
    """One join per foreign key whose referenced table is part of the graph."""
    present = {table.table_name for table in tables}
    joins = []
    for table in tables:
        for f in table.fields:
            if not (f.is_foreign_key and f.referenced_table and f.referenced_field):
                continue
            if f.referenced_table not in present:
                continue
            joins.append(create_join(table.table_name, f.name, f.referenced_table, f.referenced_field))
    return joins


def overall_confidence(joins: list[dict[str, Any]]) -> float:
    if not joins:
        return 0.0
    return sum(join["confidence"] for join in joins) / len(joins)


def validate_ground_truth(graph: dict[str, Any]) -> dict[str, Any]:
    """Check that every join side names a known table and flag weak joins."""
    errors: list[str] = []
    warnings: list[str] = []
    tables = graph.get("tables", {})
    joins = graph.get("joins", [])

    for join in joins:
        left_table = join["left"].split(".")[0]
        right_table = join["right"].split(".")[0]
        if left_table not in tables:
            errors.append(f"Join references non-existent left table: {left_table}")
        if right_table not in tables:
            errors.append(f"Join references non-existent right table: {right_table}")

    low_confidence = [j for j in joins if j.get("confidence", 0) < LOW_CONFIDENCE_THRESHOLD]
    if low_confidence:
        warnings.append(f"{len(low_confidence)} joins have confidence below 70%")

    return {"is_valid": not errors, "errors": errors, "warnings": warnings}


class GroundTruthBuilder:
    """Builds, validates and stores ground truth graphs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def build_ground_truth(self, tables: list[TableStructure]) -> dict[str, Any]:
        table_defs = {table.table_name: build_table_definition(table) for table in tables}
        joins = infer_joins(tables)

        graph = {
            "version": f"v{int(time.time() * 1000)}",
            "tables": table_defs,
            "joins": joins,
            "metadata": {
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "total_tables": len(table_defs),
                "total_joins": len(joins),
                "confidence": overall_confidence(joins),
            },
        }
        logger.info(
            "Ground truth built",
            version=graph["version"],
            tables=len(table_defs),
            joins=len(joins),
        )
        return graph

    def validate_ground_truth(self, graph: dict[str, Any]) -> dict[str, Any]:
        return validate_ground_truth(graph)

    async def save_ground_truth(self, graph: dict[str, Any]) -> str:
        """Append a new version; returns its id."""
        row = GroundTruth(version=graph["version"], graph=graph)
        self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        logger.info("Ground truth saved", id=str(row.id), version=row.version)
        return str(row.id)

    async def get_latest_ground_truth(self) -> dict[str, Any] | None:
        result = await self.db.execute(
            select(GroundTruth).order_by(GroundTruth.created_at.desc()).limit(1)
        )
        row = result.scalar_one_or_none()
        return row.graph if row else None

    async def get_all_versions(self) -> list[dict[str, Any]]:
        """id, version and created_at of every stored graph, newest first."""
        result = await self.db.execute(
            select(GroundTruth.id, GroundTruth.version, GroundTruth.created_at)
            .order_by(GroundTruth.created_at.desc())
        )
        return [
            {"id": str(row.id), "version": row.version, "created_at": row.created_at}
            for row in result.all()
        ]
