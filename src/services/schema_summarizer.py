"""
Schema summarizer: one business summary and embedding per SAP table.

For each extracted table the LLM writes a short business-focused summary.
The summary is embedded and stored in ``schema_summaries`` so that
natural-language questions can be matched to tables by vector similarity.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.logging import get_logger
from src.db.models import SchemaSummary
from src.services.extractor import FieldInfo, TableStructure
from src.services.llm_client import BaseLLMClient, LLMMessage

logger = get_logger(__name__)


# =============================================================================
# Prompts
# =============================================================================

SUMMARY_SYSTEM_PROMPT = (
    "You are an expert SAP business analyst. "
    "Provide clear, business-focused summaries of SAP table structures."
)

SUMMARY_USER_PROMPT = """Analyze this SAP table structure and provide a comprehensive semantic summary:

Table: {table_name}
Fields: {fields}

Sample Data:
{sample_data}

Record Count: {record_count}

Please provide:
1. Business purpose of this table
2. Key business entities it represents
3. Main use cases and business processes
4. Data quality and completeness observations
5. Relationships to other business entities

Keep the summary concise but comprehensive, focusing on business meaning rather than technical details."""

NO_SUMMARY = "No summary generated"

BUSINESS_CONTEXT: dict[str, str] = {
    "MARA": "Material Master - Core product/material information for inventory and sales",
    "KNA1": "Customer Master - Customer demographic and contact information",
    "VBAK": "Sales Document Header - Sales order header information and customer assignments",
    "VBAP": "Sales Document Items - Individual line items within sales orders",
}


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class TableSummary:
    """Summary of one table, before and after persistence."""

    table_name: str
    summary: str
    embedding: list[float] = field(default_factory=list, repr=False)
    business_context: str = ""
    key_fields: list[str] = field(default_factory=list)
    relationships: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_name": self.table_name,
            "summary": self.summary,
            "business_context": self.business_context,
            "key_fields": self.key_fields,
            "relationships": self.relationships,
        }


def describe_field(f: FieldInfo) -> str:
    """``NAME (TYPE, nullable, primary key, foreign key to T.F)``"""
    parts = [f.type]
    if f.nullable:
        parts.append("nullable")
    if f.is_primary_key:
        parts.append("primary key")
    if f.is_foreign_key:
        parts.append(f"foreign key to {f.referenced_table}.{f.referenced_field}")
    return f"{f.name} ({', '.join(parts)})"


def extract_key_fields(table: TableStructure) -> list[str]:
    return [
        f.name
        for f in table.fields
        if f.is_primary_key or f.is_foreign_key or "DATE" in f.name or "NUM" in f.name
    ]


def extract_relationships(table: TableStructure) -> list[str]:
    return [
        f"{f.name} -> {f.referenced_table}.{f.referenced_field}"
        for f in table.fields
        if f.is_foreign_key
    ]


# =============================================================================
# Summarizer Agent
# =============================================================================


class SchemaSummarizerAgent:
    """
    Generates, stores and searches table summaries.

    Args:
        db: Async database session
        llm_client: LLM client (must be entered as async context manager)
        delay_seconds: Pause between tables in ``process_all_tables``
    """

    def __init__(
        self,
        db: AsyncSession,
        llm_client: BaseLLMClient,
        delay_seconds: float | None = None,
    ):
        self.db = db
        self.llm = llm_client
        self.delay_seconds = settings.summary_delay_seconds if delay_seconds is None else delay_seconds

    async def generate_schema_summary(self, table: TableStructure) -> TableSummary:
        summary = await self._generate_semantic_summary(table)
        embedding = await self.llm.embed(summary)

        return TableSummary(
            table_name=table.table_name,
            summary=summary,
            embedding=embedding,
            business_context=BUSINESS_CONTEXT.get(table.table_name, "Unknown business context"),
            key_fields=extract_key_fields(table),
            relationships=extract_relationships(table),
        )

    async def _generate_semantic_summary(self, table: TableStructure) -> str:
        prompt = SUMMARY_USER_PROMPT.format(
            table_name=table.table_name,
            fields=", ".join(describe_field(f) for f in table.fields),
            sample_data=json.dumps(table.sample_data[:3], indent=2, default=str),
            record_count=table.record_count,
        )
        response = await self.llm.complete(
            [
                LLMMessage(role="system", content=SUMMARY_SYSTEM_PROMPT),
                LLMMessage(role="user", content=prompt),
            ],
            temperature=0.3,
            max_tokens=500,
            json_mode=False,
        )
        return response.content.strip() or NO_SUMMARY

    async def save_schema_summary(self, summary: TableSummary) -> SchemaSummary:
        """Insert or overwrite the row for ``summary.table_name``."""
        result = await self.db.execute(
            select(SchemaSummary).where(SchemaSummary.table == summary.table_name)
        )
        row = result.scalar_one_or_none()

        if row:
            row.summary = summary.summary
            row.embedding = summary.embedding
        else:
            row = SchemaSummary(
                table=summary.table_name,
                summary=summary.summary,
                embedding=summary.embedding,
            )
            self.db.add(row)

        await self.db.commit()
        return row

    async def find_similar_schemas(self, query_text: str, limit: int = 5) -> list[dict[str, Any]]:
        """Tables whose summary is closest to ``query_text`` (cosine similarity)."""
        query_embedding = await self.llm.embed(query_text)
        distance = SchemaSummary.embedding.cosine_distance(query_embedding)

        result = await self.db.execute(
            select(SchemaSummary.table, SchemaSummary.summary, distance.label("distance"))
            .where(SchemaSummary.embedding.is_not(None))
            .order_by(distance)
            .limit(limit)
        )
        return [
            {
                "table_name": row.table,
                "summary": row.summary,
                "similarity": 1.0 - float(row.distance),
            }
            for row in result.all()
        ]

    async def process_all_tables(self, tables: list[TableStructure]) -> list[TableSummary]:
        """Summarize and store every table, pausing between tables."""
        summaries = []
        for i, table in enumerate(tables):
            summary = await self.generate_schema_summary(table)
            await self.save_schema_summary(summary)
            summaries.append(summary)
            logger.info("Schema summarized", table=table.table_name)

            if self.delay_seconds and i < len(tables) - 1:
                await asyncio.sleep(self.delay_seconds)

        return summaries
