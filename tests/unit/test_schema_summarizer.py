"""Unit tests for table summaries: field descriptions, LLM summary and storage."""

from types import SimpleNamespace
from typing import Any

import pytest

from src.core.config import settings
from src.db.models import SchemaSummary
from src.services.extractor import TableStructure
from src.services.llm_client import MOCK_SUMMARY, MockLLMClient
from src.services.schema_summarizer import (
    NO_SUMMARY,
    SchemaSummarizerAgent,
    TableSummary,
    describe_field,
    extract_key_fields,
    extract_relationships,
)


def _by_name(tables: list[TableStructure], name: str) -> TableStructure:
    return next(t for t in tables if t.table_name == name)


# =============================================================================
# Field Helper Tests
# =============================================================================


class TestFieldHelpers:
    """Tests for the pure helpers that feed the summary prompt."""

    def test_key_fields(self, sample_tables: list[TableStructure]) -> None:
        """Primary and foreign keys are key fields; plain attributes are not."""
        assert extract_key_fields(_by_name(sample_tables, "VBAP")) == ["VBELN", "POSNR", "MATNR"]
        assert extract_key_fields(_by_name(sample_tables, "MARA")) == ["MATNR"]

    def test_relationships(self, sample_tables: list[TableStructure]) -> None:
        assert extract_relationships(_by_name(sample_tables, "VBAP")) == [
            "VBELN -> VBAK.VBELN",
            "MATNR -> MARA.MATNR",
        ]
        assert extract_relationships(_by_name(sample_tables, "KNA1")) == []

    def test_describe_field(self, sample_tables: list[TableStructure]) -> None:
        vbak = _by_name(sample_tables, "VBAK")
        assert describe_field(vbak.get_field("KUNNR")) == "KUNNR (VARCHAR(10), foreign key to KNA1.KUNNR)"
        assert describe_field(vbak.get_field("ERDAT")) == "ERDAT (DATE, nullable)"


# =============================================================================
# Summary Generation Tests
# =============================================================================


class TestSummaryGeneration:
    """Tests for generate_schema_summary with the mock LLM."""

    async def test_summary_for_known_table(self, sample_tables: list[TableStructure]) -> None:
        agent = SchemaSummarizerAgent(None, MockLLMClient(), delay_seconds=0)  # type: ignore[arg-type]

        summary = await agent.generate_schema_summary(_by_name(sample_tables, "VBAK"))

        assert summary.table_name == "VBAK"
        assert summary.summary == MOCK_SUMMARY.strip()
        assert len(summary.embedding) == settings.embedding_dimensions
        assert summary.business_context.startswith("Sales Document Header")
        assert summary.key_fields == ["VBELN", "KUNNR"]
        assert summary.relationships == ["KUNNR -> KNA1.KUNNR"]

    async def test_blank_reply_uses_placeholder(self, sample_tables: list[TableStructure]) -> None:
        """An empty LLM reply is stored as the placeholder text."""
        llm = MockLLMClient()
        llm.set_responses(["   "])
        agent = SchemaSummarizerAgent(None, llm, delay_seconds=0)  # type: ignore[arg-type]

        summary = await agent.generate_schema_summary(_by_name(sample_tables, "MARA"))

        assert summary.summary == NO_SUMMARY

    async def test_unknown_table_context(self) -> None:
        agent = SchemaSummarizerAgent(None, MockLLMClient(), delay_seconds=0)  # type: ignore[arg-type]
        table = TableStructure(table_name="BSEG", fields=[], sample_data=[], record_count=0)

        summary = await agent.generate_schema_summary(table)

        assert summary.business_context == "Unknown business context"
        assert summary.key_fields == []

    async def test_prompt_carries_table_structure(self, sample_tables: list[TableStructure]) -> None:
        llm = MockLLMClient()
        agent = SchemaSummarizerAgent(None, llm, delay_seconds=0)  # type: ignore[arg-type]

        await agent.generate_schema_summary(_by_name(sample_tables, "VBAP"))

        user_prompt = llm.requests[0][1].content
        assert "Table: VBAP" in user_prompt
        assert "MATNR (VARCHAR(18), nullable, foreign key to MARA.MATNR)" in user_prompt
        assert "Record Count: 100" in user_prompt


# =============================================================================
# Storage Tests
# =============================================================================


class TestSummaryStorage:
    """Upsert, search and batch processing against a recording session."""

    async def test_save_inserts_new_row(self, recording_session: Any) -> None:
        recording_session.queue_result(scalar=None)
        agent = SchemaSummarizerAgent(recording_session, MockLLMClient(), delay_seconds=0)

        row = await agent.save_schema_summary(TableSummary(table_name="KNA1", summary="Customers", embedding=[0.1]))

        assert recording_session.calls == ["execute", "add", "commit"]
        assert row.table == "KNA1"
        assert row.summary == "Customers"

    async def test_save_overwrites_existing_row(self, recording_session: Any) -> None:
        existing = SchemaSummary(table="KNA1", summary="Old", embedding=None)
        recording_session.queue_result(scalar=existing)
        agent = SchemaSummarizerAgent(recording_session, MockLLMClient(), delay_seconds=0)

        row = await agent.save_schema_summary(TableSummary(table_name="KNA1", summary="New", embedding=[0.2]))

        assert row is existing
        assert existing.summary == "New"
        assert existing.embedding == [0.2]
        assert recording_session.calls == ["execute", "commit"]

    async def test_process_all_tables(
        self,
        recording_session: Any,
        sample_tables: list[TableStructure],
    ) -> None:
        """Every table is summarized and stored, in order."""
        agent = SchemaSummarizerAgent(recording_session, MockLLMClient(), delay_seconds=0)

        summaries = await agent.process_all_tables(sample_tables)

        assert [s.table_name for s in summaries] == ["MARA", "KNA1", "VBAK", "VBAP"]
        assert recording_session.calls == ["execute", "add", "commit"] * 4
        assert [r.table for r in recording_session.added] == ["MARA", "KNA1", "VBAK", "VBAP"]

    async def test_find_similar_schemas(self, recording_session: Any) -> None:
        recording_session.queue_result(rows=[
            SimpleNamespace(table="VBAK", summary="Sales headers", distance=0.25),
            SimpleNamespace(table="VBAP", summary="Sales items", distance=0.5),
        ])
        agent = SchemaSummarizerAgent(recording_session, MockLLMClient(), delay_seconds=0)

        results = await agent.find_similar_schemas("sales orders", limit=2)

        assert results == [
            {"table_name": "VBAK", "summary": "Sales headers", "similarity": pytest.approx(0.75)},
            {"table_name": "VBAP", "summary": "Sales items", "similarity": pytest.approx(0.5)},
        ]
