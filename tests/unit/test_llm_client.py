"""Unit tests for LLM reply parsing and the mock client."""

import json

import pytest
from pydantic import BaseModel

from src.services.llm_client import (
    LLMMessage,
    LLMParseError,
    LLMProvider,
    MockLLMClient,
    extract_json_block,
    get_llm_client,
    parse_llm_json,
)
from src.services.sap_query_generator import SAPSQLReply


class _Reply(BaseModel):
    sql: str
    confidence: float = 0.5


# =============================================================================
# Reply Parsing Tests
# =============================================================================


class TestExtractJsonBlock:
    """Tests for locating the JSON payload in a reply."""

    def test_fenced_block(self) -> None:
        """A ```json fence wins over surrounding prose."""
        text = 'Here you go:\n```json\n{"sql": "SELECT 1"}\n```\nDone.'
        assert extract_json_block(text) == '{"sql": "SELECT 1"}'

    def test_raw_object(self) -> None:
        """Without a fence the outermost braces are used."""
        text = 'Result: {"sql": "SELECT 1", "meta": {"a": 1}} end'
        assert extract_json_block(text) == '{"sql": "SELECT 1", "meta": {"a": 1}}'

    def test_no_json(self) -> None:
        """Plain text is returned stripped."""
        assert extract_json_block("  nothing here  ") == "nothing here"


class TestParseLLMJson:
    """Tests for single-step reply validation."""

    def test_valid_reply(self) -> None:
        """A matching payload is validated into the model."""
        reply = parse_llm_json('```json\n{"sql": "SELECT 1", "confidence": 0.9}\n```', _Reply)
        assert reply.sql == "SELECT 1"
        assert reply.confidence == 0.9

    def test_empty_reply(self) -> None:
        """Empty content raises a parse error."""
        with pytest.raises(LLMParseError):
            parse_llm_json("   ", _Reply)

    def test_malformed_json(self) -> None:
        """Broken JSON raises a parse error carrying the content."""
        with pytest.raises(LLMParseError) as exc_info:
            parse_llm_json('{"sql": ', _Reply)
        assert exc_info.value.content.startswith('{"sql"')

    def test_schema_mismatch(self) -> None:
        """Missing required fields raise with the pydantic error attached."""
        with pytest.raises(LLMParseError) as exc_info:
            parse_llm_json('{"confidence": 0.3}', _Reply)
        assert exc_info.value.validation_error is not None

    def test_camel_case_alias(self) -> None:
        """SQL replies accept the camelCase businessLogic key."""
        payload = json.dumps({
            "sql": "SELECT 1",
            "confidence": 0.7,
            "explanation": "x",
            "businessLogic": "y",
        })
        reply = parse_llm_json(payload, SAPSQLReply)
        assert reply.business_logic == "y"


# =============================================================================
# Mock Client Tests
# =============================================================================


class TestMockLLMClient:
    """Tests for the mock client used throughout the test suite."""

    async def test_scripted_responses_repeat_last(self) -> None:
        """Scripted replies are returned in order, the last one repeating."""
        mock = MockLLMClient()
        mock.set_responses(["first", "second"])
        messages = [LLMMessage(role="user", content="hi")]

        assert (await mock.complete(messages)).content == "first"
        assert (await mock.complete(messages)).content == "second"
        assert (await mock.complete(messages)).content == "second"
        assert len(mock.requests) == 3

    async def test_default_sql_reply(self) -> None:
        """Prompts asking for a "sql" key get a parseable SQL reply."""
        mock = MockLLMClient()
        response = await mock.complete([LLMMessage(role="user", content='Return {"sql": ...}')])
        reply = parse_llm_json(response.content, SAPSQLReply)
        assert reply.sql.startswith("SELECT")
        assert reply.confidence == 0.8

    async def test_default_free_text_reply(self) -> None:
        """Non-JSON requests get a plain summary."""
        mock = MockLLMClient()
        response = await mock.complete([LLMMessage(role="user", content="Summarize")], json_mode=False)
        assert not response.content.startswith("{")

    async def test_embed_is_deterministic_unit_vector(self) -> None:
        """Embeddings are stable per text and normalized."""
        mock = MockLLMClient()
        first = await mock.embed("customer number")
        second = await mock.embed("customer number")
        assert first == second
        assert sum(v * v for v in first) == pytest.approx(1.0)

    def test_factory_returns_mock(self) -> None:
        """The factory resolves provider names case-insensitively."""
        client = get_llm_client("MOCK")
        assert isinstance(client, MockLLMClient)
        assert client.provider() == LLMProvider.MOCK
