"""
LLM client abstraction for the query assistant.

This module provides a unified interface for Google Gemini, used for:
- Intent analysis, context enrichment and recommendations (JSON replies)
- SQL drafting (JSON replies with a ``sql`` field)
- Table summaries (free text)
- Embeddings for schema and column similarity search

Features:
- Async HTTP requests
- Retry logic with exponential backoff
- Schema-validated JSON parsing of replies (``parse_llm_json``)
- Mock client for testing
"""

import asyncio
import hashlib
import json
import math
import random
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from src.core.config import settings
from src.core.logging import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# =============================================================================
# Enums and Constants
# =============================================================================


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    GEMINI = "gemini"
    MOCK = "mock"


GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class LLMMessage:
    """Represents a message in the conversation."""

    role: str  # "system", "user", or "assistant"
    content: str


@dataclass
class LLMResponse:
    """Response from an LLM API call."""

    content: str
    model: str
    provider: LLMProvider
    usage: dict[str, int] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def input_tokens(self) -> int:
        """Get input token count."""
        return self.usage.get("input_tokens", 0)

    @property
    def output_tokens(self) -> int:
        """Get output token count."""
        return self.usage.get("output_tokens", 0)

    @property
    def total_tokens(self) -> int:
        """Get total token count."""
        return self.input_tokens + self.output_tokens


# =============================================================================
# Exceptions
# =============================================================================


class LLMError(Exception):
    """Base exception for LLM client errors."""

    pass


class LLMRateLimitError(LLMError):
    """Raised when rate limited by API."""

    pass


class LLMAPIError(LLMError):
    """Raised when API returns an error response."""

    pass


class LLMConnectionError(LLMError):
    """Raised when the API cannot be reached (timeouts, transport errors)."""

    pass


class LLMParseError(LLMError):
    """
    Raised when a reply cannot be deserialized into the expected schema.

    Attributes:
        content: The raw reply (truncated) that failed to parse
        validation_error: The underlying pydantic error, if any
    """

    def __init__(
        self,
        message: str,
        content: str = "",
        validation_error: ValidationError | None = None,
    ):
        super().__init__(message)
        self.content = content[:500]
        self.validation_error = validation_error


# =============================================================================
# Reply Parsing
# =============================================================================

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_RAW_JSON = re.compile(r"(\{.*\})", re.DOTALL)


def extract_json_block(text: str) -> str:
    """Return the fenced ```json block if present, else the outermost ``{...}``."""
    match = _FENCED_JSON.search(text)
    if match:
        return match.group(1)
    match = _RAW_JSON.search(text)
    if match:
        return match.group(1)
    return text.strip()


def parse_llm_json(content: str, model_cls: type[ModelT]) -> ModelT:
    """
    Deserialize an LLM reply into ``model_cls`` in a single validated step.

    Args:
        content: Raw reply text (may be wrapped in prose or a code fence)
        model_cls: Pydantic model describing the expected payload

    Returns:
        Validated model instance

    Raises:
        LLMParseError: Empty reply, malformed JSON, or schema mismatch
    """
    if not content or not content.strip():
        raise LLMParseError(f"Empty reply, expected {model_cls.__name__}")

    payload = extract_json_block(content)
    try:
        return model_cls.model_validate_json(payload)
    except ValidationError as e:
        raise LLMParseError(
            f"Reply does not match {model_cls.__name__}: {e.error_count()} error(s)",
            content=content,
            validation_error=e,
        ) from e


# =============================================================================
# Base LLM Client
# =============================================================================


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    def __init__(self, model: str | None = None, timeout: float = 60.0):
        """
        Initialize LLM client.

        Args:
            model: Model identifier
            timeout: Request timeout in seconds
        """
        self.model = model
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "BaseLLMClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client."""
        if self._client is None:
            raise RuntimeError(
                "LLM client must be used as async context manager: "
                "async with Client() as client: ..."
            )
        return self._client

    @abstractmethod
    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float = 0.0,
        max_tokens: int = 4096,
        json_mode: bool = True,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation messages
            temperature: Sampling temperature (0.0 = deterministic)
            max_tokens: Maximum tokens to generate
            json_mode: Ask the provider for a JSON-only reply

        Returns:
            LLMResponse with generated content
        """
        pass

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Return an embedding of ``settings.embedding_dimensions`` floats."""
        pass

    @abstractmethod
    def provider(self) -> LLMProvider:
        """Get the provider type."""
        pass


# =============================================================================
# Google Gemini Client
# =============================================================================


class GeminiClient(BaseLLMClient):
    """Client for Google Gemini API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        embedding_model: str | None = None,
        timeout: float = 60.0,
    ):
        """
        Initialize Gemini client.

        Args:
            api_key: Google API key (defaults to settings)
            model: Model name (defaults to settings.gemini_model)
            embedding_model: Embedding model (defaults to settings.gemini_embedding_model)
            timeout: Request timeout
        """
        super().__init__(model=model or settings.gemini_model, timeout=timeout)
        self.embedding_model = embedding_model or settings.gemini_embedding_model
        self.api_key = api_key or settings.google_api_key

        if not self.api_key:
            raise ValueError("Google API key not configured. Set GOOGLE_API_KEY in .env")

    def provider(self) -> LLMProvider:
        """Get provider type."""
        return LLMProvider.GEMINI

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST to Gemini, mapping status codes onto the LLM exception types."""
        try:
            response = await self.client.post(
                url,
                headers={"Content-Type": "application/json"},
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.warning("Gemini request failed", error=str(e))
            raise LLMConnectionError(f"Request to Gemini failed: {e}") from e

        if response.status_code == 429:
            logger.error(
                "Gemini rate limit details",
                status_code=response.status_code,
                body=response.text[:1000],
            )
            retry_after = response.headers.get("retry-after")
            wait_time = int(retry_after) if retry_after and retry_after.isdigit() else 10
            logger.warning("Gemini rate limit hit", retry_after=wait_time)
            # Wait before raising to let tenacity retry
            await asyncio.sleep(wait_time)
            raise LLMRateLimitError(f"Rate limit exceeded, waited {wait_time}s")

        if response.status_code == 503:
            logger.warning("Gemini service overloaded (503), retrying...")
            await asyncio.sleep(30)
            raise LLMRateLimitError("Service overloaded (503)")

        if response.status_code != 200:
            error_text = response.text[:500]
            logger.error(
                "Gemini API error",
                status_code=response.status_code,
                response=error_text,
            )
            if response.status_code == 404:
                raise LLMAPIError(f"Model not found for request {url.split('?')[0]}")
            elif response.status_code == 400:
                raise LLMAPIError(f"Bad request: {error_text}")
            elif response.status_code == 403:
                raise LLMAPIError("API key invalid or lacks permissions")
            else:
                raise LLMAPIError(f"API returned status {response.status_code}: {error_text}")

        return response.json()

    @retry(
        retry=retry_if_exception_type((LLMConnectionError, LLMRateLimitError)),
        stop=stop_after_attempt(5),
        wait=wait_random_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float = 0.0,
        max_tokens: int = 4096,
        json_mode: bool = True,
    ) -> LLMResponse:
        """Generate completion using Google Gemini API."""
        url = f"{GEMINI_API_URL}/{self.model}:generateContent?key={self.api_key}"

        contents = []
        system_instruction_text = None

        for msg in messages:
            if msg.role == "system":
                system_instruction_text = msg.content
            else:
                # Gemini expects "model" for assistant responses
                role = "model" if msg.role == "assistant" else "user"
                contents.append({"role": role, "parts": [{"text": msg.content}]})

        generation_config: dict[str, Any] = {
            "temperature": temperature,
            "max_output_tokens": max_tokens,
        }
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        payload: dict[str, Any] = {
            "contents": contents,
            "generation_config": generation_config,
        }
        if system_instruction_text:
            payload["system_instruction"] = {"parts": [{"text": system_instruction_text}]}

        logger.debug("Gemini API request", model=self.model, json_mode=json_mode)

        data = await self._post(url, payload)

        # Gemini returns: {"candidates": [{"content": {"parts": [{"text": "..."}]}}]}
        content = ""
        candidates = data.get("candidates", [])
        if candidates:
            for part in candidates[0].get("content", {}).get("parts", []):
                if "text" in part:
                    content += part["text"]

        usage_metadata = data.get("usageMetadata", {})

        return LLMResponse(
            content=content,
            model=self.model,
            provider=LLMProvider.GEMINI,
            usage={
                "input_tokens": usage_metadata.get("promptTokenCount", 0),
                "output_tokens": usage_metadata.get("candidatesTokenCount", 0),
            },
            raw_response=data,
        )

    @retry(
        retry=retry_if_exception_type((LLMConnectionError, LLMRateLimitError)),
        stop=stop_after_attempt(5),
        wait=wait_random_exponential(multiplier=1, min=2, max=30),
        reraise=True,
    )
    async def embed(self, text: str) -> list[float]:
        """Embed text with the Gemini embedding model."""
        url = f"{GEMINI_API_URL}/{self.embedding_model}:embedContent?key={self.api_key}"
        payload = {
            "model": f"models/{self.embedding_model}",
            "content": {"parts": [{"text": text}]},
            "outputDimensionality": settings.embedding_dimensions,
        }

        data = await self._post(url, payload)

        values = data.get("embedding", {}).get("values")
        if not values:
            raise LLMParseError("Embedding response contained no values", content=json.dumps(data))
        return [float(v) for v in values]


# =============================================================================
# Mock Client (for testing)
# =============================================================================


MOCK_SQL = 'SELECT "VBAK"."VBELN", "VBAK"."ERDAT" FROM "VBAK" LIMIT 10'
MOCK_SUMMARY = (
    "This table stores SAP master or transactional data used in the sales "
    "and distribution process."
)


class MockLLMClient(BaseLLMClient):
    """
    Mock LLM client for testing without API calls.

    Scripted replies (``set_responses``) are returned in order, the last one
    repeating. Without a script, a canned reply is chosen from the prompt:
    a SQL payload when SQL is requested, a summary for free-text requests,
    and ``{}`` otherwise, which sends stages with required fields to
    their fallbacks.
    """

    def __init__(self, model: str = "mock-model", timeout: float = 60.0):
        """Initialize mock client."""
        super().__init__(model=model, timeout=timeout)
        self._responses: list[str] = []
        self._call_count = 0
        self.requests: list[list[LLMMessage]] = []

    def provider(self) -> LLMProvider:
        """Get provider type."""
        return LLMProvider.MOCK

    def set_responses(self, responses: list[str]) -> None:
        """Set predefined responses for testing."""
        self._responses = responses
        self._call_count = 0

    async def complete(
        self,
        messages: list[LLMMessage],
        temperature: float = 0.0,  # noqa: ARG002 - Required by interface
        max_tokens: int = 4096,  # noqa: ARG002 - Required by interface
        json_mode: bool = True,
    ) -> LLMResponse:
        """Return mock response."""
        self.requests.append(messages)

        if self._responses:
            idx = min(self._call_count, len(self._responses) - 1)
            content = self._responses[idx]
            self._call_count += 1
        else:
            content = self._generate_default_response(messages, json_mode)

        return LLMResponse(
            content=content,
            model=self.model,
            provider=LLMProvider.MOCK,
            usage={"input_tokens": 100, "output_tokens": 50},
            raw_response={},
        )

    async def embed(self, text: str) -> list[float]:
        """Deterministic unit vector seeded from the text hash."""
        seed = int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:16], 16)
        rng = random.Random(seed)
        vector = [rng.uniform(-1.0, 1.0) for _ in range(settings.embedding_dimensions)]
        norm = math.sqrt(sum(v * v for v in vector)) or 1.0
        return [v / norm for v in vector]

    def _generate_default_response(self, messages: list[LLMMessage], json_mode: bool) -> str:
        """Pick a canned reply based on the request."""
        if not json_mode:
            return MOCK_SUMMARY

        prompt = " ".join(msg.content for msg in messages).lower()
        if '"sql"' in prompt:
            return json.dumps({
                "sql": MOCK_SQL,
                "confidence": 0.8,
                "explanation": "Lists sales documents with their creation date.",
                "businessLogic": "Sales headers are read from VBAK.",
            })
        return json.dumps({})


# =============================================================================
# Factory Function
# =============================================================================


def get_llm_client(
    provider: str | LLMProvider | None = None,
    **kwargs,
) -> BaseLLMClient:
    """
    Factory function to get an LLM client.

    Args:
        provider: Provider name ("gemini", "mock"), defaults to settings.llm_provider
        **kwargs: Additional arguments passed to client constructor

    Example:
        async with get_llm_client() as llm:
            reply = await llm.complete(messages)
            payload = parse_llm_json(reply.content, IntentPayload)
    """
    if provider is None:
        provider = settings.llm_provider

    if isinstance(provider, str):
        provider = LLMProvider(provider.lower())

    if provider == LLMProvider.GEMINI:
        return GeminiClient(**kwargs)
    elif provider == LLMProvider.MOCK:
        return MockLLMClient(**kwargs)
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")
