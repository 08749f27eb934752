"""Shared FastAPI dependencies and error helpers."""

from collections.abc import AsyncGenerator

from fastapi import HTTPException, status

from src.core.logging import get_logger
from src.services.llm_client import BaseLLMClient, get_llm_client

logger = get_logger(__name__)


async def get_llm() -> AsyncGenerator[BaseLLMClient, None]:
    """
    Request-scoped LLM client for the configured provider.

    Tests override this dependency with a ``MockLLMClient``.
    """
    async with get_llm_client() as llm:
        yield llm


def server_error(action: str, error: Exception) -> HTTPException:
    """500 with ``"Failed to <action>: <error>"`` as detail."""
    logger.error("Request failed", action=action, error=str(error))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {error}",
    )


def require_text(value: str | None, detail: str) -> str:
    """400 with ``detail`` when ``value`` is missing or blank."""
    if not value or not value.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    return value
