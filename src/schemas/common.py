"""Common Pydantic schemas used across API endpoints."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


# =============================================================================
# Envelopes
# =============================================================================


class APIResponse(BaseModel, Generic[T]):
    """Success envelope: ``{"success": true, "data": ..., "message": ...}``."""

    success: bool = Field(default=True, description="Always true for 2xx responses")
    data: T | None = Field(default=None, description="Endpoint payload")
    message: str | None = Field(default=None, description="Human-readable status message")

    @classmethod
    def ok(cls, data: T, message: str | None = None) -> "APIResponse[T]":
        return cls(success=True, data=data, message=message)


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx raised through ``HTTPException``."""

    detail: str = Field(description="Error message")


# =============================================================================
# Statistics
# =============================================================================


class SAPTableStats(BaseModel):
    """Row counts of the simulated SAP tables; 0 when a count fails."""

    mara: int = Field(description="Material master rows")
    vbak: int = Field(description="Sales document header rows")
    vbap: int = Field(description="Sales document item rows")
    kna1: int = Field(description="Customer master rows")
