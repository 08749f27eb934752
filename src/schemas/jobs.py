"""Pydantic schemas for background job endpoints."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.db.enums import JobStatus


class JobType(str, Enum):
    """Job type enumeration."""

    PIPELINE_INIT = "pipeline_init"


# =============================================================================
# Request Schemas
# =============================================================================


class InitializeJobRequest(BaseModel):
    """Request to queue pipeline initialization."""

    provider: str | None = Field(
        default=None,
        description="LLM provider to use (gemini, mock); defaults to settings",
    )


# =============================================================================
# Response Schemas
# =============================================================================


class JobResponse(BaseModel):
    """Schema for job response."""

    id: UUID = Field(description="Job UUID")
    job_type: JobType = Field(description="Type of job")
    status: JobStatus = Field(description="Current job status")
    progress: float = Field(default=0.0, ge=0.0, le=100.0, description="Progress percentage (0-100)")
    error_message: str | None = Field(default=None, description="Error message if failed")
    result: dict | None = Field(default=None, description="Initialization counts when completed")
    created_at: datetime = Field(description="Job creation timestamp")
    started_at: datetime | None = Field(default=None, description="Job start timestamp")
    completed_at: datetime | None = Field(default=None, description="Job completion timestamp")

    model_config = ConfigDict(from_attributes=True)


class JobCreateResponse(BaseModel):
    """Response when creating a new job."""

    id: UUID = Field(description="Job UUID")
    job_type: JobType = Field(description="Type of job")
    status: JobStatus = Field(description="Initial job status")
    message: str = Field(description="Status message")
