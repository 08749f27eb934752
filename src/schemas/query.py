"""Pydantic schemas for the query processing endpoints."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class QueryContext(BaseModel):
    """Optional generation hints passed alongside a prompt."""

    max_tables: int | None = Field(default=None, ge=1, le=10)
    preferred_join_type: str | None = None
    business_context: str | None = None


class GenerateQueryRequest(BaseModel):
    prompt: str = Field(default="", description="Business question in natural language")
    context: QueryContext | None = Field(default=None, description="Optional generation hints")


class GenerateBasicRequest(BaseModel):
    prompt: str = Field(default="", description="Business question in natural language")


class ValidateQueryRequest(BaseModel):
    sql: str = Field(default="", description="SQL to validate against the ground truth")
    context: QueryContext | None = Field(default=None, description="Business context for the validator")


class ExecuteQueryRequest(BaseModel):
    """SQL to execute; when ``validate`` is set, blocking issues reject it with 400."""

    model_config = ConfigDict(populate_by_name=True)

    sql: str = Field(default="", description="SELECT statement")
    limit: int = Field(default=100, ge=1, le=10000, description="Maximum rows to return")
    validate_first: bool = Field(
        default=True,
        alias="validate",
        description="Run the static validator before executing",
    )


class AnalyzeColumnsRequest(BaseModel):
    table_name: str | None = Field(default=None, description="Single table to analyze (default: all)")
    force_refresh: bool = Field(default=False, description="Re-analyze tables that already have metadata")


class ProcessQueryRequest(BaseModel):
    """Generate, validate and optionally execute in one call."""

    prompt: str = Field(default="", description="Business question in natural language")
    execute_query: bool = Field(default=False, description="Execute when validation passes")
    limit: int = Field(default=100, ge=1, le=10000, description="Maximum rows to return")


class QueryHistoryItem(BaseModel):
    """One row of the generated query audit log."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    prompt: str
    sql: str
    explanation: str | None = None
    business_logic: str | None = None
    confidence: float
    complexity: str
    tables_used: list[str] = Field(default_factory=list)
    join_types: list[str] = Field(default_factory=list)
    validation_status: str
    validation_errors: list[str] | None = None
    execution_time: float | None = None
    result_count: int | None = None
    template_used: str | None = None
    created_at: datetime


class QueryTemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    pattern: str
    sql_template: str
    required_tables: list[str] = Field(default_factory=list)
    confidence: float
    usage_count: int
    created_at: datetime
