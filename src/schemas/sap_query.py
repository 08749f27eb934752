"""Pydantic schemas for SAP query generation and execution."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.core.config import settings
from src.services.sap_query_generator import SAPQueryRequest


class SAPQueryGenerateRequest(BaseModel):
    """Natural-language request for the SAP query generator."""

    prompt: str = Field(default="", description="Business question in natural language")
    max_tables: int = Field(
        default_factory=lambda: settings.default_max_tables,
        ge=1,
        le=10,
        description="Maximum tables the query may draw from",
    )
    include_explanation: bool = Field(default=True, description="Return the technical explanation")
    preferred_join_type: str | None = Field(default="inner", description="inner, left, right or full")
    business_context: str | None = Field(default=None, description="Extra context injected into the prompt")
    auto_save: bool = Field(default=True, description="Record the query in the history")

    def to_request(self) -> SAPQueryRequest:
        return SAPQueryRequest(
            prompt=self.prompt,
            max_tables=self.max_tables,
            include_explanation=self.include_explanation,
            preferred_join_type=self.preferred_join_type,
            business_context=self.business_context,
            auto_save=self.auto_save,
        )


class SAPExecuteRequest(BaseModel):
    """Raw SQL to execute; ``LIMIT n`` is appended when the SQL has none."""

    sql: str = Field(default="", description="SELECT statement")
    limit: int | None = Field(default=None, ge=1, le=10000, description="Row limit to append")


class GenerateAndExecuteRequest(BaseModel):
    prompt: str = Field(default="", description="Business question in natural language")
    limit: int | None = Field(default=None, ge=1, le=10000, description="Row limit to append")
    business_context: str | None = Field(default=None, description="Extra context injected into the prompt")


class ExecutionResponse(BaseModel):
    """Rows returned by a read-only execution."""

    results: list[dict[str, Any]] = Field(description="Result rows")
    execution_time: float = Field(description="Execution time in milliseconds")
    row_count: int = Field(description="Number of rows returned")
    sql: str | None = Field(default=None, description="The statement that was executed")


class SAPQueryExample(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str
    expected_sql: str = Field(alias="expectedSQL")
    description: str
    complexity: str
    sap_modules: list[str] = Field(alias="sapModules")
