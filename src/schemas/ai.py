"""Pydantic schemas for the metadata (extraction, summaries, ground truth) endpoints."""

from pydantic import BaseModel, Field


class SearchSchemasRequest(BaseModel):
    query: str = Field(default="", description="Free text matched against table summaries")
    limit: int = Field(default=5, ge=1, le=50, description="Maximum tables to return")


class SearchColumnsRequest(BaseModel):
    query: str = Field(default="", description="Free text matched against column descriptions")
    limit: int = Field(default=5, ge=1, le=50, description="Maximum columns to return")
