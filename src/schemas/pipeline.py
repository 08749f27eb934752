"""Pydantic schemas for the AI pipeline endpoints."""

from pydantic import BaseModel, Field

from src.services.pipeline import MetadataOptions, PipelineOptions, PipelineRequest


class PipelineContext(BaseModel):
    """Generation hints for one pipeline run."""

    business_domain: str | None = None
    preferred_complexity: str | None = Field(default="medium", description="simple, medium or complex")
    include_explanation: bool = True
    max_tables: int = Field(default=5, ge=1, le=10)
    output_format: str = Field(default="both", description="sql, explanation or both")

    def to_options(self) -> PipelineOptions:
        return PipelineOptions(**self.model_dump())


class PipelineMetadata(BaseModel):
    """Which stored metadata the run may read."""

    use_ground_truth: bool = True
    use_schema_summary: bool = True
    use_table_relationships: bool = True
    use_column_metadata: bool = True

    def to_options(self) -> MetadataOptions:
        return MetadataOptions(**self.model_dump())


class PipelineQueryRequest(BaseModel):
    prompt: str = Field(default="", description="Business question in natural language")
    context: PipelineContext = Field(default_factory=PipelineContext)
    metadata: PipelineMetadata = Field(default_factory=PipelineMetadata)

    def to_request(self) -> PipelineRequest:
        return PipelineRequest(
            prompt=self.prompt,
            context=self.context.to_options(),
            metadata=self.metadata.to_options(),
        )


class BatchQueryItem(BaseModel):
    id: str | None = None
    prompt: str | None = None
    context: dict | None = Field(default=None, description="Overrides merged over shared_context")


class BatchQueryRequest(BaseModel):
    queries: list[BatchQueryItem] = Field(default_factory=list)
    shared_context: dict | None = Field(default=None, description="PipelineContext fields shared by every query")


class BatchQueryResult(BaseModel):
    id: str
    success: bool
    result: dict | None = None
    error: str | None = None


class BatchSummary(BaseModel):
    total_queries: int
    successful_queries: int
    failed_queries: int
    total_processing_time: float = Field(description="Milliseconds")


class BatchQueryResponse(BaseModel):
    results: list[BatchQueryResult]
    summary: BatchSummary
