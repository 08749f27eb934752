"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.api import ai_pipeline_router, ai_router, query_router, sap_query_router
from src.core.config import settings
from src.core.logging import get_logger, setup_logging
from src.db import SAP_TABLE_MODELS, dispose_engine, get_db
from src.schemas import APIResponse, ErrorResponse, SAPTableStats

logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    setup_logging()
    logger.info("Starting SAP query assistant", environment=settings.environment, llm_provider=settings.llm_provider)
    yield
    await dispose_engine()


def create_app() -> FastAPI:
    """Application factory for creating the FastAPI instance."""
    app = FastAPI(
        title="SAP Query Assistant API",
        description=(
            "Natural-language to SQL over simulated SAP tables (MARA, KNA1, VBAK, VBAP).\n\n"
            "## Features\n"
            "- **Metadata**: Extract structures, summarize schemas, build ground truth\n"
            "- **Query**: Generate, validate and execute SQL\n"
            "- **SAP Query**: SAP-aware generation with examples and history\n"
            "- **AI Pipeline**: Staged generation, batch runs and analytics\n"
        ),
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    error_responses = {400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}

    app.include_router(ai_router, prefix="/api/ai", tags=["Metadata"], responses=error_responses)
    app.include_router(query_router, prefix="/api/query", tags=["Query"], responses=error_responses)
    app.include_router(sap_query_router, prefix="/api/sap-query", tags=["SAP Query"], responses=error_responses)
    app.include_router(ai_pipeline_router, prefix="/api/ai-pipeline", tags=["AI Pipeline"], responses=error_responses)

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint for container orchestration."""
        return {"status": "healthy", "version": VERSION}

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "service": "SAP Query Assistant API",
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    @app.get("/stats", response_model=APIResponse[SAPTableStats], tags=["Root"])
    async def table_stats(db: AsyncSession = Depends(get_db)) -> APIResponse[SAPTableStats]:
        """Row counts of the simulated SAP tables."""
        counts: dict[str, int] = {}
        for name, model in SAP_TABLE_MODELS.items():
            try:
                counts[name.lower()] = (await db.execute(select(func.count()).select_from(model))).scalar() or 0
            except SQLAlchemyError as e:
                logger.warning("Failed to count table", table=name, error=str(e))
                await db.rollback()
                counts[name.lower()] = 0
        return APIResponse.ok(SAPTableStats(**counts), "Table statistics retrieved successfully")

    return app


# Create the app instance
app = create_app()
