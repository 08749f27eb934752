"""API routers for the SAP query assistant."""

from src.api.ai import router as ai_router
from src.api.ai_pipeline import router as ai_pipeline_router
from src.api.query import router as query_router
from src.api.sap_query import router as sap_query_router

__all__ = [
    "ai_router",
    "ai_pipeline_router",
    "query_router",
    "sap_query_router",
]
