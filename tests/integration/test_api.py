"""
Integration tests for the SAP Query Assistant API.

Request-validation tests run without a database. The remaining tests hit
the real PostgreSQL database and require the migration to be applied and
the SAP tables seeded (python scripts/seed.py --scale tiny).
"""

from uuid import uuid4

import pytest
from httpx import AsyncClient

from src.services.llm_client import MockLLMClient

pytestmark = pytest.mark.asyncio


# =============================================================================
# Health and Root
# =============================================================================


class TestHealthEndpoints:
    """Tests for health and info endpoints."""

    async def test_health_check(self, async_client_no_db: AsyncClient) -> None:
        """Test health endpoint returns healthy status."""
        response = await async_client_no_db.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"

    async def test_root_endpoint(self, async_client_no_db: AsyncClient) -> None:
        """Test root endpoint returns API info."""
        response = await async_client_no_db.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "SAP Query Assistant API"
        assert data["docs"] == "/docs"

    async def test_table_stats(self, async_client: AsyncClient) -> None:
        """Test stats endpoint counts every SAP table."""
        response = await async_client.get("/stats")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        for key in ("mara", "kna1", "vbak", "vbap"):
            assert body["data"][key] >= 0


# =============================================================================
# Request Validation
# =============================================================================


class TestRequestValidation:
    """Blank input is rejected with 400 before any database work."""

    async def test_generate_requires_prompt(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.post("/api/query/generate", json={"prompt": "   "})
        assert response.status_code == 400
        assert response.json()["detail"] == "Prompt is required and must be a string"

    async def test_generate_missing_prompt(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.post("/api/query/generate", json={})
        assert response.status_code == 400

    async def test_validate_requires_sql(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.post("/api/query/validate", json={"sql": ""})
        assert response.status_code == 400
        assert response.json()["detail"] == "SQL query is required and must be a string"

    async def test_execute_requires_sql(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.post("/api/query/execute", json={"sql": ""})
        assert response.status_code == 400
        assert response.json()["detail"] == "SQL query is required and must be a string"

    async def test_sap_execute_requires_sql(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.post("/api/sap-query/execute", json={"sql": " "})
        assert response.status_code == 400

    async def test_sap_generate_requires_prompt(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.post("/api/sap-query/generate", json={"prompt": ""})
        assert response.status_code == 400
        assert response.json()["detail"] == "Prompt is required and must be a string"

    async def test_search_schemas_requires_query(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.post("/api/ai/search-schemas", json={"query": ""})
        assert response.status_code == 400
        assert response.json()["detail"] == "Query parameter is required"

    async def test_pipeline_query_requires_prompt(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.post("/api/ai-pipeline/query", json={"prompt": ""})
        assert response.status_code == 400

    async def test_batch_query_requires_queries(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.post("/api/ai-pipeline/batch-query", json={"queries": []})
        assert response.status_code == 400
        assert response.json()["detail"] == "Queries array is required and must not be empty"

    async def test_history_limit_bounds(self, async_client_no_db: AsyncClient) -> None:
        """Test FastAPI query validation on history paging."""
        response = await async_client_no_db.get("/api/query/history", params={"limit": 0})
        assert response.status_code == 422


# =============================================================================
# Static Endpoints
# =============================================================================


class TestStaticEndpoints:
    """Endpoints that answer from configuration or constants."""

    async def test_examples_use_camel_case(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.get("/api/sap-query/examples")
        assert response.status_code == 200
        examples = response.json()["data"]
        assert len(examples) == 3
        first = examples[0]
        assert "expectedSQL" in first
        assert "sapModules" in first
        assert first["expectedSQL"].startswith("SELECT")

    async def test_query_settings(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.get("/api/query/settings")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["default_max_tables"] == 5
        assert data["execution_row_limit"] == 100

    async def test_unknown_job_is_404(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.get(f"/api/ai-pipeline/jobs/{uuid4()}")
        assert response.status_code == 404

    async def test_invalid_job_id_is_422(self, async_client_no_db: AsyncClient) -> None:
        response = await async_client_no_db.get("/api/ai-pipeline/jobs/not-a-uuid")
        assert response.status_code == 422


# =============================================================================
# Query API
# =============================================================================


class TestQueryAPI:
    """Tests for /api/query endpoints against the seeded database."""

    async def test_history(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/api/query/history", params={"limit": 5})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert len(body["data"]) <= 5

    async def test_templates_sorted_by_confidence(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/api/query/templates")
        assert response.status_code == 200
        confidences = [t["confidence"] for t in response.json()["data"]]
        assert confidences == sorted(confidences, reverse=True)

    async def test_execute_select(self, async_client: AsyncClient) -> None:
        """Test a plain SELECT runs with the default row limit."""
        response = await async_client.post(
            "/api/query/execute",
            json={"sql": 'SELECT "VBAK"."VBELN" FROM "VBAK"', "validate": False},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["row_count"] <= 100

    async def test_analyze_unknown_table(self, async_client: AsyncClient) -> None:
        response = await async_client.post("/api/query/analyze-columns", json={"table_name": "BSEG"})
        assert response.status_code == 404


# =============================================================================
# SAP Query API
# =============================================================================


class TestSAPQueryAPI:
    """Tests for /api/sap-query endpoints."""

    async def test_history(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/api/sap-query/history")
        assert response.status_code == 200
        assert response.json()["success"] is True

    async def test_generate_with_mock_llm(
        self,
        async_client: AsyncClient,
        mock_llm: MockLLMClient,
    ) -> None:
        """Test generation uses the LLM reply and records the request."""
        response = await async_client.post(
            "/api/sap-query/generate",
            json={"prompt": "List sales orders with their creation date"},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert '"VBAK"' in data["sql"]
        assert mock_llm.requests


# =============================================================================
# AI Pipeline API
# =============================================================================


class TestAIPipelineAPI:
    """Tests for /api/ai-pipeline reporting endpoints."""

    async def test_analytics(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/api/ai-pipeline/analytics")
        assert response.status_code == 200
        overview = response.json()["data"]["overview"]
        assert overview["total_queries"] >= overview["valid_queries"]
        assert 0.0 <= overview["validation_rate"] <= 100.0

    async def test_metadata_status(self, async_client: AsyncClient) -> None:
        response = await async_client.get("/api/ai-pipeline/metadata-status")
        assert response.status_code == 200
        data = response.json()["data"]
        assert set(data) >= {"ground_truth", "schema_summary", "table_relationships", "column_metadata"}

    async def test_batch_reports_blank_items(self, async_client: AsyncClient) -> None:
        """Test a blank prompt fails its own item without failing the batch."""
        response = await async_client.post(
            "/api/ai-pipeline/batch-query",
            json={"queries": [{"id": "q1", "prompt": ""}]},
        )
        assert response.status_code == 200
        body = response.json()["data"]
        assert body["results"][0]["success"] is False
        assert body["summary"]["failed_queries"] == 1
