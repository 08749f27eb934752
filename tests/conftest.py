"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator, Generator
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.api.deps import get_llm
from src.core.config import settings
from src.db import get_db
from src.main import app
from src.services.extractor import FieldInfo, TableStructure
from src.services.ground_truth import GroundTruthBuilder
from src.services.llm_client import BaseLLMClient, MockLLMClient
from src.services.sap_catalog import SAP_TABLES

# Configure pytest-asyncio
pytest_plugins = ("pytest_asyncio",)


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Create a synchronous test client for FastAPI."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def mock_llm() -> MockLLMClient:
    """LLM client with canned replies; tests may script it with ``set_responses``."""
    return MockLLMClient()


# Database fixtures for integration tests
@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    engine = create_async_engine(settings.db_url, echo=False)
    async_session = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession,
    mock_llm: MockLLMClient,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an asynchronous test client for FastAPI with DB and LLM overrides."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    async def override_get_llm() -> AsyncGenerator[BaseLLMClient, None]:
        yield mock_llm

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_llm] = override_get_llm

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_client_no_db(mock_llm: MockLLMClient) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client without DB (for requests rejected before any query)."""

    async def override_get_llm() -> AsyncGenerator[BaseLLMClient, None]:
        yield mock_llm

    app.dependency_overrides[get_llm] = override_get_llm

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def sample_tables() -> list[TableStructure]:
    """Extracted structures of the four SAP tables with two sample rows each."""
    tables = []
    for table in SAP_TABLES.values():
        rows = [
            {
                col.name: col.sample_values[i] if i < len(col.sample_values) else None
                for col in table.columns
            }
            for i in range(2)
        ]
        tables.append(
            TableStructure(
                table_name=table.name,
                fields=[FieldInfo.from_column(col) for col in table.columns],
                sample_data=rows,
                record_count=100,
            )
        )
    return tables


@pytest.fixture
def sample_ground_truth(sample_tables: list[TableStructure]) -> dict[str, Any]:
    """Ground truth graph built from ``sample_tables``."""
    return GroundTruthBuilder(None).build_ground_truth(sample_tables)  # type: ignore[arg-type]


class FakeResult:
    """The parts of a SQLAlchemy ``Result`` the services read."""

    def __init__(self, rows: list[Any] | None = None, scalar: Any = None):
        self.rows = rows or []
        self.scalar = scalar

    def all(self) -> list[Any]:
        return self.rows

    def scalar_one_or_none(self) -> Any:
        return self.scalar


class RecordingSession:
    """
    Async session stand-in that records every call in ``calls``.

    Queued results are handed out by ``execute`` in order (an empty result
    once they run out); ``fail_commit`` makes ``commit`` raise.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.added: list[Any] = []
        self.statements: list[Any] = []
        self.results: list[FakeResult] = []
        self.fail_commit = False

    def queue_result(self, rows: list[Any] | None = None, scalar: Any = None) -> None:
        self.results.append(FakeResult(rows, scalar))

    async def execute(self, statement: Any) -> FakeResult:
        self.calls.append("execute")
        self.statements.append(statement)
        return self.results.pop(0) if self.results else FakeResult()

    def add(self, obj: Any) -> None:
        self.calls.append("add")
        self.added.append(obj)

    async def commit(self) -> None:
        self.calls.append("commit")
        if self.fail_commit:
            raise SQLAlchemyError("commit failed")

    async def rollback(self) -> None:
        self.calls.append("rollback")


@pytest.fixture
def recording_session() -> RecordingSession:
    return RecordingSession()
