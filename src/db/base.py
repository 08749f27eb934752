"""
SQLAlchemy Base Configuration and Mixins.

This module provides:
- Async engine and session factory configuration
- Base declarative class for all models
- Reusable mixins (UUID7 primary key, timestamps)
- Lifecycle helpers (create/drop schema, pgvector extension)

Metadata models (ColumnMetadata, SchemaSummary, ...) inherit from the
combined UUID bases. The simulated SAP tables (MARA, KNA1, VBAK, VBAP)
inherit from `Base` directly and declare their own uppercase table names
and natural keys, so that generated SQL like ``"VBAK"."VBELN"`` runs as-is.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import DateTime, MetaData, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from uuid6 import uuid7

from src.core.config import settings

# =============================================================================
# DATABASE ENGINE CONFIGURATION
# =============================================================================

# Naming convention for database constraints
# Keeps constraint names stable between autogenerate runs and the hand-written migration
NAMING_CONVENTION: dict[str, str] = {
    "ix": "ix_%(column_0_label)s",                    # Index
    "uq": "uq_%(table_name)s_%(column_0_name)s",      # Unique constraint
    "ck": "ck_%(table_name)s_%(constraint_name)s",    # Check constraint
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",  # Foreign key
    "pk": "pk_%(table_name)s",                        # Primary key
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)

# Async database engine
# - pool_pre_ping: Validates connections before use (handles stale connections)
# - echo: Logs SQL statements when in development mode
engine = create_async_engine(
    settings.db_url,
    echo=settings.is_development and settings.log_level == "DEBUG",
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
)

# Async session factory
# - expire_on_commit=False: Objects remain accessible after commit
# - autoflush=False: Writes only happen on explicit flush/commit
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
    autoflush=False,
)


# =============================================================================
# BASE CLASS
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Features:
    - AsyncAttrs: Enables `await` on lazy-loaded attributes
    - Custom metadata with naming conventions
    - Automatic __tablename__ generation from class name

    Example:
        class QueryTemplate(UUIDTimestampBase):
            # __tablename__ automatically set to "query_templates"
            name: Mapped[str] = mapped_column(String(200))
    """

    metadata = metadata

    __name__: str

    @declared_attr.directive
    def __tablename__(cls) -> str:
        """
        Automatically generate table name from class name.

        Converts CamelCase to snake_case and pluralizes:
        - GeneratedQuery -> generated_queries
        - SchemaSummary -> schema_summaries
        - ColumnMetadata -> column_metadata (mass noun, left alone)
        """
        name = cls.__name__
        snake_case = "".join(
            f"_{char.lower()}" if char.isupper() and i > 0 else char.lower()
            for i, char in enumerate(name)
        )
        if snake_case.endswith(("data", "metadata")):
            return snake_case
        if snake_case.endswith("y"):
            return snake_case[:-1] + "ies"
        if snake_case.endswith("s"):
            return snake_case + "es"
        return snake_case + "s"

    def to_dict(self) -> dict[str, Any]:
        """
        Convert model instance to a JSON-safe dictionary.

        Keys are the mapped attribute names (not the database column names),
        so SAP rows come back as ``{"MATNR": ..., "MTART": ...}``.

        Handle special types:
        - UUID -> string
        - datetime/date -> ISO format string
        - Decimal -> float
        - pgvector embeddings are skipped (large and not JSON-friendly)
        """
        result: dict[str, Any] = {}
        for attr in self.__mapper__.column_attrs:
            if attr.key == "embedding":
                continue
            value = getattr(self, attr.key)
            if isinstance(value, uuid.UUID):
                value = str(value)
            elif isinstance(value, (datetime, date)):
                value = value.isoformat()
            elif isinstance(value, Decimal):
                value = float(value)
            elif hasattr(value, "value"):   # Enum
                value = value.value
            result[attr.key] = value
        return result


# =============================================================================
# MIXINS
# =============================================================================

class UUIDMixin:
    """
    Mixin that provides a UUID7 primary key.

    UUID7 ids are time-ordered, so ``ORDER BY id`` approximates insertion order.
    """

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid7,
        sort_order=-100,
    )


class TimestampMixin:
    """
    Mixin that provides created_at and updated_at timestamps.

    Used by records that are upserted on re-analysis (column metadata,
    schema summaries, query templates).
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        sort_order=100,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
        sort_order=101,
    )


class CreatedAtMixin:
    """
    Mixin that provides only created_at timestamp.

    Use this for records that are never updated in place:
    - Ground truth versions (append-only)
    - Generated query audit rows
    - Inferred relationships (rebuilt wholesale)
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        sort_order=100,
    )


# =============================================================================
# COMBINED BASE CLASSES (Convenience)
# =============================================================================

class UUIDBase(UUIDMixin, Base):
    """Abstract base with UUID7 primary key."""

    __abstract__ = True


class UUIDTimestampBase(UUIDMixin, TimestampMixin, Base):
    """Abstract base with UUID7 + created_at + updated_at."""

    __abstract__ = True


class UUIDCreatedBase(UUIDMixin, CreatedAtMixin, Base):
    """Abstract base with UUID7 + created_at."""

    __abstract__ = True


# =============================================================================
# DATABASE LIFECYCLE UTILITIES
# =============================================================================

async def init_db() -> None:
    """
    Create the pgvector extension and all tables.

    Note: In production, use Alembic migrations instead.
    This is useful for testing and rapid development.
    """
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)


async def drop_db() -> None:
    """
    Drop all tables in the database.

    Warning: This is destructive! Only use in testing.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def dispose_engine() -> None:
    """Dispose of the engine and close all pooled connections (app shutdown)."""
    await engine.dispose()
