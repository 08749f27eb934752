"""
Database package - SQLAlchemy models, session management, and utilities.

Exports:
- Base classes and mixins for model definition
- Session management for FastAPI and standalone usage
- Database lifecycle utilities
- Controlled vocabulary enums
- All database models

Usage:
    from src.db import Base, get_db, get_db_context
    from src.db import ColumnMetadata, GroundTruth, GeneratedQuery
    from src.db import SemanticType, ValidationStatus
"""

from src.db.base import (
    # Engine and session factory
    AsyncSessionLocal,
    # Base classes
    Base,
    # Mixins
    CreatedAtMixin,
    TimestampMixin,
    UUIDBase,
    UUIDCreatedBase,
    UUIDMixin,
    UUIDTimestampBase,
    # Lifecycle utilities
    dispose_engine,
    drop_db,
    engine,
    init_db,
    metadata,
)
from src.db.enums import (
    InferenceMethod,
    JobStatus,
    JoinType,
    QueryComplexity,
    RelationshipType,
    SemanticType,
    ValidationStatus,
)
from src.db.models import (
    SAP_TABLE_MODELS,
    ColumnMetadata,
    GeneratedQuery,
    GroundTruth,
    Kna1,
    Mara,
    QueryTemplate,
    SchemaSummary,
    TableRelationship,
    Vbak,
    Vbap,
)
from src.db.session import get_db, get_db_context, transaction

__all__ = [
    # Base classes
    "Base",
    "UUIDBase",
    "UUIDCreatedBase",
    "UUIDTimestampBase",
    # Mixins
    "UUIDMixin",
    "TimestampMixin",
    "CreatedAtMixin",
    # Enums
    "SemanticType",
    "JoinType",
    "RelationshipType",
    "InferenceMethod",
    "ValidationStatus",
    "QueryComplexity",
    "JobStatus",
    # Models
    "ColumnMetadata",
    "TableRelationship",
    "GroundTruth",
    "SchemaSummary",
    "QueryTemplate",
    "GeneratedQuery",
    "Mara",
    "Kna1",
    "Vbak",
    "Vbap",
    "SAP_TABLE_MODELS",
    # Engine and factory
    "engine",
    "AsyncSessionLocal",
    "metadata",
    # Session utilities
    "get_db",
    "get_db_context",
    "transaction",
    # Lifecycle
    "init_db",
    "drop_db",
    "dispose_engine",
]
