"""
Controlled vocabulary enums for the query assistant.

This module defines the allowed values for:
- Column semantic types (assigned by the column analyzer)
- Join types and relationship cardinalities (relationship inference)
- Relationship inference methods (provenance of an inferred join)
- Query validation status and complexity (generated query audit rows)
- Job statuses (async pipeline initialization)

The values are stored as plain strings in the database and guarded by
CHECK constraints, so LLM output that falls outside the vocabulary is
normalized through ``from_string`` before it is persisted.
"""

from enum import Enum


class SemanticType(str, Enum):
    """
    Business meaning of a column, as classified by the column analyzer.

    The LLM is asked to pick one of these; when it answers with something
    else (or the call fails) the name-based heuristic picks one instead.

    Usage:
        SemanticType.from_string("Identifier")  -> SemanticType.IDENTIFIER
        SemanticType.from_string("foo")         -> None
    """

    IDENTIFIER = "identifier"
    NAME = "name"
    DESCRIPTION = "description"
    DATE = "date"
    AMOUNT = "amount"
    QUANTITY = "quantity"
    STATUS = "status"
    CODE = "code"
    ADDRESS = "address"
    PHONE = "phone"
    EMAIL = "email"
    URL = "url"
    CATEGORY = "category"
    OTHER = "other"

    @classmethod
    def from_string(cls, value: str | None) -> "SemanticType | None":
        """Case-insensitive lookup; returns None when the value is unknown."""
        if not value:
            return None
        normalized = value.strip().lower().replace(" ", "_")
        for member in cls:
            if member.value == normalized:
                return member
        return None

    @classmethod
    def values(cls) -> list[str]:
        """Return list of all valid semantic type values."""
        return [member.value for member in cls]


class JoinType(str, Enum):
    """
    SQL join flavour recorded for a relationship.

    Stored lowercase (``inner``/``left``); rendered uppercase in SQL.
    """

    INNER = "inner"
    LEFT = "left"
    RIGHT = "right"
    FULL = "full"

    @classmethod
    def from_string(cls, value: str | None) -> "JoinType":
        """Map LLM/SQL spellings ("LEFT JOIN", "Inner") to a member, default INNER."""
        if not value:
            return cls.INNER
        normalized = value.strip().lower().replace("join", "").replace("outer", "").strip()
        for member in cls:
            if member.value == normalized:
                return member
        return cls.INNER

    @property
    def sql(self) -> str:
        """Keyword used when rendering a JOIN clause."""
        return self.value.upper()


class RelationshipType(str, Enum):
    """
    Cardinality / provenance tag of a stored table relationship.

    ``INFERRED`` and ``SEMANTIC_MATCH`` rows are owned by relationship
    inference and are deleted and rebuilt on every inference run.
    """

    ONE_TO_ONE = "one_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"
    FOREIGN_KEY = "foreign_key"
    INFERRED = "inferred"
    SEMANTIC_MATCH = "semantic_match"

    @classmethod
    def rebuildable(cls) -> list[str]:
        """Relationship types that an inference run replaces wholesale."""
        return [cls.INFERRED.value, cls.SEMANTIC_MATCH.value]


class InferenceMethod(str, Enum):
    """
    How a relationship was inferred.

    The method name prefixes the stored ``business_rule`` string
    (``"column_name: Exact column name match: KUNNR"``) so quality reports
    can be grouped by method.
    """

    COLUMN_NAME = "column_name"
    DATA_PATTERN = "data_pattern"
    BUSINESS_LOGIC = "business_logic"
    AI_ANALYSIS = "ai_analysis"


class ValidationStatus(str, Enum):
    """
    Outcome recorded on a generated query.

    - VALID: validator and basic checks passed
    - WARNING: runnable, but at least one advisory was raised
    - INVALID: at least one error
    """

    VALID = "valid"
    INVALID = "invalid"
    WARNING = "warning"


class QueryComplexity(str, Enum):
    """Coarse complexity bucket derived from a keyword score."""

    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class JobStatus(str, Enum):
    """
    Status values for async pipeline jobs.

    Job lifecycle::

        PENDING -> RUNNING -> COMPLETED
                          |-> FAILED
                          |-> CANCELLED
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
