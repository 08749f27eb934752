"""Unit tests for the controlled vocabularies."""

from src.db.enums import JoinType, RelationshipType, SemanticType


class TestSemanticType:
    def test_from_string_normalizes(self) -> None:
        assert SemanticType.from_string("Identifier") is SemanticType.IDENTIFIER
        assert SemanticType.from_string(" CATEGORY ") is SemanticType.CATEGORY

    def test_unknown_is_none(self) -> None:
        assert SemanticType.from_string("customer key") is None
        assert SemanticType.from_string(None) is None

    def test_values_cover_vocabulary(self) -> None:
        """The list offered to the LLM in the column prompt."""
        values = SemanticType.values()
        assert values[0] == "identifier"
        assert "other" in values
        assert len(values) == len(SemanticType)


class TestJoinType:
    """LLM and SQL spellings map onto the stored lowercase values."""

    def test_sql_spellings(self) -> None:
        assert JoinType.from_string("LEFT JOIN") is JoinType.LEFT
        assert JoinType.from_string("left outer join") is JoinType.LEFT
        assert JoinType.from_string("Full") is JoinType.FULL

    def test_default_is_inner(self) -> None:
        assert JoinType.from_string(None) is JoinType.INNER
        assert JoinType.from_string("cross") is JoinType.INNER

    def test_sql_keyword(self) -> None:
        assert JoinType.RIGHT.sql == "RIGHT"


class TestRelationshipType:
    def test_rebuildable_types(self) -> None:
        """Only rows owned by inference are replaced on a rebuild."""
        assert RelationshipType.rebuildable() == ["inferred", "semantic_match"]
