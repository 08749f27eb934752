"""Unit tests for ground truth construction and validation."""

from typing import Any

import pytest

from src.services.extractor import FieldInfo, TableStructure
from src.services.ground_truth import (
    create_join,
    find_delta_field,
    infer_joins,
    overall_confidence,
    validate_ground_truth,
)


class TestDeltaField:
    """Tests for change-tracking field detection."""

    def test_known_delta_field(self, sample_tables: list[TableStructure]) -> None:
        """MARA tracks changes with LAEDA, VBAK with ERDAT."""
        by_name = {t.table_name: t for t in sample_tables}
        assert find_delta_field(by_name["MARA"]) == "LAEDA"
        assert find_delta_field(by_name["VBAK"]) == "ERDAT"

    def test_no_date_field(self, sample_tables: list[TableStructure]) -> None:
        """KNA1 has no date field."""
        kna1 = next(t for t in sample_tables if t.table_name == "KNA1")
        assert find_delta_field(kna1) is None

    def test_any_date_field(self) -> None:
        """An unknown date or timestamp field is used as a fallback."""
        table = TableStructure("ZTAB", [FieldInfo("ID", "INT"), FieldInfo("CHANGED_AT", "TIMESTAMP")])
        assert find_delta_field(table) == "CHANGED_AT"


class TestJoins:
    """Tests for join inference from foreign keys."""

    def test_joins_from_foreign_keys(self, sample_tables: list[TableStructure]) -> None:
        """Each foreign key becomes one join with its override."""
        joins = {(j["left"], j["right"]): (j["type"], j["confidence"]) for j in infer_joins(sample_tables)}
        assert joins == {
            ("VBAK.KUNNR", "KNA1.KUNNR"): ("left", 0.8),
            ("VBAP.VBELN", "VBAK.VBELN"): ("inner", 0.95),
            ("VBAP.MATNR", "MARA.MATNR"): ("left", 0.85),
        }

    def test_missing_target_table_skipped(self, sample_tables: list[TableStructure]) -> None:
        """Foreign keys to tables outside the set produce no join."""
        without_customers = [t for t in sample_tables if t.table_name != "KNA1"]
        assert all("KNA1" not in j["right"] for j in infer_joins(without_customers))

    def test_default_join(self) -> None:
        """Pairs without an override are inner joins at 0.9."""
        join = create_join("ZA", "ID", "ZB", "ID")
        assert join == {"left": "ZA.ID", "right": "ZB.ID", "type": "inner", "confidence": 0.9}

    def test_overall_confidence(self) -> None:
        """Overall confidence is the mean, zero for no joins."""
        assert overall_confidence([]) == 0.0
        assert overall_confidence([{"confidence": 0.8}, {"confidence": 0.6}]) == pytest.approx(0.7)


class TestGroundTruthGraph:
    """Tests for the assembled graph."""

    def test_graph_shape(self, sample_ground_truth: dict[str, Any]) -> None:
        """Tables carry keys, fields and delta fields; metadata counts match."""
        assert sample_ground_truth["version"].startswith("v")
        assert set(sample_ground_truth["tables"]) == {"MARA", "KNA1", "VBAK", "VBAP"}
        assert sample_ground_truth["tables"]["VBAP"]["key"] == ["VBELN", "POSNR"]
        metadata = sample_ground_truth["metadata"]
        assert metadata["total_tables"] == 4
        assert metadata["total_joins"] == 3
        assert metadata["confidence"] == pytest.approx((0.8 + 0.95 + 0.85) / 3)

    def test_valid_graph(self, sample_ground_truth: dict[str, Any]) -> None:
        """The catalogue graph validates cleanly."""
        result = validate_ground_truth(sample_ground_truth)
        assert result == {"is_valid": True, "errors": [], "warnings": []}

    def test_dangling_join(self) -> None:
        """Joins to unknown tables are errors."""
        graph = {
            "tables": {"VBAK": {}},
            "joins": [{"left": "VBAK.KUNNR", "right": "KNA1.KUNNR", "confidence": 0.9}],
        }
        result = validate_ground_truth(graph)
        assert result["is_valid"] is False
        assert result["errors"] == ["Join references non-existent right table: KNA1"]

    def test_low_confidence_warning(self) -> None:
        """Joins under 70% are counted in one warning."""
        graph = {
            "tables": {"A": {}, "B": {}},
            "joins": [
                {"left": "A.X", "right": "B.X", "confidence": 0.5},
                {"left": "B.Y", "right": "A.Y", "confidence": 0.6},
            ],
        }
        result = validate_ground_truth(graph)
        assert result["is_valid"] is True
        assert result["warnings"] == ["2 joins have confidence below 70%"]
