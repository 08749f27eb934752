"""Unit tests for extracted structure serialization."""

import json
from pathlib import Path

from src.services.extractor import ExtractedData, ExtractorService, FieldInfo, TableStructure
from src.services.sap_catalog import SAP_TABLES


class TestFieldInfo:
    """Tests for field descriptions."""

    def test_from_foreign_key_column(self) -> None:
        """Catalogue foreign keys carry their reference."""
        f = FieldInfo.from_column(SAP_TABLES["VBAK"].column("KUNNR"))
        assert f.is_foreign_key is True
        assert f.referenced_table == "KNA1"
        assert f.referenced_field == "KUNNR"
        assert f.nullable is False

    def test_from_key_column(self) -> None:
        """Primary keys are flagged and have no reference."""
        f = FieldInfo.from_column(SAP_TABLES["MARA"].column("MATNR"))
        assert f.is_primary_key is True
        assert f.is_foreign_key is False
        assert f.referenced_table is None

    def test_dict_round_trip(self) -> None:
        """Serialized fields restore to equal objects."""
        f = FieldInfo.from_column(SAP_TABLES["VBAP"].column("MATNR"))
        assert FieldInfo.from_dict(f.to_dict()) == f


class TestTableStructure:
    """Tests for table structures and extraction results."""

    def test_get_field(self, sample_tables: list[TableStructure]) -> None:
        """Fields are looked up by exact name."""
        vbap = next(t for t in sample_tables if t.table_name == "VBAP")
        assert vbap.get_field("POSNR") is not None
        assert vbap.get_field("NOPE") is None

    def test_total_records(self, sample_tables: list[TableStructure]) -> None:
        """Record counts are summed over tables."""
        data = ExtractedData(tables=sample_tables)
        assert data.total_records == 400
        assert data.to_dict()["metadata"] == {"total_tables": 4, "total_records": 400}

    def test_save_extracted_data(self, sample_tables: list[TableStructure], tmp_path: Path) -> None:
        """The dump is written as JSON into the extract directory."""
        service = ExtractorService(None, extract_dir=tmp_path)  # type: ignore[arg-type]
        path = Path(service.save_extracted_data(ExtractedData(tables=sample_tables)))

        assert path.parent == tmp_path
        assert path.name.startswith("sap_extraction_")
        payload = json.loads(path.read_text(encoding="utf-8"))
        assert [t["table_name"] for t in payload["tables"]] == ["MARA", "KNA1", "VBAK", "VBAP"]
        restored = TableStructure.from_dict(payload["tables"][0])
        assert restored.table_name == "MARA"
        assert len(restored.fields) == len(SAP_TABLES["MARA"].columns)
