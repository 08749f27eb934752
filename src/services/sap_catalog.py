"""
Static catalogue of the simulated SAP tables.

This is the business-level description of MARA, KNA1, VBAK and VBAP that
the extractor, the SAP query generator and the seed script share: physical
column types, key flags, semantic types, and short business descriptions.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SAPColumn:
    """One column of a catalogued SAP table."""

    name: str
    type: str
    semantic_type: str
    description: str
    business_context: str
    sample_values: tuple[Any, ...] = ()
    nullable: bool = True
    is_key: bool = False
    referenced_table: str | None = None
    referenced_column: str | None = None

    @property
    def is_foreign_key(self) -> bool:
        return self.referenced_table is not None


@dataclass(frozen=True)
class SAPTable:
    """A catalogued SAP table."""

    name: str
    module: str
    description: str
    business_purpose: str
    columns: tuple[SAPColumn, ...] = field(default_factory=tuple)

    @property
    def column_names(self) -> list[str]:
        return [col.name for col in self.columns]

    def column(self, name: str) -> SAPColumn | None:
        for col in self.columns:
            if col.name == name.upper():
                return col
        return None


SAP_TABLES: dict[str, SAPTable] = {
    "MARA": SAPTable(
        name="MARA",
        module="MM",
        description="General Material Master Data",
        business_purpose="Contains basic material information including material type, group, and unit of measure",
        columns=(
            SAPColumn("MATNR", "VARCHAR(18)", "identifier", "Material Number",
                      "Unique identifier for materials/products",
                      ("000000000000100000", "000000000000100001"), nullable=False, is_key=True),
            SAPColumn("MTART", "CHAR(4)", "category", "Material Type",
                      "Categorizes materials (finished goods, raw materials, etc.)",
                      ("FERT", "ROH", "HALB"), nullable=False),
            SAPColumn("MATKL", "VARCHAR(9)", "category", "Material Group",
                      "Groups materials for reporting and analysis", ("UBHIOE", "FR3AWXF")),
            SAPColumn("MEINS", "CHAR(3)", "unit", "Base Unit of Measure",
                      "Primary unit for measuring the material", ("KG", "LTR", "EA"), nullable=False),
            SAPColumn("LAEDA", "DATE", "date", "Date of Last Change",
                      "When the material master was last modified", ("2025-08-07", "2025-07-24")),
        ),
    ),
    "KNA1": SAPTable(
        name="KNA1",
        module="SD",
        description="Customer Master General Data",
        business_purpose="Contains general customer information including name, address, and region",
        columns=(
            SAPColumn("KUNNR", "VARCHAR(10)", "identifier", "Customer Number",
                      "Unique identifier for customers", ("0000500000", "0000500001"),
                      nullable=False, is_key=True),
            SAPColumn("LAND1", "CHAR(2)", "location", "Country Key",
                      "Country where customer is located", ("US", "DE", "UZ")),
            SAPColumn("ORT01", "VARCHAR(25)", "location", "City",
                      "Customer city", ("Tremblayworth", "New Nella")),
            SAPColumn("NAME1", "VARCHAR(35)", "name", "Name 1",
                      "Customer company or person name", ("Berge, Stiedemann and Wisozk", "Witting - King"),
                      nullable=False),
            SAPColumn("REGIO", "VARCHAR(3)", "location", "Region",
                      "State or region code", ("DE", "NH", "CT")),
        ),
    ),
    "VBAK": SAPTable(
        name="VBAK",
        module="SD",
        description="Sales Document Header Data",
        business_purpose="Contains header information for sales orders, quotations, and contracts",
        columns=(
            SAPColumn("VBELN", "VARCHAR(10)", "identifier", "Sales Document Number",
                      "Unique identifier for sales documents", ("5000001234", "5000001235"),
                      nullable=False, is_key=True),
            SAPColumn("AUART", "CHAR(4)", "category", "Sales Document Type",
                      "Defines the type of sales document (order, quotation, etc.)", ("OR", "QT", "CR")),
            SAPColumn("ERDAT", "DATE", "date", "Created On",
                      "Date when the sales document was created", ("2025-01-15", "2025-01-16")),
            SAPColumn("KUNNR", "VARCHAR(10)", "identifier", "Sold-to Party",
                      "Customer who placed the order", ("0000500000", "0000500001"),
                      nullable=False, referenced_table="KNA1", referenced_column="KUNNR"),
            SAPColumn("VKORG", "VARCHAR(4)", "organization", "Sales Organization",
                      "Sales organization responsible for the sale", ("1000", "2000")),
        ),
    ),
    "VBAP": SAPTable(
        name="VBAP",
        module="SD",
        description="Sales Document Item Data",
        business_purpose="Contains line item details for sales documents including materials and quantities",
        columns=(
            SAPColumn("VBELN", "VARCHAR(10)", "identifier", "Sales Document Number",
                      "Links to sales document header", ("5000001234", "5000001235"),
                      nullable=False, is_key=True, referenced_table="VBAK", referenced_column="VBELN"),
            SAPColumn("POSNR", "VARCHAR(6)", "identifier", "Sales Document Item",
                      "Line item number within the sales document", ("000010", "000020"),
                      nullable=False, is_key=True),
            SAPColumn("MATNR", "VARCHAR(18)", "identifier", "Material Number",
                      "Product being sold", ("000000000000100000", "000000000000100001"),
                      referenced_table="MARA", referenced_column="MATNR"),
            SAPColumn("KWMENG", "DECIMAL(15,3)", "quantity", "Cumulative Order Quantity",
                      "Total quantity ordered for this item", (10.0, 25.5)),
            SAPColumn("WERKS", "VARCHAR(4)", "organization", "Plant",
                      "Manufacturing or distribution plant", ("1000", "2000")),
            SAPColumn("ERDAT", "DATE", "date", "Created On",
                      "Date when the item was created", ("2025-01-15", "2025-01-16")),
        ),
    ),
}


def sap_identifiers(table_names: list[str] | None = None) -> list[str]:
    """Table and column names of the given (default: all) catalogued tables."""
    names: list[str] = []
    for table in SAP_TABLES.values():
        if table_names is not None and table.name not in table_names:
            continue
        names.append(table.name)
        names.extend(table.column_names)
    return names
