"""
Database models for the SAP query assistant.

Metadata models (written by the AI pipeline):
- ColumnMetadata: Per-column analysis with embeddings
- TableRelationship: Inferred join paths
- GroundTruth: Versioned table/join graph
- SchemaSummary: Per-table business summary with embedding
- QueryTemplate: Reusable SQL skeletons
- GeneratedQuery: Audit log of generated SQL

Simulated SAP tables (seeded with Faker):
- Mara, Kna1, Vbak, Vbap
"""

from src.db.models.column_metadata import ColumnMetadata
from src.db.models.generated_query import GeneratedQuery
from src.db.models.ground_truth import GroundTruth
from src.db.models.query_template import QueryTemplate
from src.db.models.sap_tables import SAP_TABLE_MODELS, Kna1, Mara, Vbak, Vbap
from src.db.models.schema_summary import SchemaSummary
from src.db.models.table_relationship import TableRelationship

__all__ = [
    # Metadata models
    "ColumnMetadata",
    "TableRelationship",
    "GroundTruth",
    "SchemaSummary",
    "QueryTemplate",
    "GeneratedQuery",
    # SAP simulation tables
    "Mara",
    "Kna1",
    "Vbak",
    "Vbap",
    "SAP_TABLE_MODELS",
]
