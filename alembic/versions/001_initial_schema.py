"""Initial schema - simulated SAP tables and pipeline metadata.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-16

This migration creates:
- MARA, KNA1, VBAK, VBAP: simulated SAP master and sales tables
  (uppercase names, so they are always quoted in SQL)
- column_metadata: per-column analysis with description embeddings
- table_relationships: inferred join paths
- ground_truths: versioned table/join graphs
- schema_summaries: per-table summaries with embeddings
- query_templates: reusable SQL skeletons
- generated_queries: audit log of generated SQL

It also enables the pgvector extension used by the embedding columns.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

EMBEDDING_DIMENSIONS = 1536


def _id_column() -> sa.Column:
    return sa.Column("id", sa.UUID(), nullable=False, comment="UUID7 primary key")


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("now()"),
    )


def upgrade() -> None:
    """Create the extension, tables, indexes, and constraints."""

    op.execute("CREATE EXTENSION IF NOT EXISTS vector")

    # ==========================================================================
    # Simulated SAP tables
    # ==========================================================================

    op.create_table(
        "MARA",
        sa.Column("MATNR", sa.String(length=18), nullable=False, comment="Material number"),
        sa.Column("MTART", sa.String(length=4), nullable=False, comment="Material type"),
        sa.Column("MATKL", sa.String(length=9), nullable=True, comment="Material group"),
        sa.Column("MEINS", sa.String(length=3), nullable=False, comment="Base unit of measure"),
        sa.Column("LAEDA", sa.Date(), nullable=True, comment="Date of last change"),
        sa.PrimaryKeyConstraint("MATNR", name="pk_MARA"),
    )

    op.create_table(
        "KNA1",
        sa.Column("KUNNR", sa.String(length=10), nullable=False, comment="Customer number"),
        sa.Column("LAND1", sa.String(length=2), nullable=True, comment="Country key"),
        sa.Column("ORT01", sa.String(length=25), nullable=True, comment="City"),
        sa.Column("NAME1", sa.String(length=35), nullable=False, comment="Name 1"),
        sa.Column("REGIO", sa.String(length=3), nullable=True, comment="Region"),
        sa.PrimaryKeyConstraint("KUNNR", name="pk_KNA1"),
    )

    op.create_table(
        "VBAK",
        sa.Column("VBELN", sa.String(length=10), nullable=False, comment="Sales document"),
        sa.Column("AUART", sa.String(length=4), nullable=True, comment="Sales document type"),
        sa.Column("ERDAT", sa.Date(), nullable=True, comment="Created on"),
        sa.Column("KUNNR", sa.String(length=10), nullable=False, comment="Sold-to party"),
        sa.Column("VKORG", sa.String(length=4), nullable=True, comment="Sales organization"),
        sa.ForeignKeyConstraint(["KUNNR"], ["KNA1.KUNNR"], name="fk_VBAK_KUNNR_KNA1"),
        sa.PrimaryKeyConstraint("VBELN", name="pk_VBAK"),
    )
    op.create_index("ix_vbak_kunnr", "VBAK", ["KUNNR"], unique=False)

    op.create_table(
        "VBAP",
        sa.Column("VBELN", sa.String(length=10), nullable=False, comment="Sales document"),
        sa.Column("POSNR", sa.String(length=6), nullable=False, comment="Item number"),
        sa.Column("MATNR", sa.String(length=18), nullable=True, comment="Material number"),
        sa.Column("KWMENG", sa.Numeric(precision=15, scale=3), nullable=True, comment="Cumulative order quantity"),
        sa.Column("WERKS", sa.String(length=4), nullable=True, comment="Plant"),
        sa.Column("ERDAT", sa.Date(), nullable=True, comment="Created on"),
        sa.ForeignKeyConstraint(["VBELN"], ["VBAK.VBELN"], name="fk_VBAP_VBELN_VBAK", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["MATNR"], ["MARA.MATNR"], name="fk_VBAP_MATNR_MARA"),
        sa.PrimaryKeyConstraint("VBELN", "POSNR", name="pk_VBAP"),
    )
    op.create_index("ix_vbap_matnr", "VBAP", ["MATNR"], unique=False)

    # ==========================================================================
    # Pipeline metadata
    # ==========================================================================

    # --------------------------------------------------------------------------
    # column_metadata table
    # --------------------------------------------------------------------------
    op.create_table(
        "column_metadata",
        _id_column(),
        sa.Column("table_name", sa.String(length=64), nullable=False, comment="SAP table name"),
        sa.Column("column_name", sa.String(length=64), nullable=False, comment="Column name within the table"),
        sa.Column("data_type", sa.String(length=64), nullable=False),
        sa.Column("is_nullable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_primary_key", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_foreign_key", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("referenced_table", sa.String(length=64), nullable=True),
        sa.Column("referenced_column", sa.String(length=64), nullable=True),
        sa.Column(
            "semantic_type",
            sa.String(length=32),
            nullable=True,
            comment="identifier, name, date, amount, ...",
        ),
        sa.Column("business_context", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "embedding",
            Vector(EMBEDDING_DIMENSIONS),
            nullable=True,
            comment="Embedding of the column description",
        ),
        sa.Column("sample_values", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("value_patterns", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("unique_value_count", sa.Integer(), nullable=True),
        sa.Column("null_percentage", sa.Float(), nullable=True),
        sa.Column("possible_join_keys", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("semantic_similarity", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "null_percentage IS NULL OR (null_percentage >= 0 AND null_percentage <= 100)",
            name="ck_column_metadata_null_percentage_range",
        ),
        sa.UniqueConstraint("table_name", "column_name", name="uq_column_metadata_table_column"),
        sa.PrimaryKeyConstraint("id", name="pk_column_metadata"),
    )
    op.create_index("ix_column_metadata_table_name", "column_metadata", ["table_name"], unique=False)
    op.create_index("ix_column_metadata_semantic_type", "column_metadata", ["semantic_type"], unique=False)

    # --------------------------------------------------------------------------
    # table_relationships table
    # --------------------------------------------------------------------------
    op.create_table(
        "table_relationships",
        _id_column(),
        sa.Column("left_table", sa.String(length=64), nullable=False),
        sa.Column("left_column", sa.String(length=64), nullable=False),
        sa.Column("right_table", sa.String(length=64), nullable=False),
        sa.Column("right_column", sa.String(length=64), nullable=False),
        sa.Column(
            "relationship_type",
            sa.String(length=32),
            nullable=False,
            comment="one_to_many, inferred, semantic_match, ...",
        ),
        sa.Column("join_type", sa.String(length=16), nullable=False, server_default="inner"),
        sa.Column("confidence", sa.Float(), nullable=False, comment="Inference confidence (0.0 to 1.0)"),
        sa.Column("business_rule", sa.Text(), nullable=True),
        sa.Column("inference_method", sa.String(length=32), nullable=True),
        sa.Column("evidence", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_table_relationships_confidence_range",
        ),
        sa.UniqueConstraint(
            "left_table",
            "left_column",
            "right_table",
            "right_column",
            name="uq_table_relationships_join",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_table_relationships"),
    )
    op.create_index(
        "ix_table_relationships_left",
        "table_relationships",
        ["left_table", "left_column"],
        unique=False,
    )
    op.create_index(
        "ix_table_relationships_right",
        "table_relationships",
        ["right_table", "right_column"],
        unique=False,
    )

    # --------------------------------------------------------------------------
    # ground_truths table
    # --------------------------------------------------------------------------
    op.create_table(
        "ground_truths",
        _id_column(),
        sa.Column("version", sa.String(length=32), nullable=False, comment="v<epoch millis>"),
        sa.Column(
            "graph",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            comment="{version, tables, joins, metadata}",
        ),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_ground_truths"),
    )
    op.create_index(
        "ix_ground_truths_created_at",
        "ground_truths",
        [sa.text("created_at DESC")],
        unique=False,
    )

    # --------------------------------------------------------------------------
    # schema_summaries table
    # --------------------------------------------------------------------------
    op.create_table(
        "schema_summaries",
        _id_column(),
        sa.Column("table", sa.String(length=64), nullable=False, comment="SAP table name"),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column(
            "embedding",
            Vector(EMBEDDING_DIMENSIONS),
            nullable=True,
            comment="Embedding of the summary text",
        ),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("table", name="uq_schema_summaries_table"),
        sa.PrimaryKeyConstraint("id", name="pk_schema_summaries"),
    )

    # --------------------------------------------------------------------------
    # query_templates table
    # --------------------------------------------------------------------------
    op.create_table(
        "query_templates",
        _id_column(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("pattern", sa.String(length=500), nullable=False, comment="Matched (ILIKE) against prompts"),
        sa.Column("sql_template", sa.Text(), nullable=False),
        sa.Column(
            "required_tables",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_query_templates_confidence_range",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_query_templates"),
    )
    op.create_index("ix_query_templates_pattern", "query_templates", ["pattern"], unique=False)

    # --------------------------------------------------------------------------
    # generated_queries table
    # --------------------------------------------------------------------------
    op.create_table(
        "generated_queries",
        _id_column(),
        sa.Column("prompt", sa.Text(), nullable=False, comment="Natural-language request"),
        sa.Column("sql", sa.Text(), nullable=False, comment="Generated SQL"),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="0"),
        sa.Column("complexity", sa.String(length=16), nullable=False, server_default="simple"),
        sa.Column(
            "tables_used",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column(
            "join_types",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("template_used", sa.String(length=200), nullable=True),
        sa.Column("validation_status", sa.String(length=16), nullable=False, server_default="valid"),
        sa.Column("validation_errors", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("business_logic", sa.Text(), nullable=True),
        sa.Column("sap_modules", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("execution_time", sa.Float(), nullable=True, comment="Milliseconds"),
        sa.Column("result_count", sa.Integer(), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "confidence >= 0 AND confidence <= 1",
            name="ck_generated_queries_confidence_range",
        ),
        sa.CheckConstraint(
            "validation_status IN ('valid', 'invalid', 'warning')",
            name="ck_generated_queries_validation_status_values",
        ),
        sa.CheckConstraint(
            "complexity IN ('simple', 'medium', 'complex')",
            name="ck_generated_queries_complexity_values",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_generated_queries"),
    )
    op.create_index(
        "ix_generated_queries_created_at",
        "generated_queries",
        [sa.text("created_at DESC")],
        unique=False,
    )
    op.create_index("ix_generated_queries_confidence", "generated_queries", ["confidence"], unique=False)


def downgrade() -> None:
    """Drop all tables in reverse order."""

    op.drop_table("generated_queries")
    op.drop_table("query_templates")
    op.drop_table("schema_summaries")
    op.drop_table("ground_truths")
    op.drop_table("table_relationships")
    op.drop_table("column_metadata")

    op.drop_table("VBAP")
    op.drop_table("VBAK")
    op.drop_table("KNA1")
    op.drop_table("MARA")
