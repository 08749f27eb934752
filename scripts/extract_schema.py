#!/usr/bin/env python3
"""
Dump the structure of the simulated SAP tables to JSON.

Reads field lists, sample rows and row counts of MARA, KNA1, VBAK and
VBAP, and writes them to ``<extract_dir>/sap_extraction_<timestamp>.json``.
Optionally builds and stores a ground truth graph from the same data.

Usage:
    python scripts/extract_schema.py
    python scripts/extract_schema.py --output-dir /tmp/extracts --ground-truth

Requirements:
    - Database must be running and seeded (python scripts/seed.py)
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.exc import SQLAlchemyError  # noqa: E402

from src.core.logging import get_logger, setup_logging  # noqa: E402
from src.db import get_db_context  # noqa: E402
from src.services.extractor import ExtractorService  # noqa: E402
from src.services.ground_truth import GroundTruthBuilder  # noqa: E402

logger = get_logger(__name__)


async def extract(output_dir: str | None, build_ground_truth: bool) -> None:
    try:
        async with get_db_context() as db:
            extractor = ExtractorService(db, extract_dir=output_dir)
            data = await extractor.extract_all_tables()
            filepath = extractor.save_extracted_data(data)

            print(f"\n{'='*60}")
            print("Extracted tables")
            print(f"{'='*60}")
            for table in data.tables:
                print(f"  {table.table_name:<6} {len(table.fields):>3} fields  {table.record_count:>8} rows")
            print(f"\nTotal records: {data.total_records}")
            print(f"Written to:    {filepath}")

            if build_ground_truth:
                builder = GroundTruthBuilder(db)
                graph = builder.build_ground_truth(data.tables)
                validation = builder.validate_ground_truth(graph)
                ground_truth_id = await builder.save_ground_truth(graph)
                print(f"\nGround truth {graph['version']} stored ({ground_truth_id})")
                print(f"Joins: {len(graph['joins'])}  valid: {validation['is_valid']}")
            print(f"{'='*60}\n")
    except (SQLAlchemyError, OSError) as e:
        logger.error("Extraction failed", error=str(e))
        print(f"\nError: {e}")
        sys.exit(1)


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Dump SAP table structures to JSON")
    parser.add_argument(
        "--output-dir", "-o",
        type=str,
        default=None,
        help="Directory for the JSON dump (default: settings.extract_dir)",
    )
    parser.add_argument(
        "--ground-truth",
        action="store_true",
        help="Also build and store a ground truth graph",
    )
    args = parser.parse_args()

    setup_logging()
    asyncio.run(extract(args.output_dir, args.ground_truth))


if __name__ == "__main__":
    main()
