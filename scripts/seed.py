#!/usr/bin/env python3
"""
Seed the simulated SAP tables with Faker data.

This script:
1. Inserts MARA (materials) and KNA1 (customers)
2. Inserts VBAK (sales headers) referencing random customers
3. Inserts 1..N VBAP items per header referencing random materials
4. Inserts a small set of query templates

Inserts are batched (1000 rows) and idempotent: rows whose keys already
exist are skipped.

Usage:
    # Default scale (small)
    python scripts/seed.py

    # Explicit scale, also read from SEED_SCALE
    python scripts/seed.py --scale tiny
    SEED_SCALE=medium python scripts/seed.py

Requirements:
    - Database must be running (docker-compose up -d postgres)
    - Migration must be applied (alembic upgrade head)
"""

import argparse
import asyncio
import os
import random
import sys
import time
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from faker import Faker  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.dialects.postgresql import insert  # noqa: E402
from sqlalchemy.exc import SQLAlchemyError  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from src.core.logging import get_logger, setup_logging  # noqa: E402
from src.db import Kna1, Mara, QueryTemplate, Vbak, Vbap, get_db_context  # noqa: E402

logger = get_logger(__name__)

BATCH_SIZE = 1000


@dataclass(frozen=True)
class Volume:
    mara: int
    kna1: int
    vbak: int
    vbap_per_vbak: tuple[int, int]


VOLUMES: dict[str, Volume] = {
    "tiny": Volume(mara=500, kna1=200, vbak=1000, vbap_per_vbak=(1, 3)),
    "small": Volume(mara=5000, kna1=2000, vbak=10000, vbap_per_vbak=(1, 5)),
    "medium": Volume(mara=20000, kna1=10000, vbak=50000, vbap_per_vbak=(1, 8)),
    "large": Volume(mara=50000, kna1=30000, vbak=150000, vbap_per_vbak=(1, 10)),
}

MTARTS = ["FERT", "HALB", "ROH", "HAWA"]
MEINS = ["PC", "EA", "KG", "LTR", "M"]
VKORGS = ["1000", "2000", "3000"]
WERKS = ["1000", "1100", "1200", "2000"]
AUARTS = ["OR", "TA", "KE", "RE"]

QUERY_TEMPLATES = [
    {
        "name": "Customer orders",
        "description": "Sales orders per customer",
        "pattern": "customer",
        "sql_template": (
            'SELECT "KNA1"."KUNNR", "KNA1"."NAME1", "VBAK"."VBELN", "VBAK"."ERDAT" '
            'FROM "KNA1" INNER JOIN "VBAK" ON "KNA1"."KUNNR" = "VBAK"."KUNNR"'
        ),
        "required_tables": ["KNA1", "VBAK"],
        "confidence": 0.9,
    },
    {
        "name": "Order items with materials",
        "description": "Sales order items joined to their material master",
        "pattern": "material",
        "sql_template": (
            'SELECT "VBAP"."VBELN", "VBAP"."POSNR", "MARA"."MATNR", "MARA"."MTART" '
            'FROM "VBAP" INNER JOIN "MARA" ON "VBAP"."MATNR" = "MARA"."MATNR"'
        ),
        "required_tables": ["VBAP", "MARA"],
        "confidence": 0.85,
    },
    {
        "name": "Order headers with items",
        "description": "Sales order headers with their line items",
        "pattern": "order",
        "sql_template": (
            'SELECT "VBAK"."VBELN", "VBAK"."ERDAT", "VBAP"."POSNR", "VBAP"."KWMENG" '
            'FROM "VBAK" INNER JOIN "VBAP" ON "VBAK"."VBELN" = "VBAP"."VBELN"'
        ),
        "required_tables": ["VBAK", "VBAP"],
        "confidence": 0.8,
    },
]


def gen_matnr(i: int) -> str:
    return str(100000 + i).zfill(18)


def gen_vbeln(i: int) -> str:
    return str(900000 + i).zfill(10)


def gen_kunnr(i: int) -> str:
    return str(500000 + i).zfill(10)


async def insert_batches(db: AsyncSession, model: type, rows: list[dict]) -> None:
    """Insert ``rows`` in batches, skipping rows whose primary key exists."""
    for start in range(0, len(rows), BATCH_SIZE):
        batch = rows[start:start + BATCH_SIZE]
        await db.execute(insert(model).values(batch).on_conflict_do_nothing())
    await db.commit()


async def seed_mara(db: AsyncSession, fake: Faker, volume: Volume) -> None:
    rows = [
        {
            "MATNR": gen_matnr(i),
            "MTART": random.choice(MTARTS),
            "MATKL": fake.bothify("?" * random.randint(4, 9)).upper(),
            "MEINS": random.choice(MEINS),
            "LAEDA": fake.date_between(start_date="-180d", end_date="today"),
        }
        for i in range(volume.mara)
    ]
    await insert_batches(db, Mara, rows)
    logger.info("Seeded MARA", rows=len(rows))


async def seed_kna1(db: AsyncSession, fake: Faker, volume: Volume) -> None:
    rows = [
        {
            "KUNNR": gen_kunnr(i),
            "LAND1": fake.country_code(),
            "ORT01": fake.city()[:25],
            "NAME1": fake.company()[:35],
            "REGIO": fake.state_abbr(),
        }
        for i in range(volume.kna1)
    ]
    await insert_batches(db, Kna1, rows)
    logger.info("Seeded KNA1", rows=len(rows))


async def seed_sales(db: AsyncSession, fake: Faker, volume: Volume) -> None:
    """VBAK headers in batches, each followed by its VBAP items."""
    material_keys = list((await db.execute(select(Mara.MATNR).limit(50000))).scalars().all())
    customer_keys = list((await db.execute(select(Kna1.KUNNR).limit(50000))).scalars().all())
    if not material_keys or not customer_keys:
        raise RuntimeError("MARA and KNA1 must be seeded before sales documents")

    low, high = volume.vbap_per_vbak
    item_count = 0

    for start in range(0, volume.vbak, BATCH_SIZE):
        headers = [
            {
                "VBELN": gen_vbeln(i),
                "AUART": random.choice(AUARTS),
                "ERDAT": fake.date_between(start_date="-365d", end_date="today"),
                "KUNNR": random.choice(customer_keys),
                "VKORG": random.choice(VKORGS),
            }
            for i in range(start, min(start + BATCH_SIZE, volume.vbak))
        ]
        await db.execute(insert(Vbak).values(headers).on_conflict_do_nothing())

        items = [
            {
                "VBELN": header["VBELN"],
                "POSNR": str(position).zfill(6),
                "MATNR": random.choice(material_keys),
                "KWMENG": Decimal(str(round(random.uniform(1, 100), 3))),
                "WERKS": random.choice(WERKS),
                "ERDAT": header["ERDAT"],
            }
            for header in headers
            for position in range(1, random.randint(low, high) + 1)
        ]
        for item_start in range(0, len(items), BATCH_SIZE):
            batch = items[item_start:item_start + BATCH_SIZE]
            await db.execute(insert(Vbap).values(batch).on_conflict_do_nothing())
        item_count += len(items)

        await db.commit()

    logger.info("Seeded VBAK and VBAP", headers=volume.vbak, items=item_count)


async def seed_templates(db: AsyncSession) -> None:
    existing = set((await db.execute(select(QueryTemplate.name))).scalars().all())
    new_templates = [QueryTemplate(**t) for t in QUERY_TEMPLATES if t["name"] not in existing]
    db.add_all(new_templates)
    await db.commit()
    logger.info("Seeded query templates", added=len(new_templates))


async def seed(scale: str, seed_value: int | None) -> None:
    volume = VOLUMES[scale]
    fake = Faker()
    if seed_value is not None:
        Faker.seed(seed_value)
        random.seed(seed_value)

    print(f"\n{'='*60}")
    print("SAP Simulation Seeder")
    print(f"{'='*60}")
    print(f"Scale:     {scale}")
    print(f"MARA:      {volume.mara}")
    print(f"KNA1:      {volume.kna1}")
    print(f"VBAK:      {volume.vbak} ({volume.vbap_per_vbak[0]}-{volume.vbap_per_vbak[1]} items each)")
    print(f"{'='*60}\n")

    start = time.perf_counter()
    try:
        async with get_db_context() as db:
            await seed_mara(db, fake, volume)
            await seed_kna1(db, fake, volume)
            await seed_sales(db, fake, volume)
            await seed_templates(db)
    except (SQLAlchemyError, RuntimeError) as e:
        logger.error("Seeding failed", error=str(e))
        print(f"\nError: {e}")
        sys.exit(1)

    print(f"\nSeed completed in {time.perf_counter() - start:.1f}s\n")


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Seed the simulated SAP tables with Faker data")
    parser.add_argument(
        "--scale",
        choices=sorted(VOLUMES),
        default=os.environ.get("SEED_SCALE", "small"),
        help="Data volume (default: SEED_SCALE or small)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducible data",
    )
    args = parser.parse_args()

    setup_logging()
    asyncio.run(seed(args.scale, args.seed))


if __name__ == "__main__":
    main()
