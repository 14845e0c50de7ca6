"""
Auto-migration system for schema changes.

Runs on every startup and is safe to repeat: creates missing tables, adds
columns that exist in the models but not in the database, and on PostgreSQL
installs the exclusion constraint that stops two live reservations from
holding the same room on overlapping dates.
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports when running standalone
if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine
from database import Base
import models  # noqa: F401  registers tables on Base.metadata
from store import OVERLAP_CONSTRAINT

logger = logging.getLogger(__name__)


async def get_table_columns(engine: AsyncEngine, table_name: str) -> set:
    """Get all column names for a table from the database."""
    async with engine.connect() as conn:
        if engine.dialect.name == "sqlite":
            result = await conn.execute(text(f"PRAGMA table_info({table_name})"))
            return {row[1] for row in result}
        result = await conn.execute(
            text("SELECT column_name FROM information_schema.columns WHERE table_name = :table"),
            {"table": table_name},
        )
        return {row[0] for row in result}


async def add_missing_columns(engine: AsyncEngine):
    """
    Add nullable columns that the models define but the database lacks.
    SQLite is skipped; create_all covers fresh local databases.
    """
    if engine.dialect.name == "sqlite":
        logger.info("ℹ️ Skipping column detection for SQLite. create_all handles table creation.")
        return

    changes_made = False
    for table_name, table in Base.metadata.tables.items():
        db_columns = await get_table_columns(engine, table_name)
        if not db_columns:
            continue

        missing_columns = {col.name for col in table.columns} - db_columns
        if not missing_columns:
            continue

        logger.info(f"📝 Table '{table_name}' is missing columns: {missing_columns}")
        async with engine.begin() as conn:
            for col_name in sorted(missing_columns):
                col_type = table.columns[col_name].type.compile(engine.dialect)
                await conn.execute(text(
                    f"ALTER TABLE {table_name} ADD COLUMN IF NOT EXISTS {col_name} {col_type} NULL"
                ))
                logger.info(f"✅ Added column {table_name}.{col_name}")
                changes_made = True

    if changes_made:
        logger.info("✅ Schema migration completed - columns added")
    else:
        logger.info("✅ Schema is up to date - no changes needed")


async def add_reservation_overlap_constraint(engine: AsyncEngine):
    """
    EXCLUDE USING gist on (room_id, [check_in_date, check_out_date)) for
    non-cancelled reservations. PostgreSQL only; needs btree_gist for the
    integer equality part.
    """
    if engine.dialect.name != "postgresql":
        logger.info("ℹ️ Reservation overlap constraint needs PostgreSQL, relying on the store-level check")
        return

    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS btree_gist"))

        result = await conn.execute(
            text("SELECT 1 FROM pg_constraint WHERE conname = :name"),
            {"name": OVERLAP_CONSTRAINT},
        )
        if result.scalar():
            logger.info(f"✅ Constraint {OVERLAP_CONSTRAINT} already exists")
            return

        await conn.execute(text(f"""
            ALTER TABLE reservations
            ADD CONSTRAINT {OVERLAP_CONSTRAINT}
            EXCLUDE USING gist (
                room_id WITH =,
                daterange(check_in_date, check_out_date, '[)') WITH &&
            )
            WHERE (status <> 'cancelled')
        """))
    logger.info(f"✅ Added exclusion constraint {OVERLAP_CONSTRAINT}")


async def run_migrations(engine: AsyncEngine = None):
    """
    Main migration entry point.
    1. Creates missing tables (via create_all)
    2. Adds missing columns to existing tables
    3. Adds the reservation overlap constraint
    """
    if engine is None:
        from database import engine

    logger.info("=" * 60)
    logger.info("Starting database schema migration...")
    logger.info("=" * 60)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ All tables exist")

    await add_missing_columns(engine)
    await add_reservation_overlap_constraint(engine)

    logger.info("=" * 60)
    logger.info("Database schema migration completed!")
    logger.info("=" * 60)


if __name__ == "__main__":
    # Allow running migrations standalone
    logging.basicConfig(level=logging.INFO)
    asyncio.run(run_migrations())
