"""
Migration to create the events and failed_events tables
"""

import asyncio
from datetime import datetime, timezone

from sqlalchemy import text

from adoption_insights.core.database import engine, async_session, init_db
from adoption_insights.services.dialects import dialect_for
from adoption_insights.services.partition_service import PartitionManager, partition_name


async def create_event_tables():
    """Create both tables and, on Postgres, the current month's partition"""
    try:
        print("Creating events and failed_events tables...")
        await init_db(engine)

        dialect = dialect_for(engine)
        if dialect.is_partition_supported():
            now = datetime.now(timezone.utc)
            await PartitionManager(engine).create_partition(now.year, now.month)
            print(f"✅ Partition {partition_name(now.year, now.month)} is in place")

        print("✅ Event tables created successfully")

    except Exception as e:
        print(f"❌ Error creating event tables: {e}")
        raise


async def verify_tables_exist():
    """Verify that both tables exist and are accessible"""
    try:
        async with async_session() as session:
            for table in ("events", "failed_events"):
                result = await session.execute(text(f"SELECT COUNT(*) FROM {table}"))
                print(f"✅ {table} table verified - current record count: {result.scalar()}")

    except Exception as e:
        print(f"❌ Error verifying event tables: {e}")
        raise


async def main():
    """Main migration function"""
    print("Starting event tables migration...")

    await create_event_tables()
    await verify_tables_exist()

    print("Migration completed successfully!")


if __name__ == "__main__":
    asyncio.run(main())
