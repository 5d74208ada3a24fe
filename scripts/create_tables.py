'''
Creates the accounts, tuition_posts, applications and payment_records tables
(with their indexes and constraints) from the ORM metadata.

Usage:
    python scripts/create_tables.py [--test] [--drop]
'''
import argparse
import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# --- Path Setup ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")


async def create_tables(use_test_db: bool, drop_first: bool):
    if use_test_db:
        os.environ["TEST_MODE"] = "True"

    from sqlalchemy.ext.asyncio import create_async_engine
    from src.tutorate_backend.common.config import settings
    from src.tutorate_backend.common.logger import log
    from src.tutorate_backend.database.models import Base

    engine = create_async_engine(settings.database_url)
    try:
        async with engine.begin() as conn:
            if drop_first:
                log.warning("Dropping all tables before re-creating them.")
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        log.info(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the database schema.")
    parser.add_argument("--test", action="store_true", help="Use DATABASE_URL_TEST.")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first.")
    args = parser.parse_args()
    asyncio.run(create_tables(args.test, args.drop))
