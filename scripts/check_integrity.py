'''
Audits the marketplace invariants against a live database:

1. applicants counter == applications in {pending, approved}, per post
2. every assigned post has exactly one approved application and one payment record
3. no email is shared by two non-deleted accounts

Exits with status 1 if any check fails.

Usage:
    python scripts/check_integrity.py [--test]
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


async def check_integrity(use_test_db: bool) -> bool:
    if use_test_db:
        os.environ["TEST_MODE"] = "True"

    from sqlalchemy import text
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
    from src.tutorate_backend.common.config import settings

    print("Connecting to database...")
    engine = create_async_engine(settings.database_url)
    async_session = async_sessionmaker(engine, class_=AsyncSession)
    healthy = True

    try:
        async with async_session() as session:
            print("--- Checking applicant counters ---")
            rows = (await session.execute(text("""
                SELECT p.id, p.applicants, COUNT(a.id) AS actual
                FROM tuition_posts p
                LEFT JOIN applications a
                  ON a.tuition_post_id = p.id AND a.status IN ('pending', 'approved')
                GROUP BY p.id, p.applicants
                HAVING p.applicants <> COUNT(a.id)
            """))).all()
            for post_id, counter, actual in rows:
                print(f"  Post {post_id}: applicants={counter}, actual={actual}")
            if rows:
                healthy = False
            else:
                print("  OK")

            print("--- Checking assigned posts ---")
            rows = (await session.execute(text("""
                SELECT p.id,
                       (SELECT COUNT(*) FROM applications a
                         WHERE a.tuition_post_id = p.id AND a.status = 'approved') AS approved,
                       (SELECT COUNT(*) FROM payment_records r
                         WHERE r.tuition_post_id = p.id) AS payments
                FROM tuition_posts p
                WHERE p.status IN ('ongoing', 'completed')
            """))).all()
            broken = [row for row in rows if row.approved != 1 or row.payments != 1]
            for post_id, approved, payments in broken:
                print(f"  Post {post_id}: approved applications={approved}, payment records={payments}")
            if broken:
                healthy = False
            else:
                print(f"  OK ({len(rows)} assigned posts)")

            print("--- Checking duplicate emails ---")
            rows = (await session.execute(text("""
                SELECT email, COUNT(*) FROM accounts
                WHERE status <> 'deleted'
                GROUP BY email HAVING COUNT(*) > 1
            """))).all()
            for email, count in rows:
                print(f"  {email}: {count} non-deleted accounts")
            if rows:
                healthy = False
            else:
                print("  OK")
    finally:
        await engine.dispose()

    print("Integrity check passed." if healthy else "Integrity check FAILED.")
    return healthy


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Audit marketplace invariants.")
    parser.add_argument("--test", action="store_true", help="Use DATABASE_URL_TEST.")
    args = parser.parse_args()
    sys.exit(0 if asyncio.run(check_integrity(args.test)) else 1)
