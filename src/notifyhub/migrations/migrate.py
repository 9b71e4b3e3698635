"""
Database Migration Runner

Applies SQL migrations in file-name order and records each applied file
in schema_migrations, so reruns only apply new files.

    python -m notifyhub.migrations.migrate
"""
import asyncio
import asyncpg
import sys
from pathlib import Path
from typing import List, Optional

from ..config import Config

_TRACKING_TABLE = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        name TEXT PRIMARY KEY,
        applied_at TIMESTAMP NOT NULL DEFAULT NOW()
    )
"""


def pending_migrations(migrations_dir: Path, applied: set) -> List[Path]:
    """SQL files not yet applied, sorted by name"""
    return [f for f in sorted(migrations_dir.glob("*.sql")) if f.name not in applied]


async def run_migrations(dsn: Optional[str] = None, migrations_dir: Optional[Path] = None) -> int:
    """Apply pending migrations; returns how many were applied"""
    migrations_dir = migrations_dir or Config.MIGRATIONS_DIR
    dsn = dsn or Config.get_postgres_dsn()

    print("Connecting to database...")
    conn = await asyncpg.connect(dsn)
    print("Connected successfully!")

    applied_count = 0
    try:
        await conn.execute(_TRACKING_TABLE)
        rows = await conn.fetch("SELECT name FROM schema_migrations")
        applied = {row["name"] for row in rows}

        for sql_file in pending_migrations(migrations_dir, applied):
            print(f"\nRunning migration: {sql_file.name}")
            sql = sql_file.read_text(encoding="utf-8")

            # Each file and its tracking row commit together
            async with conn.transaction():
                await conn.execute(sql)
                await conn.execute("INSERT INTO schema_migrations (name) VALUES ($1)", sql_file.name)
            print(f"  ✓ {sql_file.name} completed")
            applied_count += 1
    finally:
        await conn.close()

    print(f"\nMigrations complete! ({applied_count} applied)")
    return applied_count


def main():
    try:
        asyncio.run(run_migrations())
    except (asyncpg.PostgresError, OSError) as e:
        print(f"Migration failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
