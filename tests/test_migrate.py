"""Tests for the migration runner."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from notifyhub.migrations.migrate import pending_migrations, run_migrations


def test_pending_migrations_are_sorted_and_filtered(tmp_path):
    for name in ("002_b.sql", "001_a.sql", "003_c.sql", "notes.txt"):
        (tmp_path / name).write_text("SELECT 1;")

    pending = pending_migrations(tmp_path, applied={"001_a.sql"})

    assert [p.name for p in pending] == ["002_b.sql", "003_c.sql"]


@pytest.mark.asyncio
async def test_run_migrations_records_each_file(tmp_path):
    (tmp_path / "001_a.sql").write_text("CREATE TABLE a (id INT);")
    (tmp_path / "002_b.sql").write_text("CREATE TABLE b (id INT);")

    conn = MagicMock()
    conn.execute = AsyncMock()
    conn.fetch = AsyncMock(return_value=[{"name": "001_a.sql"}])
    conn.close = AsyncMock()
    transaction = MagicMock()
    transaction.__aenter__ = AsyncMock()
    transaction.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=transaction)

    with patch("notifyhub.migrations.migrate.asyncpg.connect", AsyncMock(return_value=conn)):
        applied = await run_migrations(dsn="postgresql://test", migrations_dir=tmp_path)

    assert applied == 1
    conn.execute.assert_any_await("CREATE TABLE b (id INT);")
    conn.execute.assert_any_await("INSERT INTO schema_migrations (name) VALUES ($1)", "002_b.sql")
    conn.close.assert_awaited_once()
