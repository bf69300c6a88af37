"""Unit tests for migrations and pool helpers."""

import tomllib
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from inkwell import database


class _Transaction:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False


@pytest.fixture
def migrations_dir(tmp_path):
    (tmp_path / "001_users.sql").write_text("CREATE TABLE users ();")
    (tmp_path / "002_tokens.sql").write_text("CREATE TABLE refresh_tokens ();")
    return tmp_path


@pytest.fixture
def pool(mock_pool):
    pool, conn = mock_pool
    conn.transaction = lambda: _Transaction()
    return pool, conn


class TestRunMigrations:
    async def test_applies_files_in_order(self, pool, migrations_dir):
        pool, conn = pool
        conn.fetch.return_value = []

        applied = await database.run_migrations(pool, migrations_dir)

        assert applied == ["001_users.sql", "002_tokens.sql"]
        executed = [c.args[0] for c in conn.execute.call_args_list]
        assert "schema_migrations" in executed[0]
        assert executed[1] == "CREATE TABLE users ();"
        assert executed[3] == "CREATE TABLE refresh_tokens ();"

    async def test_skips_applied_files(self, pool, migrations_dir):
        pool, conn = pool
        conn.fetch.return_value = [{"name": "001_users.sql"}]

        applied = await database.run_migrations(pool, migrations_dir)

        assert applied == ["002_tokens.sql"]

    async def test_missing_directory_raises(self, pool, tmp_path):
        pool, conn = pool
        with pytest.raises(FileNotFoundError):
            await database.run_migrations(pool, tmp_path / "nope")
        conn.execute.assert_not_called()

    async def test_schema_ships_inside_package(self):
        package_dir = Path(database.__file__).parent
        assert database.MIGRATIONS_DIR.parent == package_dir
        names = [p.name for p in database.MIGRATIONS_DIR.glob("*.sql")]
        assert "001_auth.sql" in names

    def test_schema_declared_as_package_data(self):
        pyproject = Path(database.__file__).parent.parent / "pyproject.toml"
        config = tomllib.loads(pyproject.read_text())
        package_data = config["tool"]["setuptools"]["package-data"]["inkwell"]
        assert "migrations/*.sql" in package_data


class TestPool:
    async def test_get_pool_before_init(self):
        with patch.object(database, "_pool", None):
            with pytest.raises(RuntimeError):
                await database.get_pool()

    async def test_health_check_without_pool(self):
        with patch.object(database, "_pool", None):
            assert await database.health_check() is False

    async def test_health_check_ok(self, mock_pool):
        pool, conn = mock_pool
        conn.fetchval.return_value = 1
        with patch.object(database, "_pool", pool):
            assert await database.health_check() is True

    async def test_close_database(self):
        fake = AsyncMock()
        with patch.object(database, "_pool", fake):
            await database.close_database()
            assert database._pool is None
        fake.close.assert_awaited_once()
