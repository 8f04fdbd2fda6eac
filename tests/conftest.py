"""
Shared pytest fixtures and configuration for pgmirror tests.

This module provides:
- FakePool: an in-memory stand-in for the slice of ``asyncpg.Pool`` the
  adapter uses, interpreting exactly the statements ``TableStatements``
  generates
- MapCollection: a collaborator exposing ``set(key, value)`` and iteration
- Auto-marking of unit vs integration tests
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import pytest

from pgmirror import PostgresMirror


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Fake pool
# =============================================================================


class UndefinedTableError(Exception):
    """Raised by FakePool for statements against a table that was never created."""


class FakeDriverError(Exception):
    """Injected failure, standing in for an asyncpg error."""


_TABLE = re.compile(r'"((?:[^"]|"")+)"')


class FakePool:
    """In-memory table store answering the adapter's statements."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, str]] = {}
        self.statements: list[tuple[str, tuple[Any, ...]]] = []
        self.failures: dict[str, Exception] = {}
        self.closed = False

    # -- test helpers -------------------------------------------------------

    def fail_on(self, prefix: str, error: Exception | None = None) -> None:
        """Make every statement starting with ``prefix`` raise until cleared."""
        self.failures[prefix] = error or FakeDriverError(f"injected failure: {prefix}")

    def clear_failures(self) -> None:
        self.failures.clear()

    def seed(self, table: str, rows: dict[str, str]) -> None:
        self.tables.setdefault(table, {}).update(rows)

    def executed(self, prefix: str) -> list[tuple[str, tuple[Any, ...]]]:
        return [(sql, args) for sql, args in self.statements if sql.startswith(prefix)]

    # -- asyncpg.Pool surface ----------------------------------------------

    async def execute(self, query: str, *args: Any) -> str:
        self._record(query, args)
        if query.startswith("CREATE TABLE IF NOT EXISTS"):
            self.tables.setdefault(self._table(query), {})
            return "CREATE TABLE"
        if query.startswith("INSERT INTO"):
            key, value = args
            self._rows(query)[key] = value
            return "INSERT 0 1"
        if query.startswith("DELETE FROM"):
            removed = self._rows(query).pop(args[0], None)
            return f"DELETE {0 if removed is None else 1}"
        if query.startswith("TRUNCATE TABLE"):
            self._rows(query).clear()
            return "TRUNCATE TABLE"
        raise AssertionError(f"unexpected execute: {query}")

    async def fetch(self, query: str, *args: Any) -> list[dict[str, str]]:
        self._record(query, args)
        if query.startswith("SELECT key, value FROM"):
            return [{"key": k, "value": v} for k, v in self._rows(query).items()]
        raise AssertionError(f"unexpected fetch: {query}")

    async def fetchrow(self, query: str, *args: Any) -> dict[str, str] | None:
        self._record(query, args)
        if query.startswith("SELECT value FROM"):
            rows = self._rows(query)
            if args[0] not in rows:
                return None
            return {"value": rows[args[0]]}
        raise AssertionError(f"unexpected fetchrow: {query}")

    async def fetchval(self, query: str, *args: Any) -> Any:
        self._record(query, args)
        if query == "SELECT 1":
            return 1
        if query.startswith("SELECT EXISTS"):
            return args[0] in self._rows(query)
        raise AssertionError(f"unexpected fetchval: {query}")

    async def close(self) -> None:
        self.closed = True

    def get_size(self) -> int:
        return 2

    def get_idle_size(self) -> int:
        return 1

    def get_min_size(self) -> int:
        return 1

    def get_max_size(self) -> int:
        return 10

    # -- internals ----------------------------------------------------------

    def _record(self, query: str, args: tuple[Any, ...]) -> None:
        self.statements.append((query, args))
        for prefix, error in self.failures.items():
            if query.startswith(prefix):
                raise error

    def _table(self, query: str) -> str:
        match = _TABLE.search(query)
        assert match, f"no quoted identifier in: {query}"
        return match.group(1).replace('""', '"')

    def _rows(self, query: str) -> dict[str, str]:
        table = self._table(query)
        if table not in self.tables:
            raise UndefinedTableError(f'relation "{table}" does not exist')
        return self.tables[table]


class MapCollection:
    """Minimal map collaborator: ``set(key, value)`` plus iteration."""

    def __init__(self) -> None:
        self._data: dict[Any, Any] = {}
        self.set_calls: list[tuple[Any, Any]] = []

    def set(self, key: Any, value: Any) -> MapCollection:
        self.set_calls.append((key, value))
        self._data[key] = value
        return self

    def get(self, key: Any, default: Any = None) -> Any:
        return self._data.get(key, default)

    def __iter__(self):
        return iter(self._data.items())

    def __len__(self) -> int:
        return len(self._data)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep PGMIRROR_* variables and any .env file out of unit tests."""
    import os

    for var in list(os.environ):
        if var.startswith("PGMIRROR_") and var != "PGMIRROR_TEST_DSN":
            monkeypatch.delenv(var)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def fake_pool() -> FakePool:
    return FakePool()


@pytest.fixture
def collection() -> MapCollection:
    return MapCollection()


@pytest.fixture
def make_mirror(fake_pool: FakePool):
    """Factory for mirrors wired to the shared ``fake_pool``."""

    def _make(name: str = "test collection", **options: Any) -> PostgresMirror:
        return PostgresMirror(name=name, pool=fake_pool, **options)

    return _make
