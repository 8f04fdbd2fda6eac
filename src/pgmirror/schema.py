"""Backing table statements and schema bootstrap.

Each collection owns exactly one two-column table::

    CREATE TABLE IF NOT EXISTS "<name>" (
        key VARCHAR(100) PRIMARY KEY,
        value TEXT NOT NULL
    )

All statements are built once per collection from the sanitized name. The
name is the only text ever interpolated; keys and values always travel as
``$n`` parameters.
"""

from __future__ import annotations

from dataclasses import dataclass

from pgmirror.database import QueryRunner
from pgmirror.logging import get_logger
from pgmirror.naming import quote_identifier

logger = get_logger(__name__)

KEY_COLUMN_LENGTH = 100


@dataclass(frozen=True)
class TableStatements:
    """Parameterized SQL for one collection table."""

    table: str

    @property
    def identifier(self) -> str:
        return quote_identifier(self.table)

    @property
    def create(self) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {self.identifier} "
            f"(key VARCHAR({KEY_COLUMN_LENGTH}) PRIMARY KEY, value TEXT NOT NULL)"
        )

    @property
    def select_all(self) -> str:
        return f"SELECT key, value FROM {self.identifier}"

    @property
    def select_one(self) -> str:
        return f"SELECT value FROM {self.identifier} WHERE key = $1"

    @property
    def exists(self) -> str:
        return f"SELECT EXISTS (SELECT 1 FROM {self.identifier} WHERE key = $1)"

    @property
    def upsert(self) -> str:
        # Conflict target is the primary key alone
        return (
            f"INSERT INTO {self.identifier} (key, value) VALUES ($1, $2) "
            "ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value"
        )

    @property
    def delete(self) -> str:
        return f"DELETE FROM {self.identifier} WHERE key = $1"

    @property
    def truncate(self) -> str:
        return f"TRUNCATE TABLE {self.identifier}"


class SchemaBootstrapper:
    """Creates the backing table if it does not exist."""

    def __init__(self, pool: QueryRunner, statements: TableStatements):
        self._pool = pool
        self._statements = statements

    async def ensure_schema(self) -> None:
        """Create the table if absent. Safe to call repeatedly."""
        await self._pool.execute(self._statements.create)
        logger.debug("schema_ensured", collection=self._statements.table)


__all__ = [
    "KEY_COLUMN_LENGTH",
    "SchemaBootstrapper",
    "TableStatements",
]
