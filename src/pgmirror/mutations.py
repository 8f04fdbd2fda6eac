"""Write-through mutation gateway.

Every mutation of the in-memory collection is mirrored to the backing
table. Keys are validated and values encoded before any statement is sent,
so an ``InvalidKeyKindError`` or ``InvalidValueKindError`` never leaves a
partial write behind.

Two calling styles:

- ``set`` / ``delete`` fire the statement as a background task and return
  immediately. The task is returned and tracked; a failure is logged as
  ``write_failed`` and stays on the task for anyone who awaits it.
- ``set_async`` / ``delete_async`` await the acknowledgment and let driver
  errors propagate unmodified.

Nothing here locks. Concurrent writes to the same key race in PostgreSQL
and the last acknowledged upsert wins.
"""

from __future__ import annotations

import asyncio
from typing import Any

from pgmirror.codec import Key, encode, format_key
from pgmirror.database import QueryRunner
from pgmirror.errors import categorize_error
from pgmirror.logging import get_logger
from pgmirror.schema import TableStatements
from pgmirror.sync import SyncEngine

logger = get_logger(__name__)


class MutationGateway:
    """Translates map mutations into upserts and deletes."""

    def __init__(self, pool: QueryRunner, statements: TableStatements, engine: SyncEngine):
        self._pool = pool
        self._statements = statements
        self._engine = engine
        self._pending: set[asyncio.Task] = set()

    @property
    def collection(self) -> str:
        return self._statements.table

    @property
    def pending(self) -> int:
        """Number of fire-and-forget writes not yet acknowledged."""
        return len(self._pending)

    # ── write-through ────────────────────────────────────────────

    def set(self, key: Key, value: Any) -> asyncio.Task:
        """Upsert without waiting for acknowledgment.

        Must be called from a running event loop.
        """
        args = self._prepare_set(key, value)
        return self._spawn("set", key, self._statements.upsert, *args)

    async def set_async(self, key: Key, value: Any) -> None:
        """Upsert and wait for the database to acknowledge it."""
        args = self._prepare_set(key, value)
        await self._pool.execute(self._statements.upsert, *args)

    def delete(self, key: Key) -> asyncio.Task:
        """Delete by key without waiting. Absent keys are not an error."""
        stored_key = self._prepare_key("delete", key)
        return self._spawn("delete", key, self._statements.delete, stored_key)

    async def delete_async(self, key: Key) -> None:
        """Delete by key and wait for acknowledgment."""
        stored_key = self._prepare_key("delete", key)
        await self._pool.execute(self._statements.delete, stored_key)

    async def bulk_delete(self) -> None:
        """Remove every row. Irreversible."""
        self._engine.require_ready("bulk_delete")
        await self._pool.execute(self._statements.truncate)
        logger.warning("collection_truncated", collection=self.collection)

    async def has(self, key: Key) -> bool:
        """Whether a row exists for ``key``, without fetching the value."""
        stored_key = self._prepare_key("has", key)
        return bool(await self._pool.fetchval(self._statements.exists, stored_key))

    async def drain(self) -> int:
        """Wait for every outstanding fire-and-forget write.

        Failures were already logged by the task callback and are not
        re-raised here. Returns the number of writes waited on.
        """
        tasks = list(self._pending)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(tasks)

    # ── internals ────────────────────────────────────────────────

    def _prepare_key(self, operation: str, key: Key) -> str:
        stored_key = format_key(key)
        self._engine.require_ready(operation)
        return stored_key

    def _prepare_set(self, key: Key, value: Any) -> tuple[str, str]:
        stored_key = self._prepare_key("set", key)
        return stored_key, encode(value)

    def _spawn(self, operation: str, key: Key, statement: str, *args: Any) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._pool.execute(statement, *args))
        self._pending.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._pending.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                logger.error(
                    "write_failed",
                    collection=self.collection,
                    operation=operation,
                    key=key,
                    error=str(error),
                    error_type=type(error).__name__,
                    error_category=categorize_error(error).value,
                )

        task.add_done_callback(_done)
        return task


__all__ = ["MutationGateway"]
