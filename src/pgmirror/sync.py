"""
Synchronization engine - schema bootstrap, hydration and key lookup.

One engine serves both hydration modes:

- **eager**: ``init`` loads every row into the caller's collection, which
  then mirrors the table completely; the table is a durability log.
- **lazy**: ``init`` only bootstraps the schema; the table stays the source
  of truth and values are pulled per key with ``fetch``.

State machine::

    UNSTARTED ──ensure_schema──► SCHEMA_READY ──(eager)──► HYDRATING ──► READY
                                       │                                  ▲
                                       └───────────────(lazy)─────────────┘

The readiness signal fires on entering READY. Any failure on the way puts
the engine back in UNSTARTED, re-raises, and leaves the signal unfired.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from enum import Enum
from typing import Any, Protocol, Union

from pgmirror.codec import Key, decode, format_key
from pgmirror.database import QueryRunner
from pgmirror.errors import NotReadyError
from pgmirror.logging import get_logger
from pgmirror.readiness import ReadySignal
from pgmirror.schema import SchemaBootstrapper, TableStatements
from pgmirror.settings import HydrationMode

logger = get_logger(__name__)


class NotFound(Enum):
    """Sentinel type for a lazy fetch that matched no row."""

    NOT_FOUND = "NOT_FOUND"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = NotFound.NOT_FOUND


class SyncState(str, Enum):
    UNSTARTED = "unstarted"
    SCHEMA_READY = "schema_ready"
    HYDRATING = "hydrating"
    READY = "ready"


class SupportsSet(Protocol):
    """A keyed collection with a ``set(key, value)`` method."""

    def set(self, key: Any, value: Any) -> Any: ...


Collection = Union[SupportsSet, MutableMapping]


def apply_row(target: Collection, key: str, value: Any) -> None:
    """Write one hydrated row into the caller's collection."""
    if isinstance(target, MutableMapping):
        target[key] = value
    else:
        target.set(key, value)


class SyncEngine:
    """Moves rows from the backing table into memory."""

    def __init__(
        self,
        pool: QueryRunner,
        statements: TableStatements,
        hydration: HydrationMode = HydrationMode.EAGER,
        ready: ReadySignal | None = None,
    ):
        self._pool = pool
        self._statements = statements
        self._bootstrapper = SchemaBootstrapper(pool, statements)
        self.hydration = HydrationMode(hydration)
        self.state = SyncState.UNSTARTED
        self.ready = ready or ReadySignal()
        self.target: Collection | None = None

    @property
    def collection(self) -> str:
        return self._statements.table

    def require_ready(self, operation: str) -> None:
        """Raise ``NotReadyError`` unless ``init`` has completed."""
        if self.state is not SyncState.READY:
            raise NotReadyError(
                f"Cannot {operation} on '{self.collection}' before init completes "
                f"(state: {self.state.value})"
            ).with_context(collection=self.collection, operation=operation)

    async def init(self, target: Collection | None = None) -> ReadySignal:
        """Bootstrap the schema, hydrate if eager, then fire readiness.

        Raises:
            NotReadyError: Another ``init`` is still running.
        """
        if self.state is SyncState.READY:
            return self.ready
        if self.state is not SyncState.UNSTARTED:
            raise NotReadyError(
                f"init already in progress for '{self.collection}'"
            ).with_context(collection=self.collection, operation="init")

        if self.hydration is HydrationMode.EAGER and target is None:
            raise TypeError("eager hydration requires a target collection")

        self.target = target
        try:
            await self._bootstrapper.ensure_schema()
            self.state = SyncState.SCHEMA_READY

            if self.hydration is HydrationMode.EAGER:
                self.state = SyncState.HYDRATING
                count = await self._load_all(target)
                logger.info("rows_loaded", collection=self.collection, count=count)
        except BaseException:
            self.state = SyncState.UNSTARTED
            raise

        self.state = SyncState.READY
        self.ready.fire()
        logger.info("mirror_ready", collection=self.collection, hydration=self.hydration.value)
        return self.ready

    async def fetch(self, key: Key) -> Any:
        """Look up one key in the table.

        Returns the decoded value, or ``NOT_FOUND`` when no row matches.
        The caller decides whether to cache the result.
        """
        stored_key = format_key(key)
        self.require_ready("fetch")
        row = await self._pool.fetchrow(self._statements.select_one, stored_key)
        if row is None:
            return NOT_FOUND
        return decode(row["value"])

    async def fetch_all(self, target: Collection | None = None) -> int:
        """Re-scan the whole table into ``target`` (default: the init collection).

        Returns the number of rows applied.
        """
        self.require_ready("fetch_all")
        target = target if target is not None else self.target
        if target is None:
            raise TypeError("fetch_all requires a target collection")
        count = await self._load_all(target)
        logger.debug("rows_refreshed", collection=self.collection, count=count)
        return count

    async def _load_all(self, target: Collection) -> int:
        rows = await self._pool.fetch(self._statements.select_all)
        for row in rows:
            apply_row(target, row["key"], decode(row["value"]))
        return len(rows)


__all__ = [
    "Collection",
    "NOT_FOUND",
    "NotFound",
    "SupportsSet",
    "SyncEngine",
    "SyncState",
    "apply_row",
]
