"""
PostgresMirror - persist an in-memory key/value collection in PostgreSQL.

Manifesto:
    An in-memory map is fast and forgets everything on restart. The mirror
    keeps one PostgreSQL table per named collection in step with it: rows
    are loaded on startup (or on demand), and every mutation is written
    through.

    - **One table per collection:** ``key VARCHAR(100) PK, value TEXT``
    - **Explicit readiness:** nothing touches the table before ``init``
    - **Parameterized always:** only the sanitized name reaches SQL text
    - **No hidden state:** the pool is an explicit handle, injectable

Architecture:
    ::

        PostgresMirror(name="My Data!", connection_string=...)
            │  sanitize_name → "my_data_"
            │  MirrorSettings.resolve_connection()   (fails fast)
            ▼
        await mirror.init(collection)
            │  create_pool()            (unless a pool was injected)
            │  SyncEngine.init()        schema → [hydrate] → ReadySignal.fire()
            ▼
        mirror.set / set_async / delete / delete_async / has / fetch ...
            │  MutationGateway ──► pool.execute($1, $2)
            ▼
        await mirror.close()            drain writes, close pool

Examples:
    Eager mirror of a dict:

    >>> cache: dict = {}
    >>> mirror = PostgresMirror(name="guild settings", connection_string=dsn)
    >>> await mirror.init(cache)
    >>> mirror.set("prefix", "!")          # fire-and-forget
    >>> await mirror.set_async("roles", ["admin", "mod"])
    >>> await mirror.close()

    Lazy lookups:

    >>> mirror = PostgresMirror(name="users", connection_string=dsn, hydration="lazy")
    >>> await mirror.init()
    >>> value = await mirror.fetch("42")
    >>> if value is NOT_FOUND:
    ...     ...

Guardrails:
    ❌ DON'T: Issue mutations before ``init`` returns (NotReadyError)
    ❌ DON'T: Store strings beginning with ``[`` or ``{`` and expect text back
    ✅ DO: ``await mirror.drain()`` before relying on fire-and-forget writes

Tags:
    persistence, postgresql, asyncpg, key-value, write-through, pgmirror
"""

from __future__ import annotations

import asyncio
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from pgmirror.codec import Key
from pgmirror.database import QueryRunner, close_pool, create_pool, pool_health_check
from pgmirror.errors import InvalidConfigError, NotReadyError
from pgmirror.logging import LogContext, get_logger
from pgmirror.mutations import MutationGateway
from pgmirror.naming import sanitize_name
from pgmirror.readiness import ReadySignal
from pgmirror.schema import TableStatements
from pgmirror.settings import HydrationMode, MirrorSettings
from pgmirror.sync import Collection, SyncEngine, SyncState

logger = get_logger(__name__)


class PostgresMirror:
    """
    Persistence adapter for one named key/value collection.

    Args:
        name: Collection name; sanitized into the table name
        connection_string: PostgreSQL URL
        user, password, host, port, database: Connection parts, all
            required when ``connection_string`` is not given
        hydration: ``"eager"`` (default) or ``"lazy"``
        pool: Pre-built pool (or anything with asyncpg's ``execute``/
            ``fetch``/``fetchrow``/``fetchval``); the mirror then never
            opens or closes a pool itself
        **options: Remaining ``MirrorSettings`` fields (``pool_min_size``,
            ``pool_max_size``, ``command_timeout``)

    Raises:
        MissingConfigError: No name, or neither connection form complete.
        InvalidConfigError: An option has the wrong type or value.
    """

    def __init__(
        self,
        name: str | None = None,
        *,
        pool: QueryRunner | None = None,
        settings: MirrorSettings | None = None,
        **options: Any,
    ):
        if name is not None:
            options["name"] = name
        if settings is None:
            settings = _build_settings(options)
        elif options:
            settings = _build_settings({**settings.model_dump(), **options})

        self.settings = settings
        self.name = sanitize_name(settings.require_name())
        self._dsn: str | None = None
        self._connect_kwargs: dict[str, Any] = {}
        if pool is None:
            self._dsn, self._connect_kwargs = settings.resolve_connection()

        self._owns_pool = pool is None
        self._pool: Any = pool
        self._statements = TableStatements(self.name)
        self._engine: SyncEngine | None = None
        self._gateway: MutationGateway | None = None
        self._ready = ReadySignal()
        self._closed = False
        self._initializing = False

        if pool is not None:
            self._wire(pool)

    @classmethod
    def from_settings(cls, settings: MirrorSettings | None = None, **kwargs: Any) -> PostgresMirror:
        """Build a mirror from ``MirrorSettings`` (default: read from the environment)."""
        return cls(settings=settings or MirrorSettings(), **kwargs)

    # ── state ────────────────────────────────────────────────────

    @property
    def hydration(self) -> HydrationMode:
        return self.settings.hydration

    @property
    def ready(self) -> ReadySignal:
        """Readiness signal; awaitable any number of times."""
        return self._ready

    @property
    def state(self) -> SyncState:
        return self._engine.state if self._engine else SyncState.UNSTARTED

    @property
    def pool(self) -> Any:
        return self._pool

    # ── lifecycle ────────────────────────────────────────────────

    async def init(self, collection: Collection | None = None) -> ReadySignal:
        """Open the pool, ensure the table, hydrate if eager, fire readiness.

        Returns the readiness signal. On failure the error propagates and
        the signal stays unfired.

        Raises:
            NotReadyError: Another ``init`` on this mirror has not finished.
        """
        if self._initializing:
            raise NotReadyError(
                f"init already in progress for '{self.name}'"
            ).with_context(collection=self.name, operation="init")
        if self._ready.is_ready:
            return self._ready

        self._initializing = True
        try:
            async with LogContext(collection=self.name):
                if self._pool is None:
                    self._wire(
                        await create_pool(
                            self._dsn,
                            min_size=self.settings.pool_min_size,
                            max_size=self.settings.pool_max_size,
                            command_timeout=self.settings.command_timeout,
                            **self._connect_kwargs,
                        )
                    )
                return await self._engine.init(collection)
        finally:
            self._initializing = False

    async def close(self) -> None:
        """Drain pending writes and release the pool. A second call is a no-op."""
        if self._closed:
            return
        self._closed = True
        drained = await self._gateway.drain() if self._gateway else 0
        if self._owns_pool and self._pool is not None:
            await close_pool(self._pool)
        logger.info("mirror_closed", collection=self.name, drained=drained)

    async def __aenter__(self) -> PostgresMirror:
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    # ── reads ────────────────────────────────────────────────────

    async def fetch(self, key: Key) -> Any:
        """Value stored for ``key``, or ``NOT_FOUND``."""
        return await self._require_engine("fetch").fetch(key)

    async def fetch_all(self, collection: Collection | None = None) -> int:
        """Reload every row into ``collection`` (default: the init collection)."""
        return await self._require_engine("fetch_all").fetch_all(collection)

    async def has(self, key: Key) -> bool:
        return await self._require_gateway("has").has(key)

    # ── writes ───────────────────────────────────────────────────

    def set(self, key: Key, value: Any) -> asyncio.Task:
        """Write through without waiting; returns the background task."""
        return self._require_gateway("set").set(key, value)

    async def set_async(self, key: Key, value: Any) -> None:
        await self._require_gateway("set").set_async(key, value)

    def delete(self, key: Key) -> asyncio.Task:
        return self._require_gateway("delete").delete(key)

    async def delete_async(self, key: Key) -> None:
        await self._require_gateway("delete").delete_async(key)

    async def bulk_delete(self) -> None:
        """Truncate the backing table. Irreversible."""
        await self._require_gateway("bulk_delete").bulk_delete()

    async def drain(self) -> int:
        """Wait for outstanding fire-and-forget writes."""
        return await self._gateway.drain() if self._gateway else 0

    async def health_check(self) -> dict[str, Any]:
        """Pool statistics plus the collection's readiness."""
        if self._pool is None:
            return {"collection": self.name, "ready": False, "healthy": False}
        stats = await pool_health_check(self._pool)
        return {"collection": self.name, "ready": self._ready.is_ready, **stats}

    # ── internals ────────────────────────────────────────────────

    def _wire(self, pool: QueryRunner) -> None:
        self._pool = pool
        self._engine = SyncEngine(pool, self._statements, self.settings.hydration, ready=self._ready)
        self._gateway = MutationGateway(pool, self._statements, self._engine)

    def _require_engine(self, operation: str) -> SyncEngine:
        if self._engine is None:
            raise NotReadyError(
                f"Cannot {operation} on '{self.name}' before init completes (state: unstarted)"
            ).with_context(collection=self.name, operation=operation)
        return self._engine

    def _require_gateway(self, operation: str) -> MutationGateway:
        self._require_engine(operation)
        return self._gateway

    def __repr__(self) -> str:
        return f"PostgresMirror(name={self.name!r}, hydration={self.hydration.value}, state={self.state.value})"


def _build_settings(options: dict[str, Any]) -> MirrorSettings:
    try:
        return MirrorSettings(**options)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "settings"
        raise InvalidConfigError(field, first.get("input"), f"Invalid configuration for {field}: {first['msg']}") from e


__all__ = ["PostgresMirror"]
