"""Configuration for a mirrored collection.

``MirrorSettings`` holds everything a ``PostgresMirror`` needs: the
collection name, how to reach PostgreSQL, the hydration mode and pool
sizing. It reads ``PGMIRROR_*`` environment variables and a ``.env`` file,
and explicit keyword arguments take precedence over both.

Manifesto:
    Configuration should be explicit, validated, and fail fast. A mirror
    that only discovers a missing password on its first write has already
    lost data.

    - **Pydantic validation:** Types checked at construction
    - **Environment-driven:** ``PGMIRROR_CONNECTION_STRING`` etc.
    - **Two connection forms:** a connection string, or the full
      user/password/host/port/database set

Examples:
    >>> settings = MirrorSettings(name="users", connection_string="postgresql://localhost/bot")
    >>> settings.resolve_connection()
    ('postgresql://localhost/bot', {})

Tags:
    settings, configuration, pydantic, environment, pgmirror
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pgmirror.database import normalize_database_url
from pgmirror.errors import InvalidConfigError, MissingConfigError
from pgmirror.logging import configure_logging

# Connection parts required when no connection string is given
CONNECTION_PARTS = ("user", "password", "host", "port", "database")


class HydrationMode(str, Enum):
    """How the in-memory collection is populated on ``init``."""

    EAGER = "eager"  # load every row up front
    LAZY = "lazy"  # fetch per key on demand


class MirrorSettings(BaseSettings):
    """Settings for one mirrored collection.

    Fields
    ──────
    name               : Logical collection name (sanitized into the table name)
    connection_string  : Full PostgreSQL URL; takes precedence over the parts
    user/password/host/port/database : Connection parts
    hydration          : ``eager`` or ``lazy``
    pool_min_size      : Minimum pooled connections
    pool_max_size      : Maximum pooled connections
    command_timeout    : Per-statement timeout handed to the pool (None = no timeout)
    log_level          : structlog level
    """

    model_config = SettingsConfigDict(
        env_prefix="PGMIRROR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    name: str | None = None

    # ── Connection ───────────────────────────────────────────────
    connection_string: str | None = None
    user: str | None = None
    password: str | None = None
    host: str | None = None
    port: int | None = None
    database: str | None = None

    # ── Synchronization ──────────────────────────────────────────
    hydration: HydrationMode = HydrationMode.EAGER

    # ── Pool ─────────────────────────────────────────────────────
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=10, ge=1)
    command_timeout: float | None = None

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"

    def require_name(self) -> str:
        """Return the raw collection name or raise ``MissingConfigError``."""
        if not self.name:
            raise MissingConfigError("name", "Must provide a collection name")
        return self.name

    def resolve_connection(self) -> tuple[str | None, dict[str, Any]]:
        """Return ``(dsn, connect_kwargs)`` for the pool.

        Exactly one of the two is populated: a normalized DSN when a
        connection string was given, otherwise keyword arguments built from
        the five connection parts.

        Raises:
            MissingConfigError: Neither form is fully specified.
            InvalidConfigError: Pool bounds are inconsistent.
        """
        if self.pool_min_size > self.pool_max_size:
            raise InvalidConfigError(
                "pool_min_size",
                self.pool_min_size,
                f"pool_min_size ({self.pool_min_size}) exceeds pool_max_size ({self.pool_max_size})",
            )

        if self.connection_string:
            return normalize_database_url(self.connection_string), {}

        missing = [part for part in CONNECTION_PARTS if not getattr(self, part)]
        if missing:
            raise MissingConfigError(
                missing[0],
                "Either provide connection_string, or the user, password, host, port "
                f"and database options (missing: {', '.join(missing)})",
            )
        return None, {part: getattr(self, part) for part in CONNECTION_PARTS}

    def configure_logging(self, json_format: bool | None = None) -> None:
        """Set up structlog at ``log_level``. Call once from the application entry point."""
        configure_logging(level=self.log_level, json_format=json_format)


__all__ = [
    "CONNECTION_PARTS",
    "HydrationMode",
    "MirrorSettings",
]
