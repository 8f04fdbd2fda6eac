"""pgmirror -- persist an in-memory key/value collection in PostgreSQL.

Modules
-------
mirror          PostgresMirror facade (construction, lifecycle, routing)
sync            SyncEngine: schema bootstrap, eager/lazy hydration, fetch
mutations       MutationGateway: write-through set/delete/has/bulk_delete
codec           Scalar/Structured value encoding, key validation
schema          Per-collection SQL statements and SchemaBootstrapper
readiness       Single-fire ReadySignal
naming          Collection name sanitization
database        asyncpg pool creation, shutdown, health
settings        MirrorSettings (pydantic-settings, PGMIRROR_ env prefix)
errors          Typed error hierarchy
logging         structlog configuration
"""

from pgmirror.codec import Scalar, Structured, decode, encode
from pgmirror.errors import (
    ConfigError,
    DatabaseConnectionError,
    InvalidConfigError,
    InvalidKeyKindError,
    InvalidValueKindError,
    MirrorError,
    MissingConfigError,
    NotReadyError,
    StorageError,
    ValueDecodeError,
)
from pgmirror.mirror import PostgresMirror
from pgmirror.naming import sanitize_name
from pgmirror.readiness import ReadySignal
from pgmirror.settings import HydrationMode, MirrorSettings
from pgmirror.sync import NOT_FOUND, NotFound, SyncState

__version__ = "0.1.0"

__all__ = [
    "PostgresMirror",
    "MirrorSettings",
    "HydrationMode",
    "ReadySignal",
    "SyncState",
    "NOT_FOUND",
    "NotFound",
    # Codec
    "Scalar",
    "Structured",
    "encode",
    "decode",
    "sanitize_name",
    # Errors
    "MirrorError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "InvalidKeyKindError",
    "InvalidValueKindError",
    "ValueDecodeError",
    "StorageError",
    "DatabaseConnectionError",
    "NotReadyError",
]
