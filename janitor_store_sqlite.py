import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from config import StoreConfig
from constants import MEMORY_DSN, SQLITE_SCHEMES
from error_utils import InitializationError
from janitor_context import CleanupContext
from janitor_schema_definitions import REQUIRED_TABLES, get_indexes, get_schemas
from janitor_store_abc import JanitorStore

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
MEMORY_PATH = ":memory:"

# Rejected, or never handled and past the consent max age; both before the cutoff
INACTIVE_REQUEST = (
    "requested_at < :cutoff AND "
    "(rejected = 1 OR (handled = 0 AND requested_at < :max_age))"
)


def to_sqlite_timestamp(value: datetime) -> str:
    """
    Format a datetime the way timestamps are stored in SQLite.

    Naive datetimes are taken to be UTC. The fixed-width format keeps string
    comparison in SQL consistent with chronological order.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(TIMESTAMP_FORMAT)


def sqlite_path_from_dsn(dsn: str) -> str:
    """
    Extract the database path from a SQLite DSN.

    Accepts ``sqlite://relative.db``, ``sqlite:///absolute/path.db``, bare
    file paths and ``memory``. Query parameters such as ``?_fk=true`` are
    dropped.
    """
    if dsn == MEMORY_DSN:
        return MEMORY_PATH
    path = dsn
    for scheme in SQLITE_SCHEMES:
        if path.startswith(scheme):
            path = path[len(scheme) :]
            break
    path = path.split("?", 1)[0]
    return path or MEMORY_PATH


def create_sqlite_schema(conn: sqlite3.Connection) -> None:
    """Create the janitor tables and indexes on an open connection."""
    with conn:
        for schema in get_schemas("sqlite").values():
            conn.execute(schema)
        for index_sql in get_indexes("sqlite"):
            conn.execute(index_sql)


class SQLiteJanitorStore(JanitorStore):
    """
    SQLite implementation of the JanitorStore interface.

    File databases are opened per flush. An in-memory database only lives as
    long as its connection, so the store holds that one open, creates the
    schema in it on ``init`` and closes it on ``close``.
    """

    backend = "sqlite"

    def __init__(self, config: StoreConfig, **kwargs):
        """
        Initialize the SQLite janitor store.

        Args:
            config: Store configuration; ``config.dsn`` names the database file
            **kwargs: Additional configuration options (ignored for SQLite)
        """
        super().__init__(config, **kwargs)
        self.db_path = sqlite_path_from_dsn(config.dsn)
        self._memory_conn: Optional[sqlite3.Connection] = None

    @property
    def in_memory(self) -> bool:
        return self.db_path == MEMORY_PATH

    def _get_connection(self, ctx: Optional[CleanupContext] = None):
        """Get a database connection. Caller must close it."""
        timeout = 5.0
        if ctx is not None and ctx.remaining() is not None:
            timeout = max(ctx.remaining(), 0.001)
        return sqlite3.connect(self.db_path, timeout=timeout)

    @contextmanager
    def _transaction(self, ctx: CleanupContext):
        """Yield a connection inside a transaction, committing on success."""
        conn = self._memory_conn
        if conn is None:
            conn = self._get_connection(ctx)
        try:
            with conn:
                yield conn
        finally:
            if conn is not self._memory_conn:
                conn.close()

    def init(self, ctx: CleanupContext) -> None:
        ctx.check()
        if self.in_memory:
            if self._memory_conn is None:
                self._memory_conn = sqlite3.connect(MEMORY_PATH)
                create_sqlite_schema(self._memory_conn)
                logger.debug("Created janitor schema in in-memory SQLite store")
        elif not Path(self.db_path).exists():
            raise InitializationError(f"SQLite database not found: {self.db_path}")

        try:
            with self._transaction(ctx) as conn:
                cursor = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table'"
                )
                tables = {row[0] for row in cursor.fetchall()}
        except sqlite3.Error as e:
            raise InitializationError(f"Could not open SQLite store: {e}") from e

        missing = [table for table in REQUIRED_TABLES if table not in tables]
        if missing:
            raise InitializationError(
                f"SQLite store is missing tables: {', '.join(missing)}"
            )
        logger.debug("SQLite store %s is ready", self.db_path)

    def close(self) -> None:
        if self._memory_conn is not None:
            self._memory_conn.close()
            self._memory_conn = None

    def _delete(self, ctx: CleanupContext, statements) -> int:
        """Run DELETE statements in one transaction and return rows removed."""
        deleted = 0
        with self._transaction(ctx) as conn:
            for sql, params in statements:
                ctx.check()
                cursor = conn.execute(sql, params)
                deleted += cursor.rowcount
        return deleted

    def flush_inactive_access_tokens(
        self, ctx: CleanupContext, not_after: datetime
    ) -> int:
        cutoff = self._effective_cutoff(not_after, self.config.access_token_lifespan)
        return self._delete(
            ctx,
            [
                (
                    "DELETE FROM oauth2_access_tokens WHERE requested_at < ?",
                    (to_sqlite_timestamp(cutoff),),
                )
            ],
        )

    def flush_inactive_refresh_tokens(
        self, ctx: CleanupContext, not_after: datetime
    ) -> int:
        cutoff = self._effective_cutoff(not_after, self.config.refresh_token_lifespan)
        return self._delete(
            ctx,
            [
                (
                    "DELETE FROM oauth2_refresh_tokens WHERE requested_at < ?",
                    (to_sqlite_timestamp(cutoff),),
                )
            ],
        )

    def flush_inactive_login_consent_requests(
        self, ctx: CleanupContext, not_after: datetime
    ) -> int:
        params = {
            "cutoff": to_sqlite_timestamp(not_after),
            "max_age": to_sqlite_timestamp(
                self.reference_time() - self.config.consent_request_max_age
            ),
        }
        with self._transaction(ctx) as conn:
            ctx.check()
            cursor = conn.execute(
                f"""
                SELECT login_challenge FROM consent_requests
                WHERE login_challenge IS NOT NULL AND {INACTIVE_REQUEST}
                """,
                params,
            )
            orphaned_logins = [(row[0],) for row in cursor.fetchall()]

            # Consent requests go first, then the login requests behind them
            ctx.check()
            deleted = conn.execute(
                f"DELETE FROM consent_requests WHERE {INACTIVE_REQUEST}", params
            ).rowcount
            ctx.check()
            deleted += conn.execute(
                f"DELETE FROM login_requests WHERE {INACTIVE_REQUEST}", params
            ).rowcount
            if orphaned_logins:
                ctx.check()
                deleted += conn.executemany(
                    "DELETE FROM login_requests WHERE challenge = ?", orphaned_logins
                ).rowcount
        return deleted

    def flush_inactive_jwt_bearer_grants(
        self, ctx: CleanupContext, not_after: datetime
    ) -> int:
        return self._delete(
            ctx,
            [
                (
                    "DELETE FROM jwt_bearer_grants WHERE expires_at < ?",
                    (to_sqlite_timestamp(not_after),),
                )
            ],
        )
