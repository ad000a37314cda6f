"""
PostgreSQL JanitorStore implementation.
Each flush runs in its own transaction on a fresh psycopg2 connection.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import psycopg2

from config import StoreConfig
from error_utils import InitializationError
from janitor_context import CleanupContext
from janitor_schema_definitions import REQUIRED_TABLES
from janitor_store_abc import JanitorStore

logger = logging.getLogger(__name__)

# Pool tuning parameters found in shared DSNs that libpq rejects
POOL_PARAMETERS = {"max_conns", "max_idle_conns", "max_conn_lifetime", "max_conn_idle_time"}

# Rejected, or never handled and past the consent max age; both before the cutoff
INACTIVE_REQUEST = (
    "requested_at < %(cutoff)s AND "
    "(rejected OR (NOT handled AND requested_at < %(max_age)s))"
)


def to_postgresql_timestamp(value: datetime) -> datetime:
    """Convert to the naive UTC datetime stored in TIMESTAMP columns."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def clean_dsn(dsn: str) -> str:
    """Drop connection pool parameters libpq does not understand."""
    parsed = urlparse(dsn)
    if not parsed.query:
        return dsn
    query = [
        (key, value)
        for key, value in parse_qsl(parsed.query, keep_blank_values=True)
        if key not in POOL_PARAMETERS
    ]
    return urlunparse(parsed._replace(query=urlencode(query)))


class PostgreSQLJanitorStore(JanitorStore):
    """PostgreSQL implementation of the JanitorStore interface."""

    backend = "postgresql"

    def __init__(self, config: StoreConfig, **kwargs):
        """
        Initialize the PostgreSQL janitor store.

        Args:
            config: Store configuration; ``config.dsn`` is a postgres:// URL
            **kwargs: Extra keyword arguments passed to psycopg2.connect
        """
        super().__init__(config, **kwargs)
        self.connection_string = clean_dsn(config.dsn)
        self.connection_params = kwargs

    def _get_connection(self):
        """Get a database connection. Caller must close it."""
        return psycopg2.connect(self.connection_string, **self.connection_params)

    def init(self, ctx: CleanupContext) -> None:
        ctx.check()
        try:
            conn = self._get_connection()
            try:
                with conn.cursor() as cursor:
                    cursor.execute(
                        """
                        SELECT table_name FROM information_schema.tables
                        WHERE table_schema = current_schema()
                        """
                    )
                    tables = {row[0] for row in cursor.fetchall()}
            finally:
                conn.close()
        except psycopg2.Error as e:
            raise InitializationError(f"Could not connect to PostgreSQL store: {e}") from e

        missing = [table for table in REQUIRED_TABLES if table not in tables]
        if missing:
            raise InitializationError(
                f"PostgreSQL store is missing tables: {', '.join(missing)}"
            )
        logger.debug("PostgreSQL store is ready")

    def close(self) -> None:
        # Connections are opened per flush
        pass

    def _statement_timeout_ms(self, ctx: CleanupContext) -> Optional[int]:
        remaining = ctx.remaining()
        if remaining is None:
            return None
        return max(int(remaining * 1000), 1)

    def _set_statement_timeout(self, ctx: CleanupContext, cursor) -> None:
        timeout_ms = self._statement_timeout_ms(ctx)
        if timeout_ms is not None:
            cursor.execute("SET LOCAL statement_timeout = %s", (timeout_ms,))

    def _delete(self, ctx: CleanupContext, statements) -> int:
        """Run DELETE statements in one transaction and return rows removed."""
        deleted = 0
        conn = self._get_connection()
        try:
            with conn:
                with conn.cursor() as cursor:
                    self._set_statement_timeout(ctx, cursor)
                    for sql, params in statements:
                        ctx.check()
                        cursor.execute(sql, params)
                        deleted += cursor.rowcount
        finally:
            conn.close()
        return deleted

    def flush_inactive_access_tokens(
        self, ctx: CleanupContext, not_after: datetime
    ) -> int:
        cutoff = self._effective_cutoff(not_after, self.config.access_token_lifespan)
        return self._delete(
            ctx,
            [
                (
                    "DELETE FROM oauth2_access_tokens WHERE requested_at < %s",
                    (to_postgresql_timestamp(cutoff),),
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
                    "DELETE FROM oauth2_refresh_tokens WHERE requested_at < %s",
                    (to_postgresql_timestamp(cutoff),),
                )
            ],
        )

    def flush_inactive_login_consent_requests(
        self, ctx: CleanupContext, not_after: datetime
    ) -> int:
        params = {
            "cutoff": to_postgresql_timestamp(not_after),
            "max_age": to_postgresql_timestamp(
                self.reference_time() - self.config.consent_request_max_age
            ),
        }
        conn = self._get_connection()
        try:
            with conn:
                with conn.cursor() as cursor:
                    self._set_statement_timeout(ctx, cursor)
                    ctx.check()
                    cursor.execute(
                        f"""
                        DELETE FROM consent_requests WHERE {INACTIVE_REQUEST}
                        RETURNING login_challenge
                        """,
                        params,
                    )
                    deleted = cursor.rowcount
                    orphaned_logins = [
                        row[0] for row in cursor.fetchall() if row[0] is not None
                    ]

                    # Login requests whose consent was just purged go with them
                    ctx.check()
                    cursor.execute(
                        f"""
                        DELETE FROM login_requests
                        WHERE ({INACTIVE_REQUEST}) OR challenge = ANY(%(orphaned)s)
                        """,
                        dict(params, orphaned=orphaned_logins),
                    )
                    deleted += cursor.rowcount
        finally:
            conn.close()
        return deleted

    def flush_inactive_jwt_bearer_grants(
        self, ctx: CleanupContext, not_after: datetime
    ) -> int:
        return self._delete(
            ctx,
            [
                (
                    "DELETE FROM jwt_bearer_grants WHERE expires_at < %s",
                    (to_postgresql_timestamp(not_after),),
                )
            ],
        )
