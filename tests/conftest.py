"""
Shared fixtures for janitor tests.
"""

import sqlite3
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to path for all tests
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import StoreConfig
from db_setup import setup_database
from janitor_store_sqlite import to_sqlite_timestamp


class SQLiteSeeder:
    """Inserts OAuth2 artifacts into a janitor SQLite store."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.now = datetime.now(timezone.utc)

    def _execute(self, sql, params):
        conn = sqlite3.connect(self.db_path)
        try:
            with conn:
                conn.execute(sql, params)
        finally:
            conn.close()

    def ago(self, **kwargs) -> datetime:
        return self.now - timedelta(**kwargs)

    def access_token(self, requested_at: datetime, signature: str = None) -> str:
        signature = signature or uuid.uuid4().hex
        self._execute(
            """
            INSERT INTO oauth2_access_tokens (signature, request_id, client_id, requested_at)
            VALUES (?, ?, ?, ?)
            """,
            (signature, uuid.uuid4().hex, "client", to_sqlite_timestamp(requested_at)),
        )
        return signature

    def refresh_token(self, requested_at: datetime, signature: str = None) -> str:
        signature = signature or uuid.uuid4().hex
        self._execute(
            """
            INSERT INTO oauth2_refresh_tokens (signature, request_id, client_id, requested_at)
            VALUES (?, ?, ?, ?)
            """,
            (signature, uuid.uuid4().hex, "client", to_sqlite_timestamp(requested_at)),
        )
        return signature

    def login_request(
        self, requested_at: datetime, handled: bool = False, rejected: bool = False
    ) -> str:
        challenge = uuid.uuid4().hex
        self._execute(
            """
            INSERT INTO login_requests (challenge, client_id, requested_at, handled, rejected)
            VALUES (?, ?, ?, ?, ?)
            """,
            (challenge, "client", to_sqlite_timestamp(requested_at), int(handled), int(rejected)),
        )
        return challenge

    def consent_request(
        self,
        requested_at: datetime,
        login_challenge: str = None,
        handled: bool = False,
        rejected: bool = False,
    ) -> str:
        challenge = uuid.uuid4().hex
        self._execute(
            """
            INSERT INTO consent_requests
                (challenge, login_challenge, client_id, requested_at, handled, rejected)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                challenge,
                login_challenge,
                "client",
                to_sqlite_timestamp(requested_at),
                int(handled),
                int(rejected),
            ),
        )
        return challenge

    def jwt_bearer_grant(self, expires_at: datetime) -> str:
        grant_id = str(uuid.uuid4())
        self._execute(
            """
            INSERT INTO jwt_bearer_grants (id, issuer, subject, created_at, expires_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                grant_id,
                "https://issuer.example.com",
                "subject",
                to_sqlite_timestamp(self.now),
                to_sqlite_timestamp(expires_at),
            ),
        )
        return grant_id

    def count(self, table: str) -> int:
        conn = sqlite3.connect(self.db_path)
        try:
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        finally:
            conn.close()

    def exists(self, table: str, column: str, value: str) -> bool:
        conn = sqlite3.connect(self.db_path)
        try:
            row = conn.execute(
                f"SELECT 1 FROM {table} WHERE {column} = ?", (value,)
            ).fetchone()
            return row is not None
        finally:
            conn.close()


@pytest.fixture
def db_path(tmp_path):
    """Path of a SQLite store with the janitor schema in place."""
    path = tmp_path / "oauth.db"
    setup_database(StoreConfig(dsn=f"sqlite://{path}"))
    return str(path)


@pytest.fixture
def sqlite_dsn(db_path):
    return f"sqlite://{db_path}"


@pytest.fixture
def seed(db_path):
    return SQLiteSeeder(db_path)
