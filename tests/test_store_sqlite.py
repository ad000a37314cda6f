#!/usr/bin/env python3
"""
Tests for the SQLite janitor store: what counts as inactive per category,
idempotence and initialization checks.
"""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from config import StoreConfig
from error_utils import CleanupCancelledError, InitializationError
from janitor_context import CleanupContext
from janitor_store_sqlite import (
    SQLiteJanitorStore,
    sqlite_path_from_dsn,
    to_sqlite_timestamp,
)


@pytest.fixture
def ctx():
    return CleanupContext()


def make_store(sqlite_dsn, **lifespans) -> SQLiteJanitorStore:
    return SQLiteJanitorStore(StoreConfig(dsn=sqlite_dsn, **lifespans))


class TestHelpers:
    @pytest.mark.parametrize(
        "dsn,expected",
        [
            ("sqlite://oauth.db", "oauth.db"),
            ("sqlite:///var/lib/oauth.db", "/var/lib/oauth.db"),
            ("sqlite:///var/lib/oauth.db?_fk=true", "/var/lib/oauth.db"),
            ("oauth.sqlite", "oauth.sqlite"),
            ("sqlite://", ":memory:"),
            ("memory", ":memory:"),
        ],
    )
    def test_sqlite_path_from_dsn(self, dsn, expected):
        assert sqlite_path_from_dsn(dsn) == expected

    def test_timestamps_sort_chronologically(self):
        early = datetime(2024, 1, 2, 3, 4, 5, 6, tzinfo=timezone.utc)
        late = early + timedelta(microseconds=1)
        assert to_sqlite_timestamp(early) < to_sqlite_timestamp(late)

    def test_aware_timestamps_converted_to_utc(self):
        plus_two = timezone(timedelta(hours=2))
        local = datetime(2024, 1, 1, 14, 0, tzinfo=plus_two)
        assert to_sqlite_timestamp(local) == "2024-01-01 12:00:00.000000"


class TestInit:
    def test_ready_store(self, sqlite_dsn, ctx):
        make_store(sqlite_dsn).init(ctx)

    def test_missing_file(self, tmp_path, ctx):
        store = make_store(f"sqlite://{tmp_path / 'missing.db'}")
        with pytest.raises(InitializationError, match="not found"):
            store.init(ctx)

    def test_missing_tables(self, tmp_path, ctx):
        path = tmp_path / "empty.db"
        sqlite3.connect(path).close()
        store = make_store(f"sqlite://{path}")
        with pytest.raises(InitializationError, match="missing tables"):
            store.init(ctx)

    def test_cancelled_before_init(self, sqlite_dsn):
        ctx = CleanupContext()
        ctx.cancel()
        with pytest.raises(CleanupCancelledError):
            make_store(sqlite_dsn).init(ctx)

    def test_memory_store_creates_schema(self, ctx):
        store = make_store("memory")
        try:
            store.init(ctx)
            now = datetime.now(timezone.utc)
            assert store.flush_inactive_access_tokens(ctx, now) == 0
            assert store.flush_inactive_login_consent_requests(ctx, now) == 0
        finally:
            store.close()
        assert store._memory_conn is None


class TestFlushTokens:
    def test_access_tokens_respect_lifespan(self, sqlite_dsn, seed, ctx):
        expired = seed.access_token(seed.ago(hours=2))
        live = seed.access_token(seed.ago(minutes=30))
        store = make_store(sqlite_dsn)

        deleted = store.flush_inactive_access_tokens(ctx, seed.now)

        assert deleted == 1
        assert not seed.exists("oauth2_access_tokens", "signature", expired)
        assert seed.exists("oauth2_access_tokens", "signature", live)

    def test_access_tokens_respect_cutoff(self, sqlite_dsn, seed, ctx):
        older = seed.access_token(seed.ago(hours=30))
        younger = seed.access_token(seed.ago(hours=5))
        store = make_store(sqlite_dsn)

        store.flush_inactive_access_tokens(ctx, seed.ago(hours=24))

        assert not seed.exists("oauth2_access_tokens", "signature", older)
        assert seed.exists("oauth2_access_tokens", "signature", younger)

    def test_refresh_lifespan_override(self, sqlite_dsn, seed, ctx):
        token = seed.refresh_token(seed.ago(hours=48))

        default_store = make_store(sqlite_dsn)
        assert default_store.flush_inactive_refresh_tokens(ctx, seed.now) == 0
        assert seed.exists("oauth2_refresh_tokens", "signature", token)

        short_store = make_store(sqlite_dsn, refresh_token_lifespan=timedelta(hours=24))
        assert short_store.flush_inactive_refresh_tokens(ctx, seed.now) == 1
        assert not seed.exists("oauth2_refresh_tokens", "signature", token)

    def test_lifespan_measured_from_pinned_clock(self, sqlite_dsn, seed, ctx):
        token = seed.access_token(seed.ago(minutes=90))
        store = make_store(sqlite_dsn)
        store.pin_clock(seed.ago(hours=2))

        assert store.flush_inactive_access_tokens(ctx, seed.now) == 0
        assert seed.exists("oauth2_access_tokens", "signature", token)

    def test_flushing_tokens_leaves_other_tables(self, sqlite_dsn, seed, ctx):
        seed.access_token(seed.ago(days=60))
        seed.refresh_token(seed.ago(days=60))
        seed.login_request(seed.ago(days=60))
        store = make_store(sqlite_dsn)

        store.flush_inactive_access_tokens(ctx, seed.now)

        assert seed.count("oauth2_access_tokens") == 0
        assert seed.count("oauth2_refresh_tokens") == 1
        assert seed.count("login_requests") == 1


class TestFlushLoginConsentRequests:
    def test_recent_pending_request_kept(self, sqlite_dsn, seed, ctx):
        pending = seed.login_request(seed.ago(minutes=10))
        store = make_store(sqlite_dsn)

        assert store.flush_inactive_login_consent_requests(ctx, seed.now) == 0
        assert seed.exists("login_requests", "challenge", pending)

    def test_abandoned_request_purged(self, sqlite_dsn, seed, ctx):
        abandoned = seed.login_request(seed.ago(minutes=45))
        store = make_store(sqlite_dsn)

        assert store.flush_inactive_login_consent_requests(ctx, seed.now) == 1
        assert not seed.exists("login_requests", "challenge", abandoned)

    def test_consent_max_age_override(self, sqlite_dsn, seed, ctx):
        pending = seed.login_request(seed.ago(minutes=10))
        store = make_store(sqlite_dsn, consent_request_max_age=timedelta(minutes=5))

        store.flush_inactive_login_consent_requests(ctx, seed.now)

        assert not seed.exists("login_requests", "challenge", pending)

    def test_handled_requests_kept(self, sqlite_dsn, seed, ctx):
        login = seed.login_request(seed.ago(days=2), handled=True)
        consent = seed.consent_request(seed.ago(days=2), login_challenge=login, handled=True)
        store = make_store(sqlite_dsn)

        assert store.flush_inactive_login_consent_requests(ctx, seed.now) == 0
        assert seed.exists("login_requests", "challenge", login)
        assert seed.exists("consent_requests", "challenge", consent)

    def test_rejected_requests_purged(self, sqlite_dsn, seed, ctx):
        login = seed.login_request(seed.ago(days=2), handled=True)
        consent = seed.consent_request(
            seed.ago(days=2), login_challenge=login, handled=True, rejected=True
        )
        rejected_login = seed.login_request(seed.ago(days=2), handled=True, rejected=True)
        store = make_store(sqlite_dsn)

        assert store.flush_inactive_login_consent_requests(ctx, seed.now) == 3
        assert not seed.exists("consent_requests", "challenge", consent)
        assert not seed.exists("login_requests", "challenge", rejected_login)
        assert not seed.exists("login_requests", "challenge", login)

    def test_abandoned_consent_takes_its_login(self, sqlite_dsn, seed, ctx):
        login = seed.login_request(seed.ago(hours=3), handled=True)
        seed.consent_request(seed.ago(hours=3), login_challenge=login)
        store = make_store(sqlite_dsn)

        assert store.flush_inactive_login_consent_requests(ctx, seed.now) == 2
        assert seed.count("consent_requests") == 0
        assert not seed.exists("login_requests", "challenge", login)

    def test_login_kept_while_consent_pending(self, sqlite_dsn, seed, ctx):
        login = seed.login_request(seed.ago(minutes=10), handled=True)
        consent = seed.consent_request(seed.ago(minutes=10), login_challenge=login)
        store = make_store(sqlite_dsn)

        assert store.flush_inactive_login_consent_requests(ctx, seed.now) == 0
        assert seed.exists("consent_requests", "challenge", consent)
        assert seed.exists("login_requests", "challenge", login)

    def test_recently_rejected_request_purged(self, sqlite_dsn, seed, ctx):
        rejected = seed.login_request(seed.ago(minutes=5), rejected=True)
        consent = seed.consent_request(seed.ago(minutes=5), rejected=True)
        store = make_store(sqlite_dsn)

        assert store.flush_inactive_login_consent_requests(ctx, seed.now) == 2
        assert not seed.exists("login_requests", "challenge", rejected)
        assert not seed.exists("consent_requests", "challenge", consent)

    def test_keep_if_younger_protects_rejected(self, sqlite_dsn, seed, ctx):
        rejected = seed.login_request(seed.ago(hours=2), rejected=True)
        store = make_store(sqlite_dsn)

        store.flush_inactive_login_consent_requests(ctx, seed.ago(hours=24))

        assert seed.exists("login_requests", "challenge", rejected)


class TestFlushJwtBearerGrants:
    def test_expired_before_cutoff_purged(self, sqlite_dsn, seed, ctx):
        expired = seed.jwt_bearer_grant(seed.ago(days=1))
        valid = seed.jwt_bearer_grant(seed.now + timedelta(days=1))
        store = make_store(sqlite_dsn)

        assert store.flush_inactive_jwt_bearer_grants(ctx, seed.now) == 1
        assert not seed.exists("jwt_bearer_grants", "id", expired)
        assert seed.exists("jwt_bearer_grants", "id", valid)

    def test_recently_expired_kept_by_cutoff(self, sqlite_dsn, seed, ctx):
        recent = seed.jwt_bearer_grant(seed.ago(hours=1))
        store = make_store(sqlite_dsn)

        store.flush_inactive_jwt_bearer_grants(ctx, seed.ago(hours=12))

        assert seed.exists("jwt_bearer_grants", "id", recent)


class TestIdempotence:
    def test_second_flush_removes_nothing(self, sqlite_dsn, seed, ctx):
        seed.access_token(seed.ago(days=3))
        seed.refresh_token(seed.ago(days=60))
        seed.login_request(seed.ago(days=3))
        seed.consent_request(seed.ago(days=3), rejected=True)
        seed.jwt_bearer_grant(seed.ago(days=3))
        store = make_store(sqlite_dsn)
        flushes = [
            store.flush_inactive_access_tokens,
            store.flush_inactive_refresh_tokens,
            store.flush_inactive_login_consent_requests,
            store.flush_inactive_jwt_bearer_grants,
        ]

        first = [flush(ctx, seed.now) for flush in flushes]
        second = [flush(ctx, seed.now) for flush in flushes]

        assert first == [1, 1, 2, 1]
        assert second == [0, 0, 0, 0]

    def test_cancelled_flush_deletes_nothing(self, sqlite_dsn, seed):
        seed.access_token(seed.ago(days=3))
        ctx = CleanupContext()
        ctx.cancel()

        with pytest.raises(CleanupCancelledError):
            make_store(sqlite_dsn).flush_inactive_access_tokens(ctx, seed.now)
        assert seed.count("oauth2_access_tokens") == 1
