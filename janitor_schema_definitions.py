"""
Centralized schema definitions for the OAuth2 artifact store.
Both SQL backends create the same tables; only column types differ.
"""

# Tables the janitor purges, keyed by logical name
SQLITE_SCHEMAS = {
    "access_tokens": """
        CREATE TABLE IF NOT EXISTS oauth2_access_tokens (
            signature TEXT PRIMARY KEY,
            request_id TEXT NOT NULL,
            client_id TEXT NOT NULL,
            subject TEXT,
            requested_at TEXT NOT NULL,
            active INTEGER NOT NULL DEFAULT 1
        )
    """,
    "refresh_tokens": """
        CREATE TABLE IF NOT EXISTS oauth2_refresh_tokens (
            signature TEXT PRIMARY KEY,
            request_id TEXT NOT NULL,
            client_id TEXT NOT NULL,
            subject TEXT,
            requested_at TEXT NOT NULL,
            active INTEGER NOT NULL DEFAULT 1
        )
    """,
    "login_requests": """
        CREATE TABLE IF NOT EXISTS login_requests (
            challenge TEXT PRIMARY KEY,
            client_id TEXT NOT NULL,
            subject TEXT,
            requested_at TEXT NOT NULL,
            handled INTEGER NOT NULL DEFAULT 0,
            rejected INTEGER NOT NULL DEFAULT 0
        )
    """,
    "consent_requests": """
        CREATE TABLE IF NOT EXISTS consent_requests (
            challenge TEXT PRIMARY KEY,
            login_challenge TEXT,
            client_id TEXT NOT NULL,
            subject TEXT,
            requested_at TEXT NOT NULL,
            handled INTEGER NOT NULL DEFAULT 0,
            rejected INTEGER NOT NULL DEFAULT 0
        )
    """,
    "jwt_bearer_grants": """
        CREATE TABLE IF NOT EXISTS jwt_bearer_grants (
            id TEXT PRIMARY KEY,
            issuer TEXT NOT NULL,
            subject TEXT NOT NULL,
            scope TEXT,
            key_id TEXT,
            created_at TEXT NOT NULL,
            expires_at TEXT NOT NULL
        )
    """,
}

POSTGRESQL_SCHEMAS = {
    "access_tokens": """
        CREATE TABLE IF NOT EXISTS oauth2_access_tokens (
            signature VARCHAR(255) PRIMARY KEY,
            request_id VARCHAR(40) NOT NULL,
            client_id VARCHAR(255) NOT NULL,
            subject VARCHAR(255),
            requested_at TIMESTAMP NOT NULL,
            active BOOLEAN NOT NULL DEFAULT TRUE
        )
    """,
    "refresh_tokens": """
        CREATE TABLE IF NOT EXISTS oauth2_refresh_tokens (
            signature VARCHAR(255) PRIMARY KEY,
            request_id VARCHAR(40) NOT NULL,
            client_id VARCHAR(255) NOT NULL,
            subject VARCHAR(255),
            requested_at TIMESTAMP NOT NULL,
            active BOOLEAN NOT NULL DEFAULT TRUE
        )
    """,
    "login_requests": """
        CREATE TABLE IF NOT EXISTS login_requests (
            challenge VARCHAR(40) PRIMARY KEY,
            client_id VARCHAR(255) NOT NULL,
            subject VARCHAR(255),
            requested_at TIMESTAMP NOT NULL,
            handled BOOLEAN NOT NULL DEFAULT FALSE,
            rejected BOOLEAN NOT NULL DEFAULT FALSE
        )
    """,
    "consent_requests": """
        CREATE TABLE IF NOT EXISTS consent_requests (
            challenge VARCHAR(40) PRIMARY KEY,
            login_challenge VARCHAR(40),
            client_id VARCHAR(255) NOT NULL,
            subject VARCHAR(255),
            requested_at TIMESTAMP NOT NULL,
            handled BOOLEAN NOT NULL DEFAULT FALSE,
            rejected BOOLEAN NOT NULL DEFAULT FALSE
        )
    """,
    "jwt_bearer_grants": """
        CREATE TABLE IF NOT EXISTS jwt_bearer_grants (
            id VARCHAR(36) PRIMARY KEY,
            issuer VARCHAR(255) NOT NULL,
            subject VARCHAR(255) NOT NULL,
            scope TEXT,
            key_id VARCHAR(255),
            created_at TIMESTAMP NOT NULL,
            expires_at TIMESTAMP NOT NULL
        )
    """,
}

# Indexes backing the janitor's range deletes
SQLITE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_access_tokens_requested_at ON oauth2_access_tokens(requested_at)",
    "CREATE INDEX IF NOT EXISTS idx_refresh_tokens_requested_at ON oauth2_refresh_tokens(requested_at)",
    "CREATE INDEX IF NOT EXISTS idx_login_requests_requested_at ON login_requests(requested_at)",
    "CREATE INDEX IF NOT EXISTS idx_consent_requests_requested_at ON consent_requests(requested_at)",
    "CREATE INDEX IF NOT EXISTS idx_jwt_bearer_grants_expires_at ON jwt_bearer_grants(expires_at)",
]

POSTGRESQL_INDEXES = list(SQLITE_INDEXES)

REQUIRED_TABLES = [
    "oauth2_access_tokens",
    "oauth2_refresh_tokens",
    "login_requests",
    "consent_requests",
    "jwt_bearer_grants",
]


def get_schemas(backend: str) -> dict:
    """Return the table DDL for a backend ('sqlite' or 'postgresql')."""
    if backend == "postgresql":
        return POSTGRESQL_SCHEMAS
    if backend == "sqlite":
        return SQLITE_SCHEMAS
    raise ValueError(f"Unsupported backend: {backend}")


def get_indexes(backend: str) -> list:
    """Return the index DDL for a backend ('sqlite' or 'postgresql')."""
    if backend == "postgresql":
        return POSTGRESQL_INDEXES
    if backend == "sqlite":
        return SQLITE_INDEXES
    raise ValueError(f"Unsupported backend: {backend}")
