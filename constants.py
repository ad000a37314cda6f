"""
Constants for the OAuth janitor.
Centralized location for flag names, config keys and default lifespans.
"""

from datetime import timedelta

# Command line flags
KEEP_IF_YOUNGER = "keep-if-younger"
ACCESS_LIFESPAN = "access-lifespan"
REFRESH_LIFESPAN = "refresh-lifespan"
CONSENT_REQUEST_LIFESPAN = "consent-request-lifespan"
TOKENS = "tokens"
REQUESTS = "requests"
GRANT_TYPE_JWT_BEARER = "grant-type-jwt-bearer"
READ_FROM_ENV = "read-from-env"
CONFIG = "config"

# Store configuration keys, as written in config files
KEY_DSN = "dsn"
KEY_ACCESS_TOKEN_LIFESPAN = "ttl.access_token"
KEY_REFRESH_TOKEN_LIFESPAN = "ttl.refresh_token"
KEY_CONSENT_REQUEST_MAX_AGE = "ttl.login_consent_request"

# Maps lifespan flags to the store config key they override
LIFESPAN_OVERRIDE_KEYS = {
    ACCESS_LIFESPAN: KEY_ACCESS_TOKEN_LIFESPAN,
    REFRESH_LIFESPAN: KEY_REFRESH_TOKEN_LIFESPAN,
    CONSENT_REQUEST_LIFESPAN: KEY_CONSENT_REQUEST_MAX_AGE,
}

# Defaults applied when neither config files nor flags set a lifespan
DEFAULT_ACCESS_TOKEN_LIFESPAN = timedelta(hours=1)
DEFAULT_REFRESH_TOKEN_LIFESPAN = timedelta(hours=720)
DEFAULT_CONSENT_REQUEST_MAX_AGE = timedelta(minutes=30)

# Environment variables
ENV_DSN = "DSN"
ENV_LOG_LEVEL = "JANITOR_LOG_LEVEL"
ENV_TIMEOUT = "JANITOR_TIMEOUT"

# DSN schemes
MEMORY_DSN = "memory"
SQLITE_SCHEMES = ("sqlite://",)
POSTGRESQL_SCHEMES = ("postgresql://", "postgres://")
SQLITE_FILE_SUFFIXES = (".db", ".sqlite", ".sqlite3")
