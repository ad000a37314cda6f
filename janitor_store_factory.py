from typing import Optional

from config import StoreConfig
from constants import (
    MEMORY_DSN,
    POSTGRESQL_SCHEMES,
    SQLITE_FILE_SUFFIXES,
    SQLITE_SCHEMES,
)
from error_utils import InitializationError
from janitor_store_abc import JanitorStore
from janitor_store_sqlite import SQLiteJanitorStore

NOT_SQL_MESSAGE = (
    "Janitor can only be executed against a SQL-compatible driver "
    "but DSN is not a SQL source."
)


class JanitorStoreFactory:
    """
    Factory class for creating JanitorStore instances from a StoreConfig.

    The backend is detected from the DSN; ``memory`` is an in-memory SQLite
    store. PostgreSQL is imported lazily so
    SQLite-only deployments do not need psycopg2 at import time.
    """

    _backends = {
        "sqlite": SQLiteJanitorStore,
    }

    @classmethod
    def detect_backend(cls, dsn: str) -> Optional[str]:
        """Return 'sqlite', 'postgresql' or None for a DSN."""
        if dsn.startswith(POSTGRESQL_SCHEMES):
            return "postgresql"
        if dsn == MEMORY_DSN:
            return "sqlite"
        if dsn.startswith(SQLITE_SCHEMES):
            return "sqlite"
        if "://" not in dsn and dsn.split("?", 1)[0].endswith(SQLITE_FILE_SUFFIXES):
            return "sqlite"
        return None

    @classmethod
    def _backend_class(cls, backend: str):
        if backend == "postgresql" and backend not in cls._backends:
            from janitor_store_postgresql import PostgreSQLJanitorStore

            cls._backends["postgresql"] = PostgreSQLJanitorStore
        return cls._backends[backend]

    @classmethod
    def create(cls, config: StoreConfig, **kwargs) -> JanitorStore:
        """
        Create a JanitorStore instance.

        Args:
            config: Store configuration with a resolved DSN
            **kwargs: Additional backend options

        Returns:
            JanitorStore: Configured store instance

        Raises:
            InitializationError: If the DSN is not an SQL source
        """
        backend = cls.detect_backend(config.dsn)
        if backend is None:
            raise InitializationError(NOT_SQL_MESSAGE)
        return cls._backend_class(backend)(config, **kwargs)


def create_store(config: StoreConfig, **kwargs) -> JanitorStore:
    """Convenience wrapper around JanitorStoreFactory.create."""
    return JanitorStoreFactory.create(config, **kwargs)
