import logging
import sqlite3

from config import StoreConfig
from janitor_schema_definitions import get_indexes, get_schemas
from janitor_store_factory import JanitorStoreFactory
from janitor_store_sqlite import create_sqlite_schema, sqlite_path_from_dsn
from error_utils import InitializationError

logger = logging.getLogger(__name__)


def setup_database(config: StoreConfig) -> bool:
    """
    Create the janitor tables for the store named by ``config.dsn``.

    Args:
        config: Store configuration with a resolved DSN

    Returns:
        bool: True once the schema exists

    Raises:
        InitializationError: If the DSN is not an SQL source
    """
    backend = JanitorStoreFactory.detect_backend(config.dsn)
    if backend is None:
        raise InitializationError(f"Cannot set up schema for DSN: {config.dsn}")

    if backend == "sqlite":
        conn = sqlite3.connect(sqlite_path_from_dsn(config.dsn))
        try:
            create_sqlite_schema(conn)
        finally:
            conn.close()
    else:
        import psycopg2
        from janitor_store_postgresql import clean_dsn

        conn = psycopg2.connect(clean_dsn(config.dsn))
        try:
            with conn:
                with conn.cursor() as cursor:
                    for schema in get_schemas(backend).values():
                        cursor.execute(schema)
                    for index_sql in get_indexes(backend):
                        cursor.execute(index_sql)
        finally:
            conn.close()

    logger.info("Janitor schema ready for %s backend", backend)
    return True


if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO)
    print("Setting up the database")
    setup_database(StoreConfig(dsn=sys.argv[1] if len(sys.argv) > 1 else "sqlite://janitor.db"))
