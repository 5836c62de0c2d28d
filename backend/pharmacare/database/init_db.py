"""
Schema bootstrap.

Creates every table registered on Base.metadata if it does not exist.
Existing tables are not modified.

Usage:
    python -m pharmacare.database.init_db

Environment variables:
    DATABASE_SERVICE_URL: Elevated connection string (preferred)
    DATABASE_URL: Standard connection string (fallback)
"""

import sys
import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from pharmacare.config.settings import load_settings
from pharmacare.database.session import create_store_engine
from pharmacare.db_base import Base
import pharmacare.models  # noqa: F401 - registers all model metadata

logger = logging.getLogger(__name__)


def init_database(engine: Engine) -> dict[str, bool]:
    """
    Create missing tables and report which tables exist afterwards.

    Returns:
        Mapping of table name to existence
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("Database connection successful")

    table_names = sorted(Base.metadata.tables.keys())
    logger.info("Tables to create/verify", extra={"tables": table_names})

    Base.metadata.create_all(bind=engine)

    existing = set(inspect(engine).get_table_names())
    status = {name: name in existing for name in table_names}
    for name, exists in status.items():
        logger.info("Table status", extra={"table": name, "exists": exists})
    return status


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    settings = load_settings()
    database_url = settings.database_service_url or settings.database_url
    if not database_url:
        print("DATABASE_URL environment variable is required")
        sys.exit(1)

    try:
        status = init_database(create_store_engine(database_url))
    except SQLAlchemyError as e:
        print(f"Database initialization failed: {e}")
        sys.exit(1)

    missing = [name for name, exists in status.items() if not exists]
    if missing:
        print(f"Tables missing after initialization: {', '.join(missing)}")
        sys.exit(1)
    print(f"Database initialized: {len(status)} tables")
    sys.exit(0)


if __name__ == "__main__":
    main()
