"""Create the simulator database (PostgreSQL) and its tables.

Reads the same DATABASE_URL / DB_* settings as the simulator itself.

Usage:
    python -m utils.init_db            # create database, then tables
    python -m utils.init_db --tables   # tables only (database already exists)
"""
import argparse
import sys

from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError

from fulfillment.db_manager import create_tables, database_url, get_engine


def init_database():
    """Issue CREATE DATABASE from the ``postgres`` maintenance database if needed."""
    target = make_url(database_url())
    if target.get_backend_name() != "postgresql":
        print(f"Skipping database creation for {target.get_backend_name()} backend")
        return
    name = target.database
    engine = create_engine(target.set(database="postgres"))
    try:
        with engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": name},
            ).first()
            if exists:
                print(f"Database {name} already exists")
                return
            conn.execute(text(f'CREATE DATABASE "{name}"'))
            print(f"Created database {name}")
    finally:
        engine.dispose()


def init_tables():
    create_tables(get_engine())
    print("SUCCESS: Tables initialized (orders, vendor_reports, dashboard_summaries)")


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize the simulator database")
    parser.add_argument("--tables", action="store_true", help="Only create tables.")
    args = parser.parse_args()

    try:
        if not args.tables:
            init_database()
        init_tables()
    except (SQLAlchemyError, ValueError) as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
