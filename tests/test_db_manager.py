from __future__ import annotations

import pytest
from sqlalchemy import inspect

from fulfillment import db_manager

DB_VARS = ("DATABASE_URL", "DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD", "DB_SSLMODE")


@pytest.fixture
def clean_env(monkeypatch):
    for var in DB_VARS:
        monkeypatch.delenv(var, raising=False)
    db_manager.reset_engine()
    yield monkeypatch
    db_manager.reset_engine()


def test_database_url_prefers_database_url(clean_env):
    clean_env.setenv("DATABASE_URL", "sqlite://")
    clean_env.setenv("DB_HOST", "ignored")
    assert db_manager.database_url() == "sqlite://"


def test_database_url_from_parts_escapes_password(clean_env):
    clean_env.setenv("DB_HOST", "db.local")
    clean_env.setenv("DB_PORT", "5432")
    clean_env.setenv("DB_NAME", "fulfillment")
    clean_env.setenv("DB_USER", "sim")
    clean_env.setenv("DB_PASSWORD", "p@ss/word")
    url = db_manager.database_url()
    assert url.host == "db.local"
    assert url.port == 5432
    assert url.password == "p@ss/word"
    assert url.query["sslmode"] == "require"


def test_database_url_reports_missing_vars(clean_env):
    clean_env.setenv("DB_HOST", "db.local")
    with pytest.raises(ValueError, match="DB_PASSWORD"):
        db_manager.database_url()


def test_engine_is_cached_and_tables_created(clean_env):
    clean_env.setenv("DATABASE_URL", "sqlite://")
    engine = db_manager.get_engine()
    assert db_manager.get_engine() is engine
    assert db_manager.test_connection(engine)
    db_manager.create_tables(engine)
    assert {"orders", "vendor_reports", "dashboard_summaries"} <= set(inspect(engine).get_table_names())
    db_manager.reset_engine()
    assert db_manager.get_engine() is not engine
