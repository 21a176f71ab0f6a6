from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"

from garagedb.database import Base  # noqa: E402
from garagedb.apps.accounts import models as account_models  # noqa: E402
from garagedb.apps.inventory import models as inventory_models  # noqa: E402


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    Base.metadata.create_all(
        bind=engine,
        tables=[
            account_models.Tenant.__table__,
            account_models.User.__table__,
            inventory_models.Warehouse.__table__,
            inventory_models.Part.__table__,
            inventory_models.WarehouseStock.__table__,
            inventory_models.StockMovement.__table__,
        ],
    )
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
