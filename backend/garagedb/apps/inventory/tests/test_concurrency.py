from __future__ import annotations

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from garagedb.apps.accounts import models as account_models
from garagedb.apps.inventory import ledger
from garagedb.apps.inventory import models as inventory_models
from garagedb.apps.inventory.errors import ConcurrencyConflictError
from garagedb.database import Base

MovementType = inventory_models.StockMovementType


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture()
def open_session(tmp_path):
    """Independent sessions on one file-backed database, like two app workers."""
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'stock.db'}")
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
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    opened = []

    def _open():
        session = factory()
        opened.append(session)
        return session

    yield _open
    for session in opened:
        session.close()
    engine.dispose()


@pytest.fixture()
def stock_ids(open_session):
    db = open_session()
    tenant = account_models.Tenant(code="RACE", name="Race garage", slug="race")
    db.add(tenant)
    db.flush()
    part = inventory_models.Part(tenant_id=tenant.id, name="Timing belt")
    warehouse = inventory_models.Warehouse(tenant_id=tenant.id, name="Main")
    db.add_all([part, warehouse])
    db.commit()
    return {"tenant_id": tenant.id, "part_id": part.id, "warehouse_id": warehouse.id}


def _purchase(db, ids, quantity, **kwargs):
    return ledger.record_movement(db, movement_type=MovementType.PURCHASE, quantity=quantity, **ids, **kwargs)


def _stock_and_count(db, ids):
    stock = (
        db.query(inventory_models.WarehouseStock)
        .filter_by(part_id=ids["part_id"], warehouse_id=ids["warehouse_id"])
        .one_or_none()
    )
    return (stock.quantity if stock else None), db.query(inventory_models.StockMovement).count()


def test_write_over_a_stale_stock_row_is_a_conflict(open_session, stock_ids):
    _purchase(open_session(), stock_ids, 10)

    first, second = open_session(), open_session()
    stale = ledger.lock_stock_row(first, part_id=stock_ids["part_id"], warehouse_id=stock_ids["warehouse_id"])
    _purchase(second, stock_ids, 5)

    with pytest.raises(ConcurrencyConflictError):
        with ledger.unit_of_work(first):
            stale.quantity = stale.quantity - 4

    assert _stock_and_count(open_session(), stock_ids) == (15, 2)


def test_two_writers_creating_the_same_stock_row_is_a_conflict(open_session, stock_ids):
    first, second = open_session(), open_session()
    assert ledger.lock_stock_row(first, part_id=stock_ids["part_id"], warehouse_id=stock_ids["warehouse_id"]) is None
    _purchase(second, stock_ids, 3)

    with pytest.raises(ConcurrencyConflictError):
        with ledger.unit_of_work(first):
            first.add(
                inventory_models.WarehouseStock(
                    tenant_id=stock_ids["tenant_id"],
                    part_id=stock_ids["part_id"],
                    warehouse_id=stock_ids["warehouse_id"],
                    quantity=2,
                    reserved=0,
                )
            )

    assert _stock_and_count(open_session(), stock_ids) == (3, 1)


def test_two_writers_claiming_one_idempotency_key_is_a_conflict(open_session, stock_ids):
    first, second = open_session(), open_session()
    assert ledger.find_by_idempotency_key(first, tenant_id=stock_ids["tenant_id"], key="grn-77") is None
    _purchase(second, stock_ids, 4, idempotency_key="grn-77")

    with pytest.raises(ConcurrencyConflictError):
        with ledger.unit_of_work(first):
            ledger.append(
                first,
                movement_type=MovementType.PURCHASE,
                quantity=4,
                idempotency_key="grn-77",
                **stock_ids,
            )

    assert _stock_and_count(open_session(), stock_ids) == (4, 1)
