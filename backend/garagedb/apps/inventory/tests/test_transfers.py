from __future__ import annotations

import pytest

from garagedb.apps.inventory import ledger, transfers
from garagedb.apps.inventory import models as inventory_models
from garagedb.apps.inventory.errors import (
    InsufficientStockError,
    NotFoundError,
    StockValidationError,
)

MovementType = inventory_models.StockMovementType


def _stock(db, part_id, warehouse_id):
    return (
        db.query(inventory_models.WarehouseStock)
        .filter_by(part_id=part_id, warehouse_id=warehouse_id)
        .one_or_none()
    )


def _seed(db, tenant, part, warehouse, quantity, reserved=0):
    ledger.record_movement(
        db,
        tenant_id=tenant.id,
        part_id=part.id,
        warehouse_id=warehouse.id,
        movement_type=MovementType.PURCHASE,
        quantity=quantity,
    )
    if reserved:
        ledger.record_movement(
            db,
            tenant_id=tenant.id,
            part_id=part.id,
            warehouse_id=warehouse.id,
            movement_type=MovementType.RESERVED,
            quantity=reserved,
        )


def _transfer(db, tenant, part, source, destination, quantity, **kwargs):
    return transfers.transfer_stock(
        db,
        tenant_id=tenant.id,
        part_id=part.id,
        from_warehouse_id=source.id,
        to_warehouse_id=destination.id,
        quantity=quantity,
        **kwargs,
    )


def test_transfer_moves_stock_and_links_legs(db_session, tenant, user, part, main_warehouse, second_warehouse):
    _seed(db_session, tenant, part, main_warehouse, 10)

    result = _transfer(
        db_session, tenant, part, main_warehouse, second_warehouse, 6, notes="Van restock", user_id=user.id
    )

    assert result.out.type == MovementType.TRANSFER_OUT
    assert result.in_.type == MovementType.TRANSFER_IN
    assert result.out.warehouse_id == main_warehouse.id
    assert result.in_.warehouse_id == second_warehouse.id
    assert result.out.quantity == result.in_.quantity == 6
    assert result.out.reference == result.in_.reference == "TRANSFER"
    assert result.out.reference_id == result.in_.reference_id == result.reference_id
    assert result.out.notes == "Van restock"
    assert _stock(db_session, part.id, main_warehouse.id).quantity == 4
    assert _stock(db_session, part.id, second_warehouse.id).quantity == 6
    db_session.refresh(part)
    assert part.current_stock == 10


def test_transfer_keeps_caller_reference(db_session, tenant, part, main_warehouse, second_warehouse):
    _seed(db_session, tenant, part, main_warehouse, 3)

    result = _transfer(db_session, tenant, part, main_warehouse, second_warehouse, 1, reference="WO-881")

    assert result.out.reference == "WO-881"


def test_transfer_checks_available_not_on_hand(db_session, tenant, part, main_warehouse, second_warehouse):
    _seed(db_session, tenant, part, main_warehouse, 10, reserved=4)

    with pytest.raises(InsufficientStockError) as excinfo:
        _transfer(db_session, tenant, part, main_warehouse, second_warehouse, 7)

    assert excinfo.value.available == 6
    assert excinfo.value.requested == 7
    assert excinfo.value.data["reserved"] == 4


def test_transfer_from_empty_warehouse_is_rejected(db_session, tenant, part, main_warehouse, second_warehouse):
    with pytest.raises(InsufficientStockError) as excinfo:
        _transfer(db_session, tenant, part, main_warehouse, second_warehouse, 1)

    assert excinfo.value.available == 0
    assert db_session.query(inventory_models.StockMovement).count() == 0


def test_failed_second_leg_rolls_back_first(db_session, tenant, part, main_warehouse, second_warehouse):
    _seed(db_session, tenant, part, main_warehouse, 5)
    second_warehouse.is_active = False
    db_session.commit()

    with pytest.raises(StockValidationError):
        _transfer(db_session, tenant, part, main_warehouse, second_warehouse, 2)

    movements = db_session.query(inventory_models.StockMovement).all()
    assert [m.type for m in movements] == [MovementType.PURCHASE]
    assert _stock(db_session, part.id, main_warehouse.id).quantity == 5
    assert _stock(db_session, part.id, second_warehouse.id) is None
    db_session.refresh(part)
    assert part.current_stock == 5


@pytest.mark.parametrize("quantity", [0, -3])
def test_transfer_quantity_must_be_positive(db_session, tenant, part, main_warehouse, second_warehouse, quantity):
    with pytest.raises(StockValidationError):
        _transfer(db_session, tenant, part, main_warehouse, second_warehouse, quantity)


def test_transfer_to_same_warehouse_is_rejected(db_session, tenant, part, main_warehouse):
    _seed(db_session, tenant, part, main_warehouse, 5)

    with pytest.raises(StockValidationError):
        _transfer(db_session, tenant, part, main_warehouse, main_warehouse, 1)


def test_transfer_to_foreign_warehouse_is_not_found(db_session, tenant, other_tenant, part, main_warehouse, make_warehouse):
    _seed(db_session, tenant, part, main_warehouse, 5)
    foreign = make_warehouse(other_tenant.id, name="Foreign")

    with pytest.raises(NotFoundError):
        _transfer(db_session, tenant, part, main_warehouse, foreign, 1)

    assert _stock(db_session, part.id, main_warehouse.id).quantity == 5


def test_transfer_idempotency_key_replays(db_session, tenant, part, main_warehouse, second_warehouse):
    _seed(db_session, tenant, part, main_warehouse, 5)

    first = _transfer(db_session, tenant, part, main_warehouse, second_warehouse, 2, idempotency_key="tr-1")
    again = _transfer(db_session, tenant, part, main_warehouse, second_warehouse, 2, idempotency_key="tr-1")

    assert (again.out.id, again.in_.id) == (first.out.id, first.in_.id)
    assert first.out.idempotency_key == "tr-1:out"
    assert first.in_.idempotency_key == "tr-1:in"
    assert _stock(db_session, part.id, main_warehouse.id).quantity == 3
    assert _stock(db_session, part.id, second_warehouse.id).quantity == 2
