from __future__ import annotations

import pytest

from garagedb.apps.inventory import ledger, queries, services
from garagedb.apps.inventory import models as inventory_models
from garagedb.apps.inventory.errors import StockValidationError

MovementType = inventory_models.StockMovementType


def _move(db, tenant, part, warehouse, movement_type, quantity):
    return ledger.record_movement(
        db,
        tenant_id=tenant.id,
        part_id=part.id,
        warehouse_id=warehouse.id,
        movement_type=movement_type,
        quantity=quantity,
    )


@pytest.fixture()
def stocked(db_session, tenant, main_warehouse, second_warehouse, make_part):
    """Four parts across two warehouses, one of them emptied by an adjustment."""
    alpha = make_part(tenant.id, name="Alpha belt", sku="AB-1", brand="Gates", min_stock=5)
    bravo = make_part(tenant.id, name="Bravo bulb", sku="BB-2", manufacturer="Osram", min_stock=5)
    charlie = make_part(tenant.id, name="Charlie clamp", sku="CC-3", oem_number="OEM-777", min_stock=3)
    delta = make_part(tenant.id, name="Delta disc", sku="DD-4", min_stock=0)

    _move(db_session, tenant, alpha, main_warehouse, MovementType.PURCHASE, 3)
    _move(db_session, tenant, bravo, main_warehouse, MovementType.PURCHASE, 2)
    services.adjust_stock(
        db_session, tenant_id=tenant.id, part_id=bravo.id, warehouse_id=main_warehouse.id, new_quantity=0
    )
    _move(db_session, tenant, charlie, main_warehouse, MovementType.PURCHASE, 10)
    _move(db_session, tenant, charlie, second_warehouse, MovementType.PURCHASE, 4)
    _move(db_session, tenant, charlie, second_warehouse, MovementType.RESERVED, 1)
    _move(db_session, tenant, delta, second_warehouse, MovementType.PURCHASE, 4)
    return {"alpha": alpha, "bravo": bravo, "charlie": charlie, "delta": delta}


# ---------------------------------------------------------------------------
# WAREHOUSES
# ---------------------------------------------------------------------------


def test_list_warehouses_ordered_by_name(db_session, tenant, other_tenant, make_warehouse):
    make_warehouse(tenant.id, name="Zeta")
    make_warehouse(tenant.id, name="Alpha", is_active=False)
    make_warehouse(other_tenant.id, name="Beta")

    names = [w.name for w in queries.list_warehouses(db_session, tenant_id=tenant.id)]
    active = [w.name for w in queries.list_warehouses(db_session, tenant_id=tenant.id, include_inactive=False)]

    assert names == ["Alpha", "Zeta"]
    assert active == ["Zeta"]


# ---------------------------------------------------------------------------
# STOCK
# ---------------------------------------------------------------------------


def test_list_stock_hides_empty_rows(db_session, tenant, stocked):
    page = queries.list_stock(db_session, tenant_id=tenant.id, page=1, limit=50)

    names = [row.part.name for row in page.data]
    assert "Bravo bulb" not in names
    assert names == ["Alpha belt", "Charlie clamp", "Charlie clamp", "Delta disc"]
    assert page.meta.total == 4
    assert page.meta.total_pages == 1


def test_list_stock_rows_carry_available(db_session, tenant, second_warehouse, stocked):
    page = queries.list_stock(db_session, tenant_id=tenant.id, warehouse_id=second_warehouse.id)

    charlie = next(row for row in page.data if row.part_id == stocked["charlie"].id)
    assert (charlie.quantity, charlie.reserved, charlie.available) == (4, 1, 3)
    assert charlie.warehouse.name == "Second"
    assert page.meta.total == 2


def test_low_stock_filter_is_applied_before_pagination(db_session, tenant, stocked):
    first = queries.list_stock(db_session, tenant_id=tenant.id, page=1, limit=1, low_stock=True)
    second = queries.list_stock(db_session, tenant_id=tenant.id, page=2, limit=1, low_stock=True)

    assert first.meta.total == 2
    assert first.meta.total_pages == 2
    assert [row.part.name for row in first.data] == ["Alpha belt"]
    assert [row.part.name for row in second.data] == ["Bravo bulb"]
    assert second.data[0].quantity == 0


@pytest.mark.parametrize(
    "search, expected",
    [
        ("BELT", ["Alpha belt"]),
        ("osram", ["Bravo bulb"]),
        ("oem-7", ["Charlie clamp"]),
        ("dd-", ["Delta disc"]),
        ("gates", ["Alpha belt"]),
    ],
)
def test_search_matches_any_part_field(db_session, tenant, stocked, search, expected):
    page = queries.list_stock(db_session, tenant_id=tenant.id, search=search, low_stock=True)
    page_all = queries.list_stock(db_session, tenant_id=tenant.id, search=search)

    names = sorted({row.part.name for row in page.data} | {row.part.name for row in page_all.data})
    assert names == expected


def test_list_stock_is_tenant_scoped(db_session, other_tenant, stocked):
    page = queries.list_stock(db_session, tenant_id=other_tenant.id)

    assert page.data == []
    assert page.meta.total == 0
    assert page.meta.total_pages == 0


@pytest.mark.parametrize("page, limit", [(0, 10), (1, 0), (1, queries.PAGE_LIMIT_MAX + 1)])
def test_invalid_page_window_is_rejected(db_session, tenant, page, limit):
    with pytest.raises(StockValidationError):
        queries.list_stock(db_session, tenant_id=tenant.id, page=page, limit=limit)


def test_stock_summary_totals_and_breakdown(db_session, tenant, stocked):
    summary = queries.stock_summary(db_session, tenant_id=tenant.id)

    by_name = {item.name: item for item in summary.data}
    assert sorted(by_name) == ["Alpha belt", "Charlie clamp", "Delta disc"]
    charlie = by_name["Charlie clamp"]
    assert (charlie.total_quantity, charlie.total_reserved, charlie.available) == (14, 1, 13)
    assert charlie.current_stock == 14
    assert [w.warehouse_name for w in charlie.warehouses] == ["Main", "Second"]
    assert summary.meta.total == 3


def test_stock_summary_for_one_warehouse_includes_empty_rows(db_session, tenant, main_warehouse, stocked):
    summary = queries.stock_summary(db_session, tenant_id=tenant.id, warehouse_id=main_warehouse.id)

    by_name = {item.name: item for item in summary.data}
    assert sorted(by_name) == ["Alpha belt", "Bravo bulb", "Charlie clamp"]
    assert by_name["Bravo bulb"].total_quantity == 0
    assert [w.warehouse_id for w in by_name["Charlie clamp"].warehouses] == [main_warehouse.id]
    assert by_name["Charlie clamp"].total_quantity == 10


def test_stock_summary_skips_inactive_parts(db_session, tenant, stocked):
    stocked["delta"].is_active = False
    db_session.commit()

    summary = queries.stock_summary(db_session, tenant_id=tenant.id)

    assert "Delta disc" not in [item.name for item in summary.data]


# ---------------------------------------------------------------------------
# MOVEMENTS
# ---------------------------------------------------------------------------


def test_list_movements_newest_first(db_session, tenant, stocked):
    page = queries.list_movements(db_session, tenant_id=tenant.id)

    ids = [m.id for m in page.data]
    assert ids == sorted(ids, reverse=True)
    assert page.meta.total == 7
    assert page.data[0].part.name == "Delta disc"


def test_list_movements_filters(db_session, tenant, second_warehouse, stocked):
    by_part = queries.list_movements(db_session, tenant_id=tenant.id, part_id=stocked["charlie"].id)
    by_warehouse = queries.list_movements(db_session, tenant_id=tenant.id, warehouse_id=second_warehouse.id)
    adjustments = queries.list_movements(db_session, tenant_id=tenant.id, movement_type="ADJUSTMENT")

    assert by_part.meta.total == 3
    assert by_warehouse.meta.total == 3
    assert [m.quantity for m in adjustments.data] == [-2]


def test_list_movements_rejects_unknown_type(db_session, tenant):
    with pytest.raises(StockValidationError):
        queries.list_movements(db_session, tenant_id=tenant.id, movement_type="STOLEN")


def test_page_meta_rounds_up():
    meta = queries.page_meta(total=101, page=3, limit=50)

    assert meta.total_pages == 3
