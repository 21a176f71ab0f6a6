"""
Ledger replay and projection repair.

The movement ledger is the source of truth: folding the delta table over a
(part, warehouse) pair's movements in (occurred_at, id) order from zero
yields the stock row's quantity and reserved values. These helpers detect
and repair drift between the two.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Set, Tuple

from sqlalchemy.orm import Session

from . import aggregator, ledger, models
from .errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class ProjectionCheck:
    part_id: int
    warehouse_id: int
    stored_quantity: int
    stored_reserved: int
    ledger_quantity: int
    ledger_reserved: int
    movement_count: int

    @property
    def in_sync(self) -> bool:
        return (
            self.stored_quantity == self.ledger_quantity
            and self.stored_reserved == self.ledger_reserved
        )


@dataclass
class ReconciliationReport:
    part_id: int
    current_stock: int
    ledger_total: int
    checks: List[ProjectionCheck]

    @property
    def in_sync(self) -> bool:
        return self.current_stock == self.ledger_total and all(c.in_sync for c in self.checks)


def replay_movements(movements: Iterable[models.StockMovement]) -> Tuple[int, int]:
    quantity = 0
    reserved = 0
    ordered = sorted(movements, key=lambda m: (m.occurred_at, m.id))
    for movement in ordered:
        quantity_delta, reserve_delta = ledger.movement_deltas(movement.type, movement.quantity)
        quantity += quantity_delta
        reserved += reserve_delta
    return quantity, reserved


def _movements_for(db: Session, *, tenant_id: str, part_id: int, warehouse_id: int) -> List[models.StockMovement]:
    return (
        db.query(models.StockMovement)
        .filter(
            models.StockMovement.tenant_id == tenant_id,
            models.StockMovement.part_id == part_id,
            models.StockMovement.warehouse_id == warehouse_id,
        )
        .order_by(models.StockMovement.occurred_at.asc(), models.StockMovement.id.asc())
        .all()
    )


def _stock_row(db: Session, *, part_id: int, warehouse_id: int):
    return (
        db.query(models.WarehouseStock)
        .filter(
            models.WarehouseStock.part_id == part_id,
            models.WarehouseStock.warehouse_id == warehouse_id,
        )
        .first()
    )


def _check(db: Session, *, tenant_id: str, part_id: int, warehouse_id: int, stock=None) -> ProjectionCheck:
    movements = _movements_for(db, tenant_id=tenant_id, part_id=part_id, warehouse_id=warehouse_id)
    ledger_quantity, ledger_reserved = replay_movements(movements)
    return ProjectionCheck(
        part_id=part_id,
        warehouse_id=warehouse_id,
        stored_quantity=stock.quantity if stock else 0,
        stored_reserved=stock.reserved if stock else 0,
        ledger_quantity=ledger_quantity,
        ledger_reserved=ledger_reserved,
        movement_count=len(movements),
    )


def verify_projection(db: Session, *, tenant_id: str, part_id: int, warehouse_id: int) -> ProjectionCheck:
    part = (
        db.query(models.Part)
        .filter(models.Part.id == part_id, models.Part.tenant_id == tenant_id)
        .first()
    )
    if not part:
        raise NotFoundError("Part not found.", part_id=part_id)
    ledger.get_warehouse(db, tenant_id=tenant_id, warehouse_id=warehouse_id)
    stock = _stock_row(db, part_id=part_id, warehouse_id=warehouse_id)
    return _check(db, tenant_id=tenant_id, part_id=part_id, warehouse_id=warehouse_id, stock=stock)


def _warehouse_ids_for_part(db: Session, *, tenant_id: str, part_id: int) -> List[int]:
    ids: Set[int] = set()
    for (warehouse_id,) in (
        db.query(models.StockMovement.warehouse_id)
        .filter(
            models.StockMovement.tenant_id == tenant_id,
            models.StockMovement.part_id == part_id,
        )
        .distinct()
    ):
        ids.add(warehouse_id)
    for (warehouse_id,) in (
        db.query(models.WarehouseStock.warehouse_id)
        .filter(models.WarehouseStock.part_id == part_id)
    ):
        ids.add(warehouse_id)
    return sorted(ids)


def inspect_part(db: Session, *, tenant_id: str, part_id: int) -> ReconciliationReport:
    """Compare every stock row of a part (and its cached total) with the ledger."""
    part = (
        db.query(models.Part)
        .filter(models.Part.id == part_id, models.Part.tenant_id == tenant_id)
        .first()
    )
    if not part:
        raise NotFoundError("Part not found.", part_id=part_id)

    checks = []
    for warehouse_id in _warehouse_ids_for_part(db, tenant_id=tenant_id, part_id=part_id):
        stock = _stock_row(db, part_id=part_id, warehouse_id=warehouse_id)
        checks.append(
            _check(db, tenant_id=tenant_id, part_id=part_id, warehouse_id=warehouse_id, stock=stock)
        )
    return ReconciliationReport(
        part_id=part.id,
        current_stock=part.current_stock,
        ledger_total=sum(c.ledger_quantity for c in checks),
        checks=checks,
    )


def rebuild_part_stock(db: Session, *, tenant_id: str, part_id: int) -> ReconciliationReport:
    """
    Rewrite drifted stock rows of a part from the ledger and resync the
    part total. Returns the checks as found before the repair.
    """
    with ledger.unit_of_work(db):
        part = ledger.lock_part(db, tenant_id=tenant_id, part_id=part_id)
        checks: List[ProjectionCheck] = []
        for warehouse_id in _warehouse_ids_for_part(db, tenant_id=tenant_id, part_id=part.id):
            stock = ledger.lock_stock_row(db, part_id=part.id, warehouse_id=warehouse_id)
            check = _check(db, tenant_id=tenant_id, part_id=part.id, warehouse_id=warehouse_id, stock=stock)
            checks.append(check)
            if check.in_sync and stock is not None:
                continue
            if not check.in_sync:
                logger.warning(
                    "Stock projection drifted from ledger; repairing",
                    extra={
                        "tenant_id": tenant_id,
                        "part_id": part.id,
                        "warehouse_id": warehouse_id,
                        "stored_quantity": check.stored_quantity,
                        "stored_reserved": check.stored_reserved,
                        "ledger_quantity": check.ledger_quantity,
                        "ledger_reserved": check.ledger_reserved,
                    },
                )
            if stock is None:
                db.add(
                    models.WarehouseStock(
                        tenant_id=tenant_id,
                        part_id=part.id,
                        warehouse_id=warehouse_id,
                        quantity=check.ledger_quantity,
                        reserved=check.ledger_reserved,
                    )
                )
            else:
                stock.quantity = check.ledger_quantity
                stock.reserved = check.ledger_reserved

        previous_total = part.current_stock
        aggregator.sync_part_stock(db, part)
        if previous_total != part.current_stock:
            logger.warning(
                "Part stock total drifted from warehouse stock; repaired",
                extra={"part_id": part.id, "previous": previous_total, "current": part.current_stock},
            )

    return ReconciliationReport(
        part_id=part.id,
        current_stock=previous_total,
        ledger_total=sum(c.ledger_quantity for c in checks),
        checks=checks,
    )
