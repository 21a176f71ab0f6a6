"""
Movement ledger and stock projection.

`append` is the single write path for stock: it locks the part, locks (or
lazily creates) the per-warehouse stock row, writes one immutable movement,
applies the movement's deltas to the stock row and resyncs the part total.
It never commits; `record_movement` is the self-committing form.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from garagedb.apps.accounts import models as account_models

from . import aggregator, models
from .errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    NotFoundError,
    StockValidationError,
)

logger = logging.getLogger(__name__)

MovementType = models.StockMovementType

# (quantity sign, reserved sign) applied to the supplied quantity.
DELTA_SIGNS: Dict[MovementType, Tuple[int, int]] = {
    MovementType.PURCHASE: (1, 0),
    MovementType.RETURN: (1, 0),
    MovementType.TRANSFER_IN: (1, 0),
    MovementType.CONSUMPTION: (-1, -1),
    MovementType.TRANSFER_OUT: (-1, 0),
    MovementType.ADJUSTMENT: (1, 0),
    MovementType.RESERVED: (0, 1),
    MovementType.UNRESERVED: (0, -1),
}

_UNIQUE_RACE_MARKERS = (
    "uq_warehouse_stock_part_warehouse",
    "uq_stock_movements_idempotency",
    "warehouse_stock.part_id, warehouse_stock.warehouse_id",
    "stock_movements.tenant_id, stock_movements.idempotency_key",
)


def coerce_movement_type(value: Union[str, MovementType]) -> MovementType:
    try:
        return MovementType(value)
    except ValueError as exc:
        raise StockValidationError(
            f"Unknown movement type: {value!r}.",
            movement_type=str(value),
        ) from exc


def movement_deltas(movement_type: Union[str, MovementType], quantity: int) -> Tuple[int, int]:
    """Return (quantity_delta, reserve_delta) for one movement."""
    quantity_sign, reserve_sign = DELTA_SIGNS[coerce_movement_type(movement_type)]
    return quantity_sign * quantity, reserve_sign * quantity


def validate_quantity(movement_type: MovementType, quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise StockValidationError("Quantity must be an integer.", quantity=quantity)
    if movement_type == MovementType.ADJUSTMENT:
        if quantity == 0:
            raise StockValidationError("Adjustment quantity must be non-zero.", quantity=quantity)
        return
    if quantity <= 0:
        raise StockValidationError(
            f"{movement_type.value} quantity must be greater than zero.",
            movement_type=movement_type.value,
            quantity=quantity,
        )


# ---------------------------------------------------------------------------
# LOOKUPS AND LOCKS
# ---------------------------------------------------------------------------


def lock_part(db: Session, *, tenant_id: str, part_id: int) -> models.Part:
    part = (
        db.query(models.Part)
        .filter(models.Part.id == part_id, models.Part.tenant_id == tenant_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if not part:
        raise NotFoundError("Part not found.", part_id=part_id)
    return part


def get_warehouse(db: Session, *, tenant_id: str, warehouse_id: int) -> models.Warehouse:
    warehouse = (
        db.query(models.Warehouse)
        .filter(models.Warehouse.id == warehouse_id, models.Warehouse.tenant_id == tenant_id)
        .first()
    )
    if not warehouse:
        raise NotFoundError("Warehouse not found.", warehouse_id=warehouse_id)
    return warehouse


def get_user(db: Session, *, tenant_id: str, user_id: str) -> account_models.User:
    user = (
        db.query(account_models.User)
        .filter(account_models.User.id == user_id, account_models.User.tenant_id == tenant_id)
        .first()
    )
    if not user:
        raise NotFoundError("User not found.", user_id=user_id)
    return user


def lock_stock_row(db: Session, *, part_id: int, warehouse_id: int) -> Optional[models.WarehouseStock]:
    return (
        db.query(models.WarehouseStock)
        .filter(
            models.WarehouseStock.part_id == part_id,
            models.WarehouseStock.warehouse_id == warehouse_id,
        )
        .populate_existing()
        .with_for_update(of=models.WarehouseStock)
        .first()
    )


def find_by_idempotency_key(db: Session, *, tenant_id: str, key: str) -> Optional[models.StockMovement]:
    return (
        db.query(models.StockMovement)
        .filter(
            models.StockMovement.tenant_id == tenant_id,
            models.StockMovement.idempotency_key == key,
        )
        .first()
    )


# ---------------------------------------------------------------------------
# UNIT OF WORK
# ---------------------------------------------------------------------------


def _is_unique_race(exc: IntegrityError) -> bool:
    message = str(getattr(exc, "orig", exc))
    return any(marker in message for marker in _UNIQUE_RACE_MARKERS)


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Commit on success, roll back on any error.

    Optimistic version mismatches and unique-key races on stock rows or
    idempotency keys surface as ConcurrencyConflictError.
    """
    try:
        yield db
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        logger.warning("Stock row changed concurrently", extra={"error": str(exc)})
        raise ConcurrencyConflictError(
            "Stock was modified by a concurrent operation; retry the request."
        ) from exc
    except IntegrityError as exc:
        db.rollback()
        if not _is_unique_race(exc):
            raise
        logger.warning("Concurrent insert collided on a unique key", extra={"error": str(exc.orig)})
        raise ConcurrencyConflictError(
            "A concurrent operation created the same record; retry the request."
        ) from exc
    except Exception:
        db.rollback()
        raise


# ---------------------------------------------------------------------------
# APPEND
# ---------------------------------------------------------------------------


def append(
    db: Session,
    *,
    tenant_id: str,
    part_id: int,
    warehouse_id: int,
    movement_type: Union[str, MovementType],
    quantity: int,
    reference: Optional[str] = None,
    reference_id: Optional[str] = None,
    notes: Optional[str] = None,
    user_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> models.StockMovement:
    movement_type = coerce_movement_type(movement_type)
    validate_quantity(movement_type, quantity)

    part = lock_part(db, tenant_id=tenant_id, part_id=part_id)
    warehouse = get_warehouse(db, tenant_id=tenant_id, warehouse_id=warehouse_id)
    if user_id is not None:
        get_user(db, tenant_id=tenant_id, user_id=user_id)

    quantity_delta, reserve_delta = movement_deltas(movement_type, quantity)
    if quantity_delta > 0 and not warehouse.is_active:
        raise StockValidationError(
            "Cannot move stock into an inactive warehouse.",
            warehouse_id=warehouse.id,
        )

    stock = lock_stock_row(db, part_id=part.id, warehouse_id=warehouse.id)
    current_quantity = stock.quantity if stock else 0
    current_reserved = stock.reserved if stock else 0
    new_quantity = current_quantity + quantity_delta
    new_reserved = current_reserved + reserve_delta

    if new_quantity < 0 or new_reserved < 0 or new_quantity - new_reserved < 0:
        logger.warning(
            "Rejected stock movement",
            extra={
                "tenant_id": tenant_id,
                "part_id": part.id,
                "warehouse_id": warehouse.id,
                "movement_type": movement_type.value,
                "quantity": quantity,
                "stock_quantity": current_quantity,
                "stock_reserved": current_reserved,
            },
        )
        raise InsufficientStockError(
            f"Insufficient stock for {movement_type.value} of {quantity}.",
            available=current_quantity - current_reserved,
            requested=quantity,
            reserved=current_reserved,
            quantity=current_quantity,
        )

    entry = models.StockMovement(
        tenant_id=tenant_id,
        part_id=part.id,
        warehouse_id=warehouse.id,
        type=movement_type,
        quantity=quantity,
        reference=reference,
        reference_id=reference_id,
        notes=notes,
        user_id=user_id,
        idempotency_key=idempotency_key,
    )
    db.add(entry)

    if stock is None:
        stock = models.WarehouseStock(
            tenant_id=tenant_id,
            part_id=part.id,
            warehouse_id=warehouse.id,
            quantity=new_quantity,
            reserved=new_reserved,
        )
        db.add(stock)
    else:
        stock.quantity = new_quantity
        stock.reserved = new_reserved
    db.flush()

    aggregator.sync_part_stock(db, part)

    logger.info(
        "Stock movement recorded",
        extra={
            "tenant_id": tenant_id,
            "movement_id": entry.id,
            "part_id": part.id,
            "warehouse_id": warehouse.id,
            "movement_type": movement_type.value,
            "quantity": quantity,
        },
    )
    return entry


def _ensure_same_request(
    existing: models.StockMovement,
    *,
    part_id: int,
    warehouse_id: int,
    movement_type: MovementType,
    quantity: int,
) -> None:
    if (
        existing.part_id != part_id
        or existing.warehouse_id != warehouse_id
        or existing.type != movement_type
        or existing.quantity != quantity
    ):
        raise StockValidationError(
            "Idempotency key was already used for a different movement.",
            idempotency_key=existing.idempotency_key,
            movement_id=existing.id,
        )


def record_movement(
    db: Session,
    *,
    tenant_id: str,
    part_id: int,
    warehouse_id: int,
    movement_type: Union[str, MovementType],
    quantity: int,
    reference: Optional[str] = None,
    reference_id: Optional[str] = None,
    notes: Optional[str] = None,
    user_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> models.StockMovement:
    """
    Append one movement in its own transaction.

    With an `idempotency_key`, a repeated call returns the movement stored by
    the first call and applies nothing.
    """
    movement_type = coerce_movement_type(movement_type)
    if idempotency_key:
        existing = find_by_idempotency_key(db, tenant_id=tenant_id, key=idempotency_key)
        if existing:
            _ensure_same_request(
                existing,
                part_id=part_id,
                warehouse_id=warehouse_id,
                movement_type=movement_type,
                quantity=quantity,
            )
            logger.info(
                "Replayed stock movement for idempotency key",
                extra={"tenant_id": tenant_id, "movement_id": existing.id},
            )
            return existing

    with unit_of_work(db):
        entry = append(
            db,
            tenant_id=tenant_id,
            part_id=part_id,
            warehouse_id=warehouse_id,
            movement_type=movement_type,
            quantity=quantity,
            reference=reference,
            reference_id=reference_id,
            notes=notes,
            user_id=user_id,
            idempotency_key=idempotency_key,
        )
    return entry
