from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import ledger, models, schemas
from .errors import NotFoundError, StockError, StockValidationError
from .ledger import record_movement
from .queries import list_movements, list_stock, list_warehouses, stock_summary
from .reconciliation import inspect_part, rebuild_part_stock, verify_projection
from .transfers import TransferResult, transfer_stock

logger = logging.getLogger(__name__)

__all__ = [
    "adjust_stock",
    "create_warehouse",
    "inspect_part",
    "list_movements",
    "list_stock",
    "list_warehouses",
    "rebuild_part_stock",
    "receive_stock",
    "record_movement",
    "stock_summary",
    "transfer_stock",
    "TransferResult",
    "update_warehouse",
    "verify_projection",
]


# ---------------------------------------------------------------------------
# RECEIVE
# ---------------------------------------------------------------------------


def _item_fields(item: Union[schemas.ReceiveItem, Mapping[str, Any]]) -> Tuple[Any, Any, Optional[str]]:
    if isinstance(item, Mapping):
        return item.get("part_id"), item.get("quantity"), item.get("notes")
    return item.part_id, item.quantity, item.notes


def receive_stock(
    db: Session,
    *,
    tenant_id: str,
    warehouse_id: int,
    items: Sequence[Union[schemas.ReceiveItem, Mapping[str, Any]]],
    reference: Optional[str] = None,
    user_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> schemas.ReceiveResult:
    """
    Record one PURCHASE per item. Each item is committed on its own, so a
    failing item does not undo the ones before it; domain errors are
    reported per item instead of raised.
    """
    results = []
    for index, item in enumerate(items):
        part_id, quantity, notes = _item_fields(item)
        item_key = f"{idempotency_key}:{index}" if idempotency_key else None
        try:
            entry = record_movement(
                db,
                tenant_id=tenant_id,
                part_id=part_id,
                warehouse_id=warehouse_id,
                movement_type=models.StockMovementType.PURCHASE,
                quantity=quantity,
                reference=reference,
                notes=notes,
                user_id=user_id,
                idempotency_key=item_key,
            )
        except StockError as exc:
            logger.warning(
                "Receive item rejected",
                extra={
                    "tenant_id": tenant_id,
                    "warehouse_id": warehouse_id,
                    "part_id": part_id,
                    "item_index": index,
                    "error_code": exc.code,
                },
            )
            results.append(
                schemas.ReceiveItemResult(
                    index=index,
                    part_id=part_id if isinstance(part_id, int) else None,
                    quantity=quantity if isinstance(quantity, int) else None,
                    error=schemas.StockErrorRead(**exc.as_dict()),
                )
            )
            continue
        results.append(
            schemas.ReceiveItemResult(
                index=index,
                part_id=part_id,
                quantity=quantity,
                movement=schemas.StockMovementRead.model_validate(entry),
            )
        )

    received = sum(1 for r in results if r.error is None)
    logger.info(
        "Stock receipt processed",
        extra={
            "tenant_id": tenant_id,
            "warehouse_id": warehouse_id,
            "received": received,
            "failed": len(results) - received,
        },
    )
    return schemas.ReceiveResult(
        warehouse_id=warehouse_id,
        items=results,
        received_count=received,
        failed_count=len(results) - received,
    )


# ---------------------------------------------------------------------------
# ADJUST
# ---------------------------------------------------------------------------


def adjust_stock(
    db: Session,
    *,
    tenant_id: str,
    part_id: int,
    warehouse_id: int,
    new_quantity: int,
    notes: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Optional[models.StockMovement]:
    """
    Set the on-hand quantity of a part in a warehouse. The difference is
    computed under the row locks and recorded as one ADJUSTMENT; returns None
    when the quantity is already `new_quantity`.
    """
    if isinstance(new_quantity, bool) or not isinstance(new_quantity, int) or new_quantity < 0:
        raise StockValidationError("new_quantity must be a non-negative integer.", new_quantity=new_quantity)

    with ledger.unit_of_work(db):
        part = ledger.lock_part(db, tenant_id=tenant_id, part_id=part_id)
        warehouse = ledger.get_warehouse(db, tenant_id=tenant_id, warehouse_id=warehouse_id)
        stock = ledger.lock_stock_row(db, part_id=part.id, warehouse_id=warehouse.id)
        current = stock.quantity if stock else 0
        diff = new_quantity - current
        if diff == 0:
            return None
        entry = ledger.append(
            db,
            tenant_id=tenant_id,
            part_id=part.id,
            warehouse_id=warehouse.id,
            movement_type=models.StockMovementType.ADJUSTMENT,
            quantity=diff,
            notes=notes or f"Adjustment: {current} -> {new_quantity}",
            user_id=user_id,
        )
    return entry


# ---------------------------------------------------------------------------
# WAREHOUSES
# ---------------------------------------------------------------------------


def _name_taken(db: Session, *, tenant_id: str, name: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(models.Warehouse).filter(
        models.Warehouse.tenant_id == tenant_id,
        models.Warehouse.name == name,
    )
    if exclude_id is not None:
        query = query.filter(models.Warehouse.id != exclude_id)
    return db.query(query.exists()).scalar()


_WAREHOUSE_NAME_MARKERS = (
    "uq_warehouses_tenant_name",
    "warehouses.tenant_id, warehouses.name",
)


@contextmanager
def _saving_warehouse(db: Session, *, name: str) -> Iterator[Session]:
    """Commit a warehouse write; a name collision that slipped past the pre-check is a validation error."""
    try:
        with ledger.unit_of_work(db):
            yield db
    except IntegrityError as exc:
        if not any(marker in str(exc.orig) for marker in _WAREHOUSE_NAME_MARKERS):
            raise
        raise StockValidationError("A warehouse with this name already exists.", name=name) from exc


def create_warehouse(db: Session, *, tenant_id: str, payload: schemas.WarehouseCreate) -> models.Warehouse:
    name = payload.name.strip()
    if not name:
        raise StockValidationError("Warehouse name is required.")
    if _name_taken(db, tenant_id=tenant_id, name=name):
        raise StockValidationError("A warehouse with this name already exists.", name=name)

    with _saving_warehouse(db, name=name):
        warehouse = models.Warehouse(
            tenant_id=tenant_id,
            name=name,
            code=payload.code,
            address=payload.address,
            is_active=payload.is_active,
        )
        db.add(warehouse)
        db.flush()
    logger.info("Warehouse created", extra={"tenant_id": tenant_id, "warehouse_id": warehouse.id})
    return warehouse


def update_warehouse(
    db: Session,
    *,
    tenant_id: str,
    warehouse_id: int,
    payload: schemas.WarehouseUpdate,
) -> models.Warehouse:
    warehouse = (
        db.query(models.Warehouse)
        .filter(models.Warehouse.id == warehouse_id, models.Warehouse.tenant_id == tenant_id)
        .first()
    )
    if not warehouse:
        raise NotFoundError("Warehouse not found.", warehouse_id=warehouse_id)

    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise StockValidationError("Warehouse name is required.")
        if _name_taken(db, tenant_id=tenant_id, name=name, exclude_id=warehouse.id):
            raise StockValidationError("A warehouse with this name already exists.", name=name)
        changes["name"] = name
    if "is_active" in changes and changes["is_active"] is None:
        changes.pop("is_active")

    with _saving_warehouse(db, name=changes.get("name", warehouse.name)):
        for field, value in changes.items():
            setattr(warehouse, field, value)
        db.flush()
    logger.info(
        "Warehouse updated",
        extra={"tenant_id": tenant_id, "warehouse_id": warehouse.id, "changed_fields": sorted(changes)},
    )
    return warehouse
