from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from garagedb.utils.identifiers import new_reference_id

from . import ledger, models
from .errors import InsufficientStockError, StockValidationError

logger = logging.getLogger(__name__)

TRANSFER_REFERENCE = "TRANSFER"


@dataclass
class TransferResult:
    out: models.StockMovement
    in_: models.StockMovement

    @property
    def reference_id(self) -> Optional[str]:
        return self.out.reference_id


def _leg_keys(idempotency_key: Optional[str]):
    if not idempotency_key:
        return None, None
    return f"{idempotency_key}:out", f"{idempotency_key}:in"


def _replay(
    db: Session,
    *,
    tenant_id: str,
    part_id: int,
    from_warehouse_id: int,
    to_warehouse_id: int,
    quantity: int,
    idempotency_key: str,
) -> Optional[TransferResult]:
    out_key, in_key = _leg_keys(idempotency_key)
    out_entry = ledger.find_by_idempotency_key(db, tenant_id=tenant_id, key=out_key)
    in_entry = ledger.find_by_idempotency_key(db, tenant_id=tenant_id, key=in_key)
    if out_entry is None or in_entry is None:
        return None
    if (
        out_entry.part_id != part_id
        or out_entry.warehouse_id != from_warehouse_id
        or in_entry.warehouse_id != to_warehouse_id
        or out_entry.quantity != quantity
    ):
        raise StockValidationError(
            "Idempotency key was already used for a different transfer.",
            idempotency_key=idempotency_key,
        )
    logger.info(
        "Replayed stock transfer for idempotency key",
        extra={"tenant_id": tenant_id, "reference_id": out_entry.reference_id},
    )
    return TransferResult(out=out_entry, in_=in_entry)


def transfer_stock(
    db: Session,
    *,
    tenant_id: str,
    part_id: int,
    from_warehouse_id: int,
    to_warehouse_id: int,
    quantity: int,
    notes: Optional[str] = None,
    reference: Optional[str] = None,
    user_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> TransferResult:
    """
    Move `quantity` of a part between two warehouses of the same tenant.

    Both legs are appended in one transaction; the availability check runs
    after the part and source stock rows are locked.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise StockValidationError("Transfer quantity must be greater than zero.", quantity=quantity)
    if from_warehouse_id == to_warehouse_id:
        raise StockValidationError(
            "Source and destination warehouse must differ.",
            warehouse_id=from_warehouse_id,
        )

    if idempotency_key:
        replayed = _replay(
            db,
            tenant_id=tenant_id,
            part_id=part_id,
            from_warehouse_id=from_warehouse_id,
            to_warehouse_id=to_warehouse_id,
            quantity=quantity,
            idempotency_key=idempotency_key,
        )
        if replayed:
            return replayed

    out_key, in_key = _leg_keys(idempotency_key)
    reference = reference or TRANSFER_REFERENCE
    reference_id = new_reference_id()

    with ledger.unit_of_work(db):
        part = ledger.lock_part(db, tenant_id=tenant_id, part_id=part_id)
        source = ledger.get_warehouse(db, tenant_id=tenant_id, warehouse_id=from_warehouse_id)
        destination = ledger.get_warehouse(db, tenant_id=tenant_id, warehouse_id=to_warehouse_id)

        stock = ledger.lock_stock_row(db, part_id=part.id, warehouse_id=source.id)
        available = stock.available if stock else 0
        if available < quantity:
            logger.warning(
                "Rejected stock transfer",
                extra={
                    "tenant_id": tenant_id,
                    "part_id": part.id,
                    "from_warehouse_id": source.id,
                    "to_warehouse_id": destination.id,
                    "available": available,
                    "requested": quantity,
                },
            )
            raise InsufficientStockError(
                f"Insufficient stock to transfer. Available: {available}, requested: {quantity}.",
                available=available,
                requested=quantity,
                reserved=stock.reserved if stock else 0,
            )

        out_entry = ledger.append(
            db,
            tenant_id=tenant_id,
            part_id=part.id,
            warehouse_id=source.id,
            movement_type=models.StockMovementType.TRANSFER_OUT,
            quantity=quantity,
            reference=reference,
            reference_id=reference_id,
            notes=notes,
            user_id=user_id,
            idempotency_key=out_key,
        )
        in_entry = ledger.append(
            db,
            tenant_id=tenant_id,
            part_id=part.id,
            warehouse_id=destination.id,
            movement_type=models.StockMovementType.TRANSFER_IN,
            quantity=quantity,
            reference=reference,
            reference_id=reference_id,
            notes=notes,
            user_id=user_id,
            idempotency_key=in_key,
        )

    logger.info(
        "Stock transferred",
        extra={
            "tenant_id": tenant_id,
            "part_id": part_id,
            "from_warehouse_id": from_warehouse_id,
            "to_warehouse_id": to_warehouse_id,
            "quantity": quantity,
            "reference_id": reference_id,
        },
    )
    return TransferResult(out=out_entry, in_=in_entry)
