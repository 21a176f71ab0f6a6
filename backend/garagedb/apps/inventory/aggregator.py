from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)


def total_quantity(db: Session, *, part_id: int) -> int:
    total = (
        db.query(func.coalesce(func.sum(models.WarehouseStock.quantity), 0))
        .filter(models.WarehouseStock.part_id == part_id)
        .scalar()
    )
    return int(total or 0)


def sync_part_stock(db: Session, part: models.Part) -> int:
    """
    Recompute Part.current_stock as the sum of the part's warehouse stock
    rows, inside the caller's transaction.
    """
    db.flush()
    previous = part.current_stock
    part.current_stock = total_quantity(db, part_id=part.id)
    db.flush()
    logger.debug(
        "Synced part stock total",
        extra={"part_id": part.id, "previous": previous, "current": part.current_stock},
    )
    return part.current_stock
