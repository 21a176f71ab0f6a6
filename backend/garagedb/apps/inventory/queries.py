from __future__ import annotations

import math
import os
from collections import defaultdict
from typing import Dict, List, Optional, Tuple, Union

from sqlalchemy import exists, or_
from sqlalchemy.orm import Query, Session, contains_eager

from . import models, schemas
from .errors import StockValidationError

PAGE_LIMIT_DEFAULT = int(os.getenv("INVENTORY_PAGE_LIMIT_DEFAULT", "50"))
PAGE_LIMIT_MAX = int(os.getenv("INVENTORY_PAGE_LIMIT_MAX", "200"))


def _page_window(page: int, limit: int) -> Tuple[int, int]:
    if page < 1:
        raise StockValidationError("page must be >= 1.", page=page)
    if limit < 1 or limit > PAGE_LIMIT_MAX:
        raise StockValidationError(
            f"limit must be between 1 and {PAGE_LIMIT_MAX}.",
            limit=limit,
        )
    return (page - 1) * limit, limit


def page_meta(*, total: int, page: int, limit: int) -> schemas.PageMeta:
    return schemas.PageMeta(
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if limit else 0,
    )


def _search_filter(search: Optional[str]):
    term = (search or "").strip()
    if not term:
        return None
    pattern = f"%{term}%"
    return or_(
        models.Part.name.ilike(pattern),
        models.Part.sku.ilike(pattern),
        models.Part.brand.ilike(pattern),
        models.Part.manufacturer.ilike(pattern),
        models.Part.oem_number.ilike(pattern),
    )


# ---------------------------------------------------------------------------
# WAREHOUSES
# ---------------------------------------------------------------------------


def list_warehouses(db: Session, *, tenant_id: str, include_inactive: bool = True) -> List[models.Warehouse]:
    query = db.query(models.Warehouse).filter(models.Warehouse.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(models.Warehouse.is_active.is_(True))
    return query.order_by(models.Warehouse.name.asc(), models.Warehouse.id.asc()).all()


# ---------------------------------------------------------------------------
# STOCK
# ---------------------------------------------------------------------------


def _stock_query(db: Session, *, tenant_id: str) -> Query:
    return (
        db.query(models.WarehouseStock)
        .join(models.Part, models.WarehouseStock.part_id == models.Part.id)
        .join(models.Warehouse, models.WarehouseStock.warehouse_id == models.Warehouse.id)
        .options(
            contains_eager(models.WarehouseStock.part),
            contains_eager(models.WarehouseStock.warehouse),
        )
        .filter(
            models.WarehouseStock.tenant_id == tenant_id,
            models.Part.tenant_id == tenant_id,
        )
    )


def list_stock(
    db: Session,
    *,
    tenant_id: str,
    page: int = 1,
    limit: int = PAGE_LIMIT_DEFAULT,
    search: Optional[str] = None,
    warehouse_id: Optional[int] = None,
    low_stock: bool = False,
) -> schemas.WarehouseStockPage:
    """
    Stock rows with part and warehouse summaries, ordered by part name.

    Without `low_stock` only rows holding stock are listed; with it, rows at
    or below the part's reorder threshold (empty rows included). Both filters
    run in SQL so the page metadata matches the data.
    """
    offset, limit = _page_window(page, limit)
    query = _stock_query(db, tenant_id=tenant_id)
    if warehouse_id is not None:
        query = query.filter(models.WarehouseStock.warehouse_id == warehouse_id)
    criterion = _search_filter(search)
    if criterion is not None:
        query = query.filter(criterion)
    if low_stock:
        query = query.filter(models.WarehouseStock.quantity <= models.Part.min_stock)
    else:
        query = query.filter(models.WarehouseStock.quantity > 0)

    total = query.order_by(None).count()
    rows = (
        query.order_by(models.Part.name.asc(), models.Warehouse.name.asc(), models.WarehouseStock.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return schemas.WarehouseStockPage(
        data=[schemas.WarehouseStockRead.model_validate(row) for row in rows],
        meta=page_meta(total=total, page=page, limit=limit),
    )


def stock_summary(
    db: Session,
    *,
    tenant_id: str,
    page: int = 1,
    limit: int = PAGE_LIMIT_DEFAULT,
    search: Optional[str] = None,
    warehouse_id: Optional[int] = None,
) -> schemas.PartStockSummaryPage:
    """
    Per-part totals with a per-warehouse breakdown.

    With `warehouse_id`, lists active parts that have a stock row in that
    warehouse (empty rows included); otherwise active parts holding stock
    anywhere.
    """
    offset, limit = _page_window(page, limit)

    has_stock = exists().where(models.WarehouseStock.part_id == models.Part.id)
    if warehouse_id is not None:
        has_stock = has_stock.where(models.WarehouseStock.warehouse_id == warehouse_id)
    else:
        has_stock = has_stock.where(models.WarehouseStock.quantity > 0)

    query = db.query(models.Part).filter(
        models.Part.tenant_id == tenant_id,
        models.Part.is_active.is_(True),
        has_stock,
    )
    criterion = _search_filter(search)
    if criterion is not None:
        query = query.filter(criterion)

    total = query.count()
    parts = query.order_by(models.Part.name.asc(), models.Part.id.asc()).offset(offset).limit(limit).all()

    by_part: Dict[int, List[models.WarehouseStock]] = defaultdict(list)
    if parts:
        stock_query = (
            db.query(models.WarehouseStock)
            .join(models.Warehouse, models.WarehouseStock.warehouse_id == models.Warehouse.id)
            .options(contains_eager(models.WarehouseStock.warehouse))
            .filter(models.WarehouseStock.part_id.in_([p.id for p in parts]))
        )
        if warehouse_id is not None:
            stock_query = stock_query.filter(models.WarehouseStock.warehouse_id == warehouse_id)
        for row in stock_query.order_by(models.Warehouse.name.asc(), models.WarehouseStock.id.asc()):
            by_part[row.part_id].append(row)

    data = []
    for part in parts:
        rows = by_part.get(part.id, [])
        total_quantity = sum(r.quantity for r in rows)
        total_reserved = sum(r.reserved for r in rows)
        data.append(
            schemas.PartStockSummary(
                id=part.id,
                name=part.name,
                sku=part.sku,
                brand=part.brand,
                manufacturer=part.manufacturer,
                oem_number=part.oem_number,
                unit=part.unit,
                cost_price=part.cost_price,
                sell_price=part.sell_price,
                min_stock=part.min_stock,
                current_stock=part.current_stock,
                total_quantity=total_quantity,
                total_reserved=total_reserved,
                available=total_quantity - total_reserved,
                warehouses=[
                    schemas.WarehouseBreakdown(
                        warehouse_id=r.warehouse_id,
                        warehouse_name=r.warehouse.name,
                        quantity=r.quantity,
                        reserved=r.reserved,
                        available=r.available,
                    )
                    for r in rows
                ],
            )
        )
    return schemas.PartStockSummaryPage(data=data, meta=page_meta(total=total, page=page, limit=limit))


# ---------------------------------------------------------------------------
# MOVEMENTS
# ---------------------------------------------------------------------------


def list_movements(
    db: Session,
    *,
    tenant_id: str,
    page: int = 1,
    limit: int = PAGE_LIMIT_DEFAULT,
    part_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    movement_type: Optional[Union[str, models.StockMovementType]] = None,
) -> schemas.StockMovementPage:
    offset, limit = _page_window(page, limit)
    query = db.query(models.StockMovement).filter(models.StockMovement.tenant_id == tenant_id)
    if part_id is not None:
        query = query.filter(models.StockMovement.part_id == part_id)
    if warehouse_id is not None:
        query = query.filter(models.StockMovement.warehouse_id == warehouse_id)
    if movement_type is not None:
        try:
            movement_type = models.StockMovementType(movement_type)
        except ValueError as exc:
            raise StockValidationError(
                f"Unknown movement type: {movement_type!r}.",
                movement_type=str(movement_type),
            ) from exc
        query = query.filter(models.StockMovement.type == movement_type)

    total = query.count()
    rows = (
        query.order_by(models.StockMovement.occurred_at.desc(), models.StockMovement.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return schemas.StockMovementPage(
        data=[schemas.StockMovementRead.model_validate(row) for row in rows],
        meta=page_meta(total=total, page=page, limit=limit),
    )
