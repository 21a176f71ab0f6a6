from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from garagedb.database import get_db

from . import models, queries, schemas, services
from .errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    LedgerImmutableError,
    NotFoundError,
    StockError,
    StockValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["inventory"])

ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InsufficientStockError: status.HTTP_409_CONFLICT,
    StockValidationError: status.HTTP_400_BAD_REQUEST,
    ConcurrencyConflictError: status.HTTP_409_CONFLICT,
    LedgerImmutableError: status.HTTP_409_CONFLICT,
}


def status_for(exc: StockError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def stock_error_handler(request: Request, exc: StockError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info(
        "Inventory request rejected",
        extra={"path": request.url.path, "status_code": status_code, "error_code": exc.code},
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code, "data": exc.data},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StockError, stock_error_handler)


# ---------------------------------------------------------------------------
# REQUEST CONTEXT
# ---------------------------------------------------------------------------


def get_tenant_id(x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id")) -> str:
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing tenant. Send header: X-Tenant-Id: <tenant id>",
        )
    return tenant_id


def get_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> Optional[str]:
    return (x_user_id or "").strip() or None


def _page_limit(limit: int = Query(queries.PAGE_LIMIT_DEFAULT, ge=1, le=queries.PAGE_LIMIT_MAX)) -> int:
    return limit


# ---------------------------------------------------------------------------
# WAREHOUSES
# ---------------------------------------------------------------------------


@router.get("/warehouses", response_model=List[schemas.WarehouseRead])
def list_warehouses(
    include_inactive: bool = True,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
):
    return services.list_warehouses(db, tenant_id=tenant_id, include_inactive=include_inactive)


@router.post(
    "/warehouses",
    response_model=schemas.WarehouseRead,
    status_code=status.HTTP_201_CREATED,
)
def create_warehouse(
    payload: schemas.WarehouseCreate,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
):
    return services.create_warehouse(db, tenant_id=tenant_id, payload=payload)


@router.patch("/warehouses/{warehouse_id}", response_model=schemas.WarehouseRead)
def update_warehouse(
    warehouse_id: int,
    payload: schemas.WarehouseUpdate,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
):
    return services.update_warehouse(db, tenant_id=tenant_id, warehouse_id=warehouse_id, payload=payload)


# ---------------------------------------------------------------------------
# STOCK READS
# ---------------------------------------------------------------------------


@router.get("/stock", response_model=schemas.WarehouseStockPage)
def list_stock(
    page: int = Query(1, ge=1),
    limit: int = Depends(_page_limit),
    search: Optional[str] = None,
    warehouse_id: Optional[int] = None,
    low_stock: bool = False,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
):
    return services.list_stock(
        db,
        tenant_id=tenant_id,
        page=page,
        limit=limit,
        search=search,
        warehouse_id=warehouse_id,
        low_stock=low_stock,
    )


@router.get("/stock/summary", response_model=schemas.PartStockSummaryPage)
def stock_summary(
    page: int = Query(1, ge=1),
    limit: int = Depends(_page_limit),
    search: Optional[str] = None,
    warehouse_id: Optional[int] = None,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
):
    return services.stock_summary(
        db,
        tenant_id=tenant_id,
        page=page,
        limit=limit,
        search=search,
        warehouse_id=warehouse_id,
    )


# ---------------------------------------------------------------------------
# MOVEMENTS
# ---------------------------------------------------------------------------


@router.get("/movements", response_model=schemas.StockMovementPage)
def list_movements(
    page: int = Query(1, ge=1),
    limit: int = Depends(_page_limit),
    part_id: Optional[int] = None,
    warehouse_id: Optional[int] = None,
    movement_type: Optional[models.StockMovementType] = Query(None, alias="type"),
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
):
    return services.list_movements(
        db,
        tenant_id=tenant_id,
        page=page,
        limit=limit,
        part_id=part_id,
        warehouse_id=warehouse_id,
        movement_type=movement_type,
    )


@router.post(
    "/movements",
    response_model=schemas.StockMovementRead,
    status_code=status.HTTP_201_CREATED,
)
def record_movement(
    payload: schemas.StockMovementCreate,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    return services.record_movement(
        db,
        tenant_id=tenant_id,
        part_id=payload.part_id,
        warehouse_id=payload.warehouse_id,
        movement_type=payload.type,
        quantity=payload.quantity,
        reference=payload.reference,
        reference_id=payload.reference_id,
        notes=payload.notes,
        user_id=user_id,
        idempotency_key=idempotency_key,
    )


# ---------------------------------------------------------------------------
# RECEIVE / ADJUST / TRANSFER
# ---------------------------------------------------------------------------


@router.post("/receive", response_model=schemas.ReceiveResult)
def receive_stock(
    payload: schemas.StockReceiveRequest,
    response: Response,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    result = services.receive_stock(
        db,
        tenant_id=tenant_id,
        warehouse_id=payload.warehouse_id,
        items=payload.items,
        reference=payload.reference,
        user_id=user_id,
        idempotency_key=idempotency_key,
    )
    # 207 when at least one item was rejected; the body carries per-item outcomes.
    response.status_code = status.HTTP_201_CREATED if result.failed_count == 0 else status.HTTP_207_MULTI_STATUS
    return result


@router.post("/adjust", response_model=schemas.StockAdjustResponse)
def adjust_stock(
    payload: schemas.StockAdjustRequest,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
):
    entry = services.adjust_stock(
        db,
        tenant_id=tenant_id,
        part_id=payload.part_id,
        warehouse_id=payload.warehouse_id,
        new_quantity=payload.new_quantity,
        notes=payload.notes,
        user_id=user_id,
    )
    return schemas.StockAdjustResponse(
        changed=entry is not None,
        movement=schemas.StockMovementRead.model_validate(entry) if entry else None,
    )


@router.post(
    "/transfer",
    response_model=schemas.StockTransferRead,
    status_code=status.HTTP_201_CREATED,
)
def transfer_stock(
    payload: schemas.StockTransferRequest,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    user_id: Optional[str] = Depends(get_user_id),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    result = services.transfer_stock(
        db,
        tenant_id=tenant_id,
        part_id=payload.part_id,
        from_warehouse_id=payload.from_warehouse_id,
        to_warehouse_id=payload.to_warehouse_id,
        quantity=payload.quantity,
        notes=payload.notes,
        reference=payload.reference,
        user_id=user_id,
        idempotency_key=idempotency_key,
    )
    return schemas.StockTransferRead(
        reference_id=result.reference_id,
        out=schemas.StockMovementRead.model_validate(result.out),
        in_=schemas.StockMovementRead.model_validate(result.in_),
    )


# ---------------------------------------------------------------------------
# RECONCILIATION
# ---------------------------------------------------------------------------


def _reconciliation_read(report) -> schemas.ReconciliationRead:
    return schemas.ReconciliationRead(
        part_id=report.part_id,
        current_stock=report.current_stock,
        ledger_total=report.ledger_total,
        in_sync=report.in_sync,
        checks=[schemas.ProjectionCheckRead.model_validate(check) for check in report.checks],
    )


@router.get("/parts/{part_id}/reconcile", response_model=schemas.ReconciliationRead)
def reconcile_part(
    part_id: int,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
):
    return _reconciliation_read(services.inspect_part(db, tenant_id=tenant_id, part_id=part_id))


@router.post("/parts/{part_id}/rebuild", response_model=schemas.ReconciliationRead)
def rebuild_part(
    part_id: int,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
):
    return _reconciliation_read(services.rebuild_part_stock(db, tenant_id=tenant_id, part_id=part_id))
