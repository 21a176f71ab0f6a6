from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from . import models


# ---------------------------------------------------------------------------
# WAREHOUSES
# ---------------------------------------------------------------------------


class WarehouseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    code: Optional[str] = Field(None, max_length=32)
    address: Optional[str] = Field(None, max_length=255)
    is_active: bool = True


class WarehouseUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=128)
    code: Optional[str] = Field(None, max_length=32)
    address: Optional[str] = Field(None, max_length=255)
    is_active: Optional[bool] = None


class WarehouseRead(BaseModel):
    id: int
    tenant_id: str
    name: str
    code: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class WarehouseSummary(BaseModel):
    id: int
    name: str
    code: Optional[str] = None

    class Config:
        from_attributes = True


class PartSummary(BaseModel):
    id: int
    name: str
    sku: Optional[str] = None
    brand: Optional[str] = None
    unit: str
    min_stock: int
    current_stock: int

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# PAGINATION
# ---------------------------------------------------------------------------


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


# ---------------------------------------------------------------------------
# STOCK READS
# ---------------------------------------------------------------------------


class WarehouseStockRead(BaseModel):
    id: int
    part_id: int
    warehouse_id: int
    quantity: int
    reserved: int
    available: int
    updated_at: datetime
    part: PartSummary
    warehouse: WarehouseSummary

    class Config:
        from_attributes = True


class WarehouseStockPage(BaseModel):
    data: List[WarehouseStockRead]
    meta: PageMeta


class WarehouseBreakdown(BaseModel):
    warehouse_id: int
    warehouse_name: str
    quantity: int
    reserved: int
    available: int


class PartStockSummary(BaseModel):
    id: int
    name: str
    sku: Optional[str] = None
    brand: Optional[str] = None
    manufacturer: Optional[str] = None
    oem_number: Optional[str] = None
    unit: str
    cost_price: Decimal
    sell_price: Decimal
    min_stock: int
    current_stock: int
    total_quantity: int
    total_reserved: int
    available: int
    warehouses: List[WarehouseBreakdown]


class PartStockSummaryPage(BaseModel):
    data: List[PartStockSummary]
    meta: PageMeta


# ---------------------------------------------------------------------------
# MOVEMENTS
# ---------------------------------------------------------------------------


class StockMovementCreate(BaseModel):
    part_id: int
    warehouse_id: int
    type: models.StockMovementType
    quantity: int
    reference: Optional[str] = Field(None, max_length=64)
    reference_id: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = None


class StockMovementRead(BaseModel):
    id: int
    tenant_id: str
    part_id: int
    warehouse_id: int
    type: models.StockMovementType
    quantity: int
    reference: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None
    idempotency_key: Optional[str] = None
    user_id: Optional[str] = None
    occurred_at: datetime
    part: PartSummary
    warehouse: WarehouseSummary

    class Config:
        from_attributes = True


class StockMovementPage(BaseModel):
    data: List[StockMovementRead]
    meta: PageMeta


# ---------------------------------------------------------------------------
# RECEIVE / ADJUST / TRANSFER
# ---------------------------------------------------------------------------


class ReceiveItem(BaseModel):
    part_id: int
    quantity: int = Field(..., gt=0)
    notes: Optional[str] = None


class StockReceiveRequest(BaseModel):
    warehouse_id: int
    items: List[ReceiveItem] = Field(..., min_length=1)
    reference: Optional[str] = Field(None, max_length=64)


class StockErrorRead(BaseModel):
    code: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


class ReceiveItemResult(BaseModel):
    index: int
    part_id: Optional[int] = None
    quantity: Optional[int] = None
    movement: Optional[StockMovementRead] = None
    error: Optional[StockErrorRead] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ReceiveResult(BaseModel):
    warehouse_id: int
    items: List[ReceiveItemResult]
    received_count: int
    failed_count: int


class StockAdjustRequest(BaseModel):
    part_id: int
    warehouse_id: int
    new_quantity: int = Field(..., ge=0)
    notes: Optional[str] = None


class StockAdjustResponse(BaseModel):
    changed: bool
    movement: Optional[StockMovementRead] = None


class StockTransferRequest(BaseModel):
    part_id: int
    from_warehouse_id: int
    to_warehouse_id: int
    quantity: int = Field(..., gt=0)
    notes: Optional[str] = None
    reference: Optional[str] = Field(None, max_length=64)


class StockTransferRead(BaseModel):
    reference_id: Optional[str] = None
    out: StockMovementRead
    in_: StockMovementRead = Field(..., alias="in")

    class Config:
        populate_by_name = True


# ---------------------------------------------------------------------------
# RECONCILIATION
# ---------------------------------------------------------------------------


class ProjectionCheckRead(BaseModel):
    part_id: int
    warehouse_id: int
    stored_quantity: int
    stored_reserved: int
    ledger_quantity: int
    ledger_reserved: int
    movement_count: int
    in_sync: bool

    class Config:
        from_attributes = True


class ReconciliationRead(BaseModel):
    part_id: int
    current_stock: int
    ledger_total: int
    in_sync: bool
    checks: List[ProjectionCheckRead]
