from __future__ import annotations

import enum
import logging
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import relationship

from garagedb.database import Base

from .errors import LedgerImmutableError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.utcnow()


class StockMovementType(str, enum.Enum):
    PURCHASE = "PURCHASE"
    RETURN = "RETURN"
    TRANSFER_IN = "TRANSFER_IN"
    CONSUMPTION = "CONSUMPTION"
    TRANSFER_OUT = "TRANSFER_OUT"
    ADJUSTMENT = "ADJUSTMENT"
    RESERVED = "RESERVED"
    UNRESERVED = "UNRESERVED"


class Warehouse(Base):
    __tablename__ = "warehouses"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_warehouses_tenant_name"),
        Index("ix_warehouses_tenant", "tenant_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(128), nullable=False)
    code = Column(String(32), nullable=True)
    address = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class Part(Base):
    """
    Part master record. `current_stock` is a cache of the sum of the part's
    WarehouseStock quantities and is only written by the aggregator.
    """

    __tablename__ = "parts"
    __table_args__ = (
        Index("ix_parts_tenant_name", "tenant_id", "name"),
        Index("ix_parts_tenant_sku", "tenant_id", "sku"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(64), nullable=True)
    brand = Column(String(128), nullable=True)
    manufacturer = Column(String(128), nullable=True)
    oem_number = Column(String(64), nullable=True)
    unit = Column(String(16), nullable=False, default="pcs")
    cost_price = Column(Numeric(12, 2), nullable=False, default=0)
    sell_price = Column(Numeric(12, 2), nullable=False, default=0)
    current_stock = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)


class WarehouseStock(Base):
    """
    Per (part, warehouse) projection of the movement ledger.

    `version` is bumped on every update; a flush against a stale version
    raises StaleDataError, which the ledger turns into a concurrency conflict.
    """

    __tablename__ = "warehouse_stock"
    __table_args__ = (
        UniqueConstraint("part_id", "warehouse_id", name="uq_warehouse_stock_part_warehouse"),
        Index("ix_warehouse_stock_warehouse", "warehouse_id"),
        Index("ix_warehouse_stock_part", "part_id"),
        CheckConstraint("quantity >= 0", name="ck_warehouse_stock_quantity_nonneg"),
        CheckConstraint("reserved >= 0", name="ck_warehouse_stock_reserved_nonneg"),
        CheckConstraint("quantity >= reserved", name="ck_warehouse_stock_available_nonneg"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id = Column(Integer, ForeignKey("parts.id", ondelete="CASCADE"), nullable=False)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    reserved = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    part = relationship("Part", lazy="joined", innerjoin=True)
    warehouse = relationship("Warehouse", lazy="joined", innerjoin=True)

    __mapper_args__ = {"version_id_col": version}

    @property
    def available(self) -> int:
        return (self.quantity or 0) - (self.reserved or 0)


class StockMovement(Base):
    """
    Append-only stock ledger. Rows are never updated or deleted; the
    projection and Part.current_stock can be rebuilt from them alone.
    """

    __tablename__ = "stock_movements"
    __table_args__ = (
        Index("ix_stock_movements_tenant_time", "tenant_id", "occurred_at"),
        Index("ix_stock_movements_part_warehouse", "part_id", "warehouse_id", "occurred_at"),
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_stock_movements_idempotency"),
    )

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    part_id = Column(Integer, ForeignKey("parts.id", ondelete="CASCADE"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False, index=True)

    type = Column(
        SAEnum(StockMovementType, name="stock_movement_type_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    quantity = Column(Integer, nullable=False)

    reference = Column(String(64), nullable=True)
    reference_id = Column(String(64), nullable=True, index=True)
    notes = Column(Text, nullable=True)
    idempotency_key = Column(String(128), nullable=True)

    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    part = relationship("Part", lazy="joined", innerjoin=True)
    warehouse = relationship("Warehouse", lazy="joined", innerjoin=True)

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} type={self.type} qty={self.quantity} "
            f"part={self.part_id} warehouse={self.warehouse_id}>"
        )


# ---------------------------------------------------------------------------
# LEDGER IMMUTABILITY
# ---------------------------------------------------------------------------


def _reject_movement_update(mapper, connection, target: StockMovement) -> None:
    state = inspect(target)
    changed = [
        attr.key
        for attr in mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    ]
    if not changed:
        return
    logger.error(
        "Blocked update of stock movement",
        extra={"movement_id": target.id, "fields": changed},
    )
    raise LedgerImmutableError(
        "Stock movements are immutable and cannot be modified.",
        movement_id=target.id,
        fields=changed,
    )


def _reject_movement_delete(mapper, connection, target: StockMovement) -> None:
    logger.error("Blocked delete of stock movement", extra={"movement_id": target.id})
    raise LedgerImmutableError(
        "Stock movements are immutable and cannot be deleted.",
        movement_id=target.id,
    )


event.listen(StockMovement, "before_update", _reject_movement_update)
event.listen(StockMovement, "before_delete", _reject_movement_delete)
