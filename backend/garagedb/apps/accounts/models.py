# backend/garagedb/apps/accounts/models.py

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from garagedb.database import Base
from garagedb.utils.identifiers import generate_uuid7


# ---------------------------------------------------------------------------
# TENANT
# ---------------------------------------------------------------------------


class Tenant(Base):
    """
    Repair shop (or shop chain) using the platform.

    Every inventory record (warehouses, parts, stock rows, movements) is
    scoped to exactly one tenant.
    """

    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    code = Column(String(32), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(64), unique=True, nullable=False, index=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
    )

    users = relationship(
        "User",
        back_populates="tenant",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} code={self.code}>"


# ---------------------------------------------------------------------------
# USER
# ---------------------------------------------------------------------------


class User(Base):
    """
    Staff member of a tenant. Referenced by stock movements as the actor.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=datetime.utcnow,
    )

    tenant = relationship("Tenant", back_populates="users", lazy="joined")

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email}>"
