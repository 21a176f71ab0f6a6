from __future__ import annotations

import pytest

from garagedb.apps.accounts import models as account_models
from garagedb.apps.inventory import models as inventory_models


def create_tenant(db, code: str = "GARAGE-1") -> account_models.Tenant:
    tenant = account_models.Tenant(code=code, name=f"Garage {code}", slug=code.lower())
    db.add(tenant)
    db.commit()
    return tenant


def create_part(db, tenant_id: str, name: str = "Oil filter", **fields) -> inventory_models.Part:
    part = inventory_models.Part(tenant_id=tenant_id, name=name, **fields)
    db.add(part)
    db.commit()
    return part


def create_warehouse(db, tenant_id: str, name: str = "Main", **fields) -> inventory_models.Warehouse:
    warehouse = inventory_models.Warehouse(tenant_id=tenant_id, name=name, **fields)
    db.add(warehouse)
    db.commit()
    return warehouse


@pytest.fixture()
def tenant(db_session):
    return create_tenant(db_session)


@pytest.fixture()
def other_tenant(db_session):
    return create_tenant(db_session, code="GARAGE-2")


@pytest.fixture()
def user(db_session, tenant):
    user = account_models.User(
        tenant_id=tenant.id,
        email="stores@example.com",
        full_name="Stores Clerk",
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture()
def main_warehouse(db_session, tenant):
    return create_warehouse(db_session, tenant.id, name="Main")


@pytest.fixture()
def second_warehouse(db_session, tenant):
    return create_warehouse(db_session, tenant.id, name="Second")


@pytest.fixture()
def part(db_session, tenant):
    return create_part(db_session, tenant.id, name="Oil filter", sku="OF-100", brand="Mann", min_stock=5)


@pytest.fixture()
def make_part(db_session):
    def _make(tenant_id: str, name: str = "Part", **fields):
        return create_part(db_session, tenant_id, name=name, **fields)

    return _make


@pytest.fixture()
def make_warehouse(db_session):
    def _make(tenant_id: str, name: str, **fields):
        return create_warehouse(db_session, tenant_id, name=name, **fields)

    return _make
