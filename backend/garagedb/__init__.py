# backend/garagedb/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in garagedb/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models          # tenants / users
from .apps.inventory import models as inventory_models        # warehouses, parts, stock ledger

__all__ = [
    "accounts_models",
    "inventory_models",
]
