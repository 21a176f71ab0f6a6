# backend/garagedb/apps/accounts/__init__.py
"""
Accounts app

Responsible for:
- Tenants (repair shops) that own every inventory record
- Staff users recorded as the actor of stock movements

Authentication and role checks live in the gateway in front of this
service; only the ownership records are kept here.
"""

from . import models  # noqa: F401

__all__ = ["models"]
