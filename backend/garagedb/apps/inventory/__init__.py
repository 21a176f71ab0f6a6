"""
Inventory module.

Handles the stock movement ledger, per-warehouse stock levels and the
multi-step stock operations (receive, adjust, transfer) for parts.
"""

from .router import router  # noqa: F401
from . import models  # noqa: F401
