"""
Errors raised by the inventory engine.

All errors are StockError subclasses carrying a stable `code` for
programmatic handling and a `data` dict with context. The HTTP adapter maps
each class to a status code; nothing in the engine retries on them.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class StockError(Exception):
    code = "stock_error"

    def __init__(self, message: str, *, code: Optional[str] = None, **data: Any) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.data: Dict[str, Any] = data

    def as_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": self.data}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NotFoundError(StockError):
    """Part, warehouse or user is missing or belongs to another tenant."""

    code = "not_found"


class InsufficientStockError(StockError):
    """A movement would drive quantity, reserved or available below zero."""

    code = "insufficient_stock"

    @property
    def available(self) -> int:
        return self.data.get("available", 0)

    @property
    def requested(self) -> int:
        return self.data.get("requested", 0)


class StockValidationError(StockError):
    code = "validation_error"


class ConcurrencyConflictError(StockError):
    """A concurrent write won the race for the same stock row; safe to retry."""

    code = "concurrency_conflict"


class LedgerImmutableError(StockError):
    code = "ledger_immutable"
