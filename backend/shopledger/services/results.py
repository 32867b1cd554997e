"""
Discriminated results and the unit-of-work boundary.

Every public OrderService / ReconciliationService operation returns a
ServiceResult instead of raising:

    result = order_service.settle_debt("CUSTOMER", 7, 40)
    if result.success:
        result.data            # created/updated record as a dict
    else:
        result.error_code      # e.g. "INVALID_AMOUNT", "PRICE_EXPIRED"

run_unit() is the only place where a unit of work is committed or rolled
back on behalf of those operations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from flask import current_app

from ..extensions import db
from .concurrency import run_in_transaction
from .errors import ShopLedgerError


INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class ServiceResult:
    success: bool
    data: Any = None
    error_code: str | None = None
    error: str | None = None
    details: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: ShopLedgerError) -> "ServiceResult":
        return cls(success=False, error_code=exc.code, error=str(exc), details=dict(exc.details))

    @classmethod
    def internal_error(cls) -> "ServiceResult":
        return cls(success=False, error_code=INTERNAL_ERROR, error="Internal error")

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data}
        body = {"success": False, "error_code": self.error_code, "error": self.error}
        if self.details:
            body["details"] = self.details
        return body


def run_unit(op: Callable[[], Any], *, action: str) -> ServiceResult:
    """
    Run `op` as one atomic unit of work and wrap the outcome.

    - takes the write lock first and commits when op returns
      (concurrency.run_in_transaction); op's return value becomes result.data
    - typed failures come back as a failed result
    - anything else is logged and comes back as INTERNAL_ERROR
    Either way the session has been rolled back.
    """
    try:
        data = run_in_transaction(op)
    except ShopLedgerError as exc:
        return ServiceResult.fail(exc)
    except Exception:
        current_app.logger.exception("Failed to %s", action)
        return ServiceResult.internal_error()
    return ServiceResult.ok(data)


def run_read(op: Callable[[], Any], *, action: str) -> ServiceResult:
    """Read-only counterpart of run_unit: no write lock, no commit."""
    try:
        return ServiceResult.ok(op())
    except ShopLedgerError as exc:
        return ServiceResult.fail(exc)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to %s", action)
        return ServiceResult.internal_error()
