"""
Typed failures raised inside a unit of work.

Every error carries a stable `code` that survives the unit-of-work boundary
(see results.run_unit) and reaches the caller in a failed ServiceResult.
Message text is for logs and operators; screens render their own wording
from `code`.
"""


class ShopLedgerError(Exception):
    """Base class for expected, typed failures."""
    code = "ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(ShopLedgerError):
    """Referenced product, counterparty, order, promotion or price entry does not exist."""
    code = "NOT_FOUND"


class InvalidAmountError(ShopLedgerError):
    """Non-positive amount where a positive amount is required (or an out-of-range amount)."""
    code = "INVALID_AMOUNT"


class ConflictError(ShopLedgerError):
    """Uniqueness violation, e.g. creating a second price entry for a (customer, product) pair."""
    code = "CONFLICT"


class PriceExpiredError(ShopLedgerError):
    """The customer's wholesale price has expired; the order must not proceed."""
    code = "PRICE_EXPIRED"


class CounterpartyRequiredError(ShopLedgerError):
    """Credit given or taken with nobody to attribute the debt to."""
    code = "COUNTERPARTY_REQUIRED"


class SupplierRequiredError(CounterpartyRequiredError):
    code = "SUPPLIER_REQUIRED"


class CustomerRequiredError(CounterpartyRequiredError):
    code = "CUSTOMER_REQUIRED"


class ConcurrencyConflictError(ShopLedgerError):
    """Lock or serialization failure that persisted through retries. Caller should retry."""
    code = "CONCURRENCY_CONFLICT"


class InvalidStatusTransitionError(ShopLedgerError):
    code = "INVALID_STATUS_TRANSITION"


class ValidationError(ShopLedgerError):
    """Malformed request: unknown kind, missing field, bad date range."""
    code = "INVALID_REQUEST"
