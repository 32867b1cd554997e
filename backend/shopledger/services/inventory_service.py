# Overview: Service-layer operations for inventory; single writer of stock state.

"""
Inventory invariants (authoritative)

Stock model:
- StockMovement rows are the source of truth; Product.stock is a cache.
- Invariant: Product.stock == SUM(StockMovement.quantity) for the product.
- Every write inserts exactly one movement and applies the same delta to
  Product.stock as an atomic SQL increment, in one transaction.

Signs:
- IN adds the magnitude.
- OUT, LOST, DAMAGED subtract the magnitude.
- ADJUSTMENT takes a signed, non-zero delta from the caller.

Oversell:
- Stock may go negative. A sale never blocks on stock; the negative balance
  is recorded and shows up in the stock summary.

Units of work:
- commit=True  (default): own transaction (write lock, retry, commit).
- commit=False: join the caller's transaction; flush only, the caller
  commits or rolls back everything together.
"""

from __future__ import annotations

from sqlalchemy import func, update

from ..extensions import db
from ..models import Product, StockMovement, STOCK_MOVEMENT_KINDS
from .concurrency import lock_for_update, run_in_transaction
from .errors import InvalidAmountError, NotFoundError, ValidationError


_OUTBOUND_KINDS = ("OUT", "LOST", "DAMAGED")


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def signed_delta(kind: str, magnitude: int) -> int:
    """Translate (kind, magnitude) into the signed stock delta."""
    if kind not in STOCK_MOVEMENT_KINDS:
        raise ValidationError(f"Unknown stock movement kind {kind!r}")
    if not _is_int(magnitude):
        raise InvalidAmountError("quantity must be an integer")

    if kind == "ADJUSTMENT":
        if magnitude == 0:
            raise InvalidAmountError("adjustment quantity must be non-zero")
        return magnitude

    if magnitude <= 0:
        raise InvalidAmountError("quantity must be positive")
    return -magnitude if kind in _OUTBOUND_KINDS else magnitude


def _get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def _apply_stock_movement_inner(
    product_id: int,
    kind: str,
    magnitude: int,
    note: str | None,
    order_id: int | None,
) -> int:
    delta = signed_delta(kind, magnitude)
    product = _get_product(product_id, lock=True)

    db.session.add(StockMovement(
        product_id=product_id,
        kind=kind,
        quantity=delta,
        note=note,
        order_id=order_id,
    ))
    db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + delta)
        .execution_options(synchronize_session=False)
    )
    db.session.flush()
    db.session.refresh(product, attribute_names=["stock"])
    return product.stock


def apply_stock_movement(
    product_id: int,
    kind: str,
    magnitude: int,
    note: str | None = None,
    *,
    order_id: int | None = None,
    commit: bool = True,
) -> int:
    """
    Record a stock movement and update the cached stock. Returns the new stock.

    Raises NotFoundError, InvalidAmountError, ValidationError.
    """
    def _op():
        return _apply_stock_movement_inner(product_id, kind, magnitude, note, order_id)

    if not commit:
        return _op()
    return run_in_transaction(_op)


def set_unit_cost(product_id: int, cost: int, *, commit: bool = True) -> Product:
    """Last-cost costing: a purchase receipt overwrites the product's cost."""
    if not _is_int(cost) or cost < 0:
        raise InvalidAmountError("cost must be a non-negative integer")

    def _op():
        product = _get_product(product_id, lock=True)
        product.cost = cost
        db.session.flush()
        return product

    if not commit:
        return _op()
    return run_in_transaction(_op)


def ledger_stock(product_id: int) -> int:
    """Stock derived from the movement history (source of truth)."""
    total = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity), 0)
    ).filter(StockMovement.product_id == product_id).scalar()
    return int(total or 0)


def list_stock_movements(product_id: int, limit: int = 200) -> list[dict]:
    _get_product(product_id)
    rows = (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
    return [r.to_dict() for r in rows]


def get_stock_summary(product_id: int) -> dict:
    product = _get_product(product_id)
    from_ledger = ledger_stock(product_id)
    return {
        "product_id": product.id,
        "sku": product.sku,
        "name": product.name,
        "unit": product.unit,
        "cached_stock": product.stock,
        "ledger_stock": from_ledger,
        "drift": product.stock - from_ledger,
        "is_negative": product.stock < 0,
        "cost": product.cost,
    }
