"""
Unit price resolution and wholesale price-entry administration.

Price selection (highest precedence first):
1. Active promotion tier: largest min_quantity <= quantity across
   promotions that apply at `now`.
2. Wholesale quantity tier: only when the customer holds an ACTIVE
   wholesale entry for the product; largest product tier min_quantity <= quantity.
3. Wholesale flat price of that active entry.
4. Retail Product.price.

Expiry gate:
- An EXPIRED wholesale entry with no qualifying promotion tier resolves to 0
  (source EXPIRED). Callers must refuse to transact at that price.
- A PENDING entry (valid_from in the future) is ignored; retail applies.

All prices are per base unit. Tier bounds are inclusive.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Product, WholesalePriceEntry
from shopledger.time_utils import utcnow, normalize_datetime
from .concurrency import run_in_transaction
from .errors import ConflictError, InvalidAmountError, NotFoundError, ValidationError
from .promotion_service import active_promotion_tiers


SOURCE_PROMOTION = "PROMOTION"
SOURCE_WHOLESALE_TIER = "WHOLESALE_TIER"
SOURCE_WHOLESALE = "WHOLESALE"
SOURCE_RETAIL = "RETAIL"
SOURCE_EXPIRED = "EXPIRED"

MODE_CREATE = "CREATE"
MODE_REPLACE = "REPLACE"


@dataclass(frozen=True)
class PriceQuote:
    unit_price: int
    source: str
    tier_min_quantity: int | None = None

    @property
    def is_expired(self) -> bool:
        return self.source == SOURCE_EXPIRED

    def to_dict(self) -> dict:
        return {
            "unit_price": self.unit_price,
            "source": self.source,
            "tier_min_quantity": self.tier_min_quantity,
        }


def _best_tier(tiers, quantity: int):
    best = None
    for tier in tiers:
        if tier.min_quantity <= quantity and (best is None or tier.min_quantity > best.min_quantity):
            best = tier
    return best


def select_unit_price(
    product: Product,
    quantity: int,
    now: datetime,
    *,
    entry: WholesalePriceEntry | None = None,
    promotion_tiers=(),
) -> PriceQuote:
    """Pure selection over already-loaded rows. No database access."""
    promo = _best_tier(promotion_tiers, quantity)
    if promo is not None:
        return PriceQuote(promo.price, SOURCE_PROMOTION, promo.min_quantity)

    if entry is not None:
        if entry.is_expired(now):
            return PriceQuote(0, SOURCE_EXPIRED)
        if entry.is_active(now):
            tier = _best_tier(product.price_tiers, quantity)
            if tier is not None:
                return PriceQuote(tier.price, SOURCE_WHOLESALE_TIER, tier.min_quantity)
            return PriceQuote(entry.price, SOURCE_WHOLESALE)

    return PriceQuote(product.price, SOURCE_RETAIL)


def get_price_entry(customer_id: int, product_id: int) -> WholesalePriceEntry | None:
    return (
        db.session.query(WholesalePriceEntry)
        .filter_by(customer_id=customer_id, product_id=product_id)
        .one_or_none()
    )


def quote_price(
    product: Product,
    customer: Customer | None,
    quantity: int,
    now: datetime | None = None,
) -> PriceQuote:
    """Load the pricing inputs for (product, customer) and select the unit price."""
    if not isinstance(quantity, int) or quantity <= 0:
        raise InvalidAmountError("quantity must be a positive integer")
    now = now or utcnow()

    entry = get_price_entry(customer.id, product.id) if customer is not None else None
    return select_unit_price(
        product,
        quantity,
        now,
        entry=entry,
        promotion_tiers=active_promotion_tiers(product.id, now),
    )


def resolve_price(product: Product, customer: Customer | None, quantity: int, now: datetime | None = None) -> int:
    return quote_price(product, customer, quantity, now).unit_price


def to_base_quantity(product: Product, sale_quantity: int) -> int:
    return sale_quantity * (product.sale_ratio or 1)


def price_per_sale_unit(product: Product, unit_price: int) -> int:
    return unit_price * (product.sale_ratio or 1)


# ---------------------------------------------------------------------------
# Wholesale price entries
# ---------------------------------------------------------------------------

def _require_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def _validate_entry(price, valid_from, valid_to) -> tuple[datetime, datetime]:
    if not isinstance(price, int) or isinstance(price, bool) or price <= 0:
        raise InvalidAmountError("price must be a positive integer")
    try:
        valid_from = normalize_datetime(valid_from) or utcnow()
        valid_to = normalize_datetime(valid_to)
    except ValueError as exc:
        raise ValidationError(str(exc))
    if valid_to is None:
        raise ValidationError("valid_to is required")
    if valid_to < valid_from:
        raise ValidationError("valid_to must not be before valid_from")
    return valid_from, valid_to


def _put_entry(customer_id, product_id, price, valid_from, valid_to, mode) -> WholesalePriceEntry:
    """Write one entry inside the current transaction (no commit)."""
    if mode not in (MODE_CREATE, MODE_REPLACE):
        raise ValidationError(f"Unknown mode {mode!r}")
    _require_customer(customer_id)
    _require_product(product_id)
    valid_from, valid_to = _validate_entry(price, valid_from, valid_to)

    if mode == MODE_REPLACE:
        entry = get_price_entry(customer_id, product_id)
        if entry is not None:
            entry.price = price
            entry.valid_from = valid_from
            entry.valid_to = valid_to
            db.session.flush()
            return entry

    entry = WholesalePriceEntry(
        customer_id=customer_id,
        product_id=product_id,
        price=price,
        valid_from=valid_from,
        valid_to=valid_to,
    )
    try:
        with db.session.begin_nested():
            db.session.add(entry)
    except IntegrityError:
        raise ConflictError(
            "Price entry already exists for this customer and product",
            details={"customer_id": customer_id, "product_id": product_id},
        )
    return entry


def create_or_replace_price_entry(
    customer_id: int,
    product_id: int,
    price: int,
    valid_to,
    valid_from=None,
    mode: str = MODE_CREATE,
) -> WholesalePriceEntry:
    """
    Tagged upsert.

    CREATE fails with ConflictError when the (customer, product) pair already
    has an entry; the unique constraint decides, not a prior read.
    REPLACE creates or overwrites.
    """
    def _op():
        entry = _put_entry(customer_id, product_id, price, valid_from, valid_to, mode)
        return entry

    return run_in_transaction(_op)


def update_price_entry(entry_id: int, price: int, valid_from=None, valid_to=None) -> WholesalePriceEntry:
    def _op():
        entry = db.session.get(WholesalePriceEntry, entry_id)
        if entry is None:
            raise NotFoundError(f"Price entry {entry_id} not found")
        new_from, new_to = _validate_entry(
            price,
            valid_from if valid_from is not None else entry.valid_from,
            valid_to if valid_to is not None else entry.valid_to,
        )
        entry.price = price
        entry.valid_from = new_from
        entry.valid_to = new_to
        return entry

    return run_in_transaction(_op)


def delete_price_entry(entry_id: int) -> None:
    def _op():
        entry = db.session.get(WholesalePriceEntry, entry_id)
        if entry is None:
            raise NotFoundError(f"Price entry {entry_id} not found")
        db.session.delete(entry)

    run_in_transaction(_op)


def list_price_entries(customer_id: int, now: datetime | None = None) -> list[dict]:
    _require_customer(customer_id)
    now = now or utcnow()
    rows = (
        db.session.query(WholesalePriceEntry)
        .filter_by(customer_id=customer_id)
        .order_by(WholesalePriceEntry.product_id.asc())
        .all()
    )
    return [r.to_dict(now=now) for r in rows]


def _margin_price(cost: int, margin_percent) -> int:
    return int(round(cost * (1 + margin_percent / 100)))


def apply_profit_margin(customer_id: int, product_id: int, margin_percent, valid_to, valid_from=None) -> WholesalePriceEntry:
    """Set the customer's price to cost marked up by margin_percent (REPLACE semantics)."""
    def _op():
        product = _require_product(product_id)
        entry = _put_entry(
            customer_id,
            product_id,
            _margin_price(product.cost, margin_percent),
            valid_from,
            valid_to,
            MODE_REPLACE,
        )
        return entry

    return run_in_transaction(_op)


def apply_profit_margin_all(customer_id: int, margin_percent, valid_to, valid_from=None) -> int:
    """Apply the margin to every active product with a positive cost. Returns the number of entries written."""
    def _op():
        _require_customer(customer_id)
        products = (
            db.session.query(Product)
            .filter(Product.is_active.is_(True), Product.cost > 0)
            .order_by(Product.id.asc())
            .all()
        )
        for product in products:
            _put_entry(
                customer_id,
                product.id,
                _margin_price(product.cost, margin_percent),
                valid_from,
                valid_to,
                MODE_REPLACE,
            )
        return len(products)

    return run_in_transaction(_op)


def copy_price_table(from_customer_id: int, to_customer_id: int) -> int:
    """Replace the target customer's price table with a copy of the source's."""
    if from_customer_id == to_customer_id:
        raise ValidationError("Source and target customer must differ")

    def _op():
        _require_customer(from_customer_id)
        _require_customer(to_customer_id)
        source = db.session.query(WholesalePriceEntry).filter_by(customer_id=from_customer_id).all()
        if not source:
            raise NotFoundError(f"Customer {from_customer_id} has no price entries")

        db.session.query(WholesalePriceEntry).filter_by(customer_id=to_customer_id).delete(
            synchronize_session=False
        )
        for row in source:
            db.session.add(WholesalePriceEntry(
                customer_id=to_customer_id,
                product_id=row.product_id,
                price=row.price,
                valid_from=row.valid_from,
                valid_to=row.valid_to,
            ))
        return len(source)

    return run_in_transaction(_op)
