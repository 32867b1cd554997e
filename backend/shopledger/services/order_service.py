# Overview: Service-layer operations for orders; composes pricing, inventory and debt into atomic units.

"""
Order settlement (authoritative)

Every public function returns a ServiceResult and runs as ONE unit of work
(results.run_unit): either every row it touches is committed or none is.

Sale orders:
- create: validated against the price resolver, persisted PENDING, no
  stock/cash/debt effect yet.
- PENDING -> CONFIRMED, PENDING|CONFIRMED -> CANCELLED, CONFIRMED -> COMPLETED.
- COMPLETED is where effects happen: OUT per item, INCOME for the paid part,
  total - paid accrued to the customer.

Purchase orders:
- born COMPLETED: IN per item + last-cost update, EXPENSE for the paid part,
  total - paid accrued to the supplier.
- total = sum(quantity * price) + shipping_fee.
- COMPLETED -> CANCELLED reverses the receipt in one unit: OUT per item,
  the unpaid part released from the supplier, INCOME refund for the paid part.
  Unit cost is left as it was.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Order, OrderItem, Product, ORDER_STATUSES
from shopledger.time_utils import utcnow
from .concurrency import lock_for_update
from .debt_service import (
    PARTY_CUSTOMER,
    PARTY_SUPPLIER,
    accrue_debt,
    apply_cash_movement,
    cash_on_hand,
    get_counterparty,
    release_debt,
)
from .document_service import PURCHASE_ORDER_PREFIX, SALE_ORDER_PREFIX, generate_code
from .errors import (
    CustomerRequiredError,
    InvalidAmountError,
    InvalidStatusTransitionError,
    NotFoundError,
    PriceExpiredError,
    SupplierRequiredError,
    ValidationError,
)
from .inventory_service import apply_stock_movement, set_unit_cost
from .notification_service import notify_order_created
from .pricing_service import quote_price
from .results import ServiceResult, run_read, run_unit


SALE = "SALE"
PURCHASE = "PURCHASE"

# target status -> statuses it may be reached from
_SALE_TRANSITIONS = {
    "CONFIRMED": ("PENDING",),
    "CANCELLED": ("PENDING", "CONFIRMED"),
    "COMPLETED": ("CONFIRMED",),
}
_PURCHASE_TRANSITIONS = {
    "CANCELLED": ("COMPLETED",),
}


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _load_lines(lines, *, purchase: bool) -> list[tuple[Product, int, int | None]]:
    """Validate raw lines and load their products. Price may be None on sales (resolved later)."""
    if not lines:
        raise ValidationError("Order needs at least one line")

    parsed = []
    for index, line in enumerate(lines):
        product_id = line.get("product_id")
        quantity = line.get("quantity")
        price = line.get("price")

        if not _is_int(quantity) or quantity <= 0:
            raise InvalidAmountError("quantity must be a positive integer", details={"line": index})
        if price is None and purchase:
            raise InvalidAmountError("price is required on purchase lines", details={"line": index})
        if price is not None:
            if not _is_int(price) or price < 0 or (purchase and price == 0):
                raise InvalidAmountError(
                    "price must be a positive integer" if purchase else "price must be a non-negative integer",
                    details={"line": index},
                )

        product = db.session.get(Product, product_id) if product_id is not None else None
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", details={"line": index})
        parsed.append((product, quantity, price))
    return parsed


def _validate_paid(paid, total: int) -> int:
    if paid is None:
        return 0
    if not _is_int(paid) or paid < 0 or paid > total:
        raise InvalidAmountError(
            "paid amount must be between 0 and the order total",
            details={"paid": paid, "total": total},
        )
    return paid


def create_sale_order(
    customer_id: int | None,
    lines: list[dict],
    paid_amount: int = 0,
    payment_method: str | None = None,
    note: str | None = None,
    now: datetime | None = None,
) -> ServiceResult:
    """
    Persist a PENDING sale order.

    Each line is checked against the price resolver. A line whose customer
    price has expired, or which would sell at 0, fails the whole order with
    PRICE_EXPIRED. A line without a price takes the resolved one.
    """
    def _op():
        customer = get_counterparty(PARTY_CUSTOMER, customer_id) if customer_id is not None else None
        parsed = _load_lines(lines, purchase=False)

        items = []
        total = 0
        for product, quantity, price in parsed:
            quote = quote_price(product, customer, quantity, now)
            if price is None:
                price = quote.unit_price
            if quote.is_expired or price == 0:
                raise PriceExpiredError(
                    f"Price for {product.name} has expired, contact the shop",
                    details={"product_id": product.id, "source": quote.source},
                )
            items.append(OrderItem(product_id=product.id, quantity=quantity, price=price))
            total += quantity * price

        paid = _validate_paid(paid_amount, total)
        order = Order(
            code=generate_code(SALE_ORDER_PREFIX, now=now),
            type=SALE,
            status="PENDING",
            total=total,
            paid=paid,
            customer_id=customer.id if customer is not None else None,
            payment_method=payment_method,
            note=note,
            items=items,
        )
        db.session.add(order)
        db.session.flush()
        return order.to_dict()

    result = run_unit(_op, action="create sale order")
    if result.success:
        notify_order_created(result.data)
    return result


def create_purchase_order(
    supplier_id: int | None,
    lines: list[dict],
    paid_amount: int = 0,
    shipping_fee: int = 0,
    payment_method: str | None = None,
    note: str | None = None,
) -> ServiceResult:
    """Receive goods from a supplier in one unit: order, stock IN, cost, debt and cash."""
    def _op():
        supplier = get_counterparty(PARTY_SUPPLIER, supplier_id) if supplier_id is not None else None
        fee = shipping_fee or 0
        if not _is_int(fee) or fee < 0:
            raise InvalidAmountError("shipping_fee must be a non-negative integer")

        parsed = _load_lines(lines, purchase=True)
        total = sum(quantity * price for _, quantity, price in parsed) + fee
        paid = _validate_paid(paid_amount, total)
        due = total - paid
        if due > 0 and supplier is None:
            raise SupplierRequiredError(
                "Unpaid purchase needs a supplier to owe",
                details={"total": total, "paid": paid},
            )

        order = Order(
            code=generate_code(PURCHASE_ORDER_PREFIX),
            type=PURCHASE,
            status="COMPLETED",
            total=total,
            paid=paid,
            shipping_fee=fee,
            supplier_id=supplier.id if supplier is not None else None,
            payment_method=payment_method,
            note=note,
            completed_at=utcnow(),
            items=[OrderItem(product_id=p.id, quantity=q, price=price) for p, q, price in parsed],
        )
        db.session.add(order)
        db.session.flush()

        for product, quantity, price in parsed:
            apply_stock_movement(
                product.id, "IN", quantity, f"Purchase {order.code}", order_id=order.id, commit=False
            )
            set_unit_cost(product.id, price, commit=False)

        if due > 0:
            accrue_debt(supplier, due, commit=False)
        if paid > 0:
            apply_cash_movement(
                "EXPENSE",
                paid,
                supplier,
                f"Purchase {order.code}",
                order_id=order.id,
                payment_method=payment_method,
                commit=False,
            )
        return order.to_dict()

    return run_unit(_op, action="create purchase order")


def _complete_sale(order: Order) -> None:
    due = order.balance_due
    customer = order.customer
    if due > 0 and customer is None:
        raise CustomerRequiredError(
            "Sale on credit needs a customer",
            details={"order_id": order.id, "balance_due": due},
        )

    for item in order.items:
        apply_stock_movement(
            item.product_id, "OUT", item.quantity, f"Sale {order.code}", order_id=order.id, commit=False
        )
    if order.paid > 0:
        apply_cash_movement(
            "INCOME",
            order.paid,
            customer,
            f"Sale {order.code}",
            order_id=order.id,
            payment_method=order.payment_method,
            commit=False,
        )
    if due > 0:
        accrue_debt(customer, due, commit=False)
    order.completed_at = utcnow()


def _cancel_purchase(order: Order) -> None:
    supplier = order.supplier
    for item in order.items:
        apply_stock_movement(
            item.product_id, "OUT", item.quantity, f"Cancel purchase {order.code}", order_id=order.id, commit=False
        )
    if order.balance_due > 0:
        release_debt(supplier, order.balance_due, commit=False)
    if order.paid > 0:
        apply_cash_movement(
            "INCOME",
            order.paid,
            supplier,
            f"Refund purchase {order.code}",
            order_id=order.id,
            payment_method=order.payment_method,
            commit=False,
        )


def update_order_status(order_id: int, status: str, paid_amount: int | None = None) -> ServiceResult:
    """
    Move an order along its lifecycle.

    Sale orders follow PENDING -> CONFIRMED -> COMPLETED (or CANCELLED);
    purchase orders can only be cancelled, which reverses their receipt.
    paid_amount is only accepted with COMPLETED and replaces the order's paid
    amount before the effects are applied.
    """
    def _op():
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Unknown order status {status!r}")
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")

        details = {"order_id": order.id, "from": order.status, "to": status}
        transitions = _SALE_TRANSITIONS if order.type == SALE else _PURCHASE_TRANSITIONS
        if order.status not in transitions.get(status, ()):
            raise InvalidStatusTransitionError(
                f"Cannot move order from {order.status} to {status}", details=details
            )

        if paid_amount is not None:
            if status != "COMPLETED":
                raise ValidationError("paid_amount can only be set when completing an order")
            order.paid = _validate_paid(paid_amount, order.total)

        if status == "COMPLETED":
            _complete_sale(order)
        elif order.type == PURCHASE:
            _cancel_purchase(order)
        order.status = status
        db.session.flush()
        return order.to_dict()

    return run_unit(_op, action="update order status")


def settle_debt(
    party_type: str,
    counterparty_id: int,
    amount: int,
    description: str | None = None,
    payment_method: str | None = None,
) -> ServiceResult:
    """Collect from a customer (DEBT_COLLECTION) or pay a supplier (DEBT_PAYMENT)."""
    def _op():
        party = get_counterparty(party_type, counterparty_id)
        kind = "DEBT_COLLECTION" if party_type == PARTY_CUSTOMER else "DEBT_PAYMENT"
        debt = apply_cash_movement(
            kind,
            amount,
            party,
            description,
            payment_method=payment_method,
            commit=False,
        )
        return {
            "party_type": party_type,
            "counterparty_id": party.id,
            "kind": kind,
            "amount": amount,
            "debt": debt,
        }

    return run_unit(_op, action="settle debt")


def record_cash_movement(
    kind: str,
    amount: int,
    description: str | None = None,
    payment_method: str | None = None,
) -> ServiceResult:
    """Manual INCOME / EXPENSE entry with no counterparty effect."""
    def _op():
        if kind not in ("INCOME", "EXPENSE"):
            raise ValidationError("Only INCOME or EXPENSE can be recorded manually")
        apply_cash_movement(kind, amount, None, description, payment_method=payment_method, commit=False)
        return {"kind": kind, "amount": amount, "cash_on_hand": cash_on_hand()}

    return run_unit(_op, action="record cash movement")


def adjust_stock(product_id: int, kind: str, quantity: int, note: str | None = None) -> ServiceResult:
    def _op():
        stock = apply_stock_movement(product_id, kind, quantity, note, commit=False)
        return {"product_id": product_id, "kind": kind, "quantity": quantity, "stock": stock}

    return run_unit(_op, action="adjust stock")


def get_order(order_id: int) -> ServiceResult:
    def _op():
        order = db.session.get(Order, order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order.to_dict()

    return run_read(_op, action="load order")


def list_orders(
    order_type: str | None = None,
    status: str | None = None,
    supplier_id: int | None = None,
    customer_id: int | None = None,
    limit: int = 100,
) -> ServiceResult:
    def _op():
        q = db.session.query(Order)
        if order_type is not None:
            if order_type not in (SALE, PURCHASE):
                raise ValidationError(f"Unknown order type {order_type!r}")
            q = q.filter(Order.type == order_type)
        if status is not None:
            if status not in ORDER_STATUSES:
                raise ValidationError(f"Unknown order status {status!r}")
            q = q.filter(Order.status == status)
        if supplier_id is not None:
            q = q.filter(Order.supplier_id == supplier_id)
        if customer_id is not None:
            q = q.filter(Order.customer_id == customer_id)
        rows = q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
        return [o.to_dict(include_items=False) for o in rows]

    return run_read(_op, action="list orders")
