from __future__ import annotations

from ..extensions import db
from shopledger.time_utils import to_utc_z


ORDER_TYPES = ("SALE", "PURCHASE")
ORDER_STATUSES = ("PENDING", "CONFIRMED", "COMPLETED", "CANCELLED")


class Order(db.Model):
    """
    Sale or purchase order document.

    LIFECYCLE:
    - SALE: created PENDING; stock/debt/cash effects apply on COMPLETED
    - PURCHASE: created COMPLETED; effects apply at creation

    Amounts: total (incl. shipping_fee for purchases) and paid, whole currency units.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_orders_code"),
        db.Index("ix_orders_type_status_created", "type", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable code (e.g., "SO-20261019-001")
    code = db.Column(db.String(64), nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    total = db.Column(db.Integer, nullable=False, default=0)
    paid = db.Column(db.Integer, nullable=False, default=0)
    shipping_fee = db.Column(db.Integer, nullable=False, default=0)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    payment_method = db.Column(db.String(32), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    @property
    def balance_due(self) -> int:
        return (self.total or 0) - (self.paid or 0)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "type": self.type,
            "status": self.status,
            "total": self.total,
            "paid": self.paid,
            "shipping_fee": self.shipping_fee,
            "balance_due": self.balance_due,
            "customer_id": self.customer_id,
            "supplier_id": self.supplier_id,
            "payment_method": self.payment_method,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line item; price is captured at order time, per base unit."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    @property
    def line_total(self) -> int:
        return self.quantity * self.price

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "price": self.price,
            "line_total": self.line_total,
        }
