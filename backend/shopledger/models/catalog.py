from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from shopledger.time_utils import to_utc_z


STOCK_MOVEMENT_KINDS = ("IN", "OUT", "LOST", "DAMAGED", "ADJUSTMENT")


class Product(db.Model):
    """
    Product master data.

    STOCK DESIGN DECISION:
    Product.stock is a CACHED counter. The source of truth is the signed sum
    of StockMovement.quantity for the product. Only inventory_service writes
    it, always in the same transaction as the movement row, and always as an
    atomic SQL increment.

    UNITS:
    - unit: base unit of measure (stock, quantities and prices are per base unit)
    - sale_unit / sale_ratio: optional alternate unit, 1 sale unit = sale_ratio base units
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    unit = db.Column(db.String(32), nullable=False, default="kg")
    sale_unit = db.Column(db.String(32), nullable=True)
    sale_ratio = db.Column(db.Integer, nullable=False, default=1)

    # Authoritative storage in whole currency units (VND has no minor unit)
    cost = db.Column(db.Integer, nullable=False, default=0)
    price = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    price_tiers = db.relationship(
        "ProductPriceTier",
        backref="product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ProductPriceTier.min_quantity",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "unit": self.unit,
            "sale_unit": self.sale_unit,
            "sale_ratio": self.sale_ratio,
            "cost": self.cost,
            "price": self.price,
            "stock": self.stock,
            "is_active": self.is_active,
            "price_tiers": [t.to_dict() for t in self.price_tiers],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductPriceTier(db.Model):
    """Wholesale quantity tier: min_quantity base units or more sell at price."""
    __tablename__ = "product_price_tiers"
    __table_args__ = (
        db.UniqueConstraint("product_id", "min_quantity", name="uq_price_tiers_product_min_qty"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    min_quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "min_quantity": self.min_quantity,
            "price": self.price,
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    KINDS:
    - IN: goods received (positive)
    - OUT: goods sold/issued (negative)
    - LOST, DAMAGED: shrink (negative)
    - ADJUSTMENT: signed correction

    IMMUTABLE: Rows are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)  # signed delta
    note = db.Column(db.String(255), nullable=True)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "kind": self.kind,
            "quantity": self.quantity,
            "note": self.note,
            "order_id": self.order_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class AppendOnlyViolation(RuntimeError):
    """Raised when code tries to rewrite ledger history."""


def _reject_mutation(mapper, connection, target):
    raise AppendOnlyViolation(f"{type(target).__name__} rows are append-only")


event.listen(StockMovement, "before_update", _reject_mutation)
event.listen(StockMovement, "before_delete", _reject_mutation)
