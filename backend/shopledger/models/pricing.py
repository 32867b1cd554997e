from __future__ import annotations

from datetime import datetime

from ..extensions import db
from shopledger.time_utils import to_utc_z


class WholesalePriceEntry(db.Model):
    """
    Per-customer, per-product price override with a validity window.

    UNIQUENESS: exactly one row per (customer, product). This is an upsert
    target, not a price history.

    STATES (inclusive bounds):
    - active:  valid_from <= now <= valid_to
    - expired: valid_to < now  ("contact the shop" gate, never a price source)
    - pending: valid_from > now
    """
    __tablename__ = "wholesale_price_entries"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "product_id", name="uq_wholesale_customer_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    price = db.Column(db.Integer, nullable=False)
    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_to = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("wholesale_prices", lazy=True))
    product = db.relationship("Product")

    def is_active(self, now: datetime) -> bool:
        return self.valid_from <= now <= self.valid_to

    def is_expired(self, now: datetime) -> bool:
        return self.valid_to < now

    def to_dict(self, now: datetime | None = None) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "price": self.price,
            "valid_from": to_utc_z(self.valid_from),
            "valid_to": to_utc_z(self.valid_to),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if now is not None:
            data["is_active"] = self.is_active(now)
            data["is_expired"] = self.is_expired(now)
        return data


class Promotion(db.Model):
    """
    Time-boxed promotion with per-product quantity tiers.

    A promotion applies at `now` iff is_active and start_date <= now <= end_date.
    """
    __tablename__ = "promotions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    products = db.relationship(
        "PromotionProduct",
        backref="promotion",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def applies_at(self, now: datetime) -> bool:
        return bool(self.is_active) and self.start_date <= now <= self.end_date

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "is_active": self.is_active,
            "products": [p.to_dict() for p in self.products],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PromotionProduct(db.Model):
    __tablename__ = "promotion_products"
    __table_args__ = (
        db.UniqueConstraint("promotion_id", "product_id", name="uq_promotion_products_promo_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    promotion_id = db.Column(db.Integer, db.ForeignKey("promotions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product = db.relationship("Product")
    tiers = db.relationship(
        "PromotionTier",
        backref="promotion_product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="PromotionTier.min_quantity",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "promotion_id": self.promotion_id,
            "product_id": self.product_id,
            "tiers": [t.to_dict() for t in self.tiers],
        }


class PromotionTier(db.Model):
    __tablename__ = "promotion_tiers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    promotion_product_id = db.Column(
        db.Integer, db.ForeignKey("promotion_products.id"), nullable=False, index=True
    )
    min_quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "min_quantity": self.min_quantity,
            "price": self.price,
        }
