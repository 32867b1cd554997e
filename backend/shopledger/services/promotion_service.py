from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Product, Promotion, PromotionProduct, PromotionTier
from shopledger.time_utils import utcnow, normalize_datetime
from .concurrency import run_in_transaction
from .errors import NotFoundError, ValidationError, InvalidAmountError


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_active(value) -> bool:
    if not isinstance(value, bool):
        raise ValidationError("is_active must be true or false")
    return value


def _parse_name(value) -> str:
    name = value.strip() if isinstance(value, str) else ""
    if not name:
        raise ValidationError("Promotion name is required")
    return name


def _parse_description(value) -> str | None:
    if value is not None and not isinstance(value, str):
        raise ValidationError("description must be a string")
    return value


def _parse_window(data: dict) -> tuple[datetime, datetime]:
    try:
        start = normalize_datetime(data.get("start_date"))
        end = normalize_datetime(data.get("end_date"))
    except ValueError as exc:
        raise ValidationError(str(exc))
    if start is None or end is None:
        raise ValidationError("start_date and end_date are required")
    if end < start:
        raise ValidationError("end_date must not be before start_date")
    return start, end


def _build_products(products: list[dict]) -> list[PromotionProduct]:
    if products is not None and not isinstance(products, list):
        raise ValidationError("products must be a list")
    built = []
    seen: set[int] = set()
    for entry in products or []:
        if not isinstance(entry, dict) or not isinstance(entry.get("tiers") or [], list):
            raise ValidationError("Each promotion product needs a product_id and a list of tiers")
        product_id = entry.get("product_id")
        if not _is_int(product_id):
            raise ValidationError("product_id must be an integer")
        if product_id in seen:
            raise ValidationError(f"Product {product_id} listed twice in promotion")
        seen.add(product_id)
        if db.session.get(Product, product_id) is None:
            raise NotFoundError(f"Product {product_id} not found")

        tiers = []
        min_quantities: set[int] = set()
        for tier in entry.get("tiers") or []:
            if not isinstance(tier, dict):
                raise ValidationError("Each tier needs min_quantity and price")
            min_qty = tier.get("min_quantity")
            price = tier.get("price")
            if not _is_int(min_qty) or min_qty < 1:
                raise ValidationError("Tier min_quantity must be a positive integer")
            if not _is_int(price) or price <= 0:
                raise InvalidAmountError("Tier price must be positive")
            if min_qty in min_quantities:
                raise ValidationError(f"Duplicate tier min_quantity {min_qty} for product {product_id}")
            min_quantities.add(min_qty)
            tiers.append(PromotionTier(min_quantity=min_qty, price=price))

        built.append(PromotionProduct(product_id=product_id, tiers=tiers))
    return built


def list_promotions(active_only: bool = False, now: datetime | None = None) -> list[dict]:
    q = db.session.query(Promotion)
    if active_only:
        now = now or utcnow()
        q = q.filter(
            Promotion.is_active.is_(True),
            Promotion.start_date <= now,
            Promotion.end_date >= now,
        )
    return [p.to_dict() for p in q.order_by(Promotion.created_at.desc(), Promotion.id.desc()).all()]


def get_promotion(promotion_id: int) -> Promotion:
    promo = db.session.get(Promotion, promotion_id)
    if promo is None:
        raise NotFoundError(f"Promotion {promotion_id} not found")
    return promo


def create_promotion(data: dict) -> Promotion:
    """
    Create a promotion with its products and tiers.

    data: name, description?, start_date, end_date, is_active?,
          products: [{product_id, tiers: [{min_quantity, price}]}]
    """
    def _op():
        name = _parse_name(data.get("name"))
        start, end = _parse_window(data)

        promo = Promotion(
            name=name,
            description=_parse_description(data.get("description")),
            start_date=start,
            end_date=end,
            is_active=_parse_active(data.get("is_active", True)),
            products=_build_products(data.get("products")),
        )
        db.session.add(promo)
        return promo

    return run_in_transaction(_op)


def update_promotion(promotion_id: int, data: dict) -> Promotion:
    """Update header fields and replace products/tiers wholesale, in one transaction."""
    def _op():
        promo = get_promotion(promotion_id)

        if "name" in data:
            promo.name = _parse_name(data.get("name"))
        if "description" in data:
            promo.description = _parse_description(data["description"])
        if "start_date" in data or "end_date" in data:
            start, end = _parse_window({
                "start_date": data.get("start_date", promo.start_date),
                "end_date": data.get("end_date", promo.end_date),
            })
            promo.start_date = start
            promo.end_date = end
        if "is_active" in data:
            promo.is_active = _parse_active(data["is_active"])
        if "products" in data:
            promo.products = []
            db.session.flush()
            promo.products = _build_products(data["products"])

        return promo

    return run_in_transaction(_op)


def set_promotion_active(promotion_id: int, is_active: bool) -> Promotion:
    return update_promotion(promotion_id, {"is_active": is_active})


def delete_promotion(promotion_id: int) -> None:
    def _op():
        promo = get_promotion(promotion_id)
        db.session.delete(promo)

    run_in_transaction(_op)


def active_promotion_tiers(product_id: int, now: datetime) -> list[PromotionTier]:
    """All tiers for the product across promotions that apply at `now` (inclusive window)."""
    return (
        db.session.query(PromotionTier)
        .join(PromotionProduct, PromotionTier.promotion_product_id == PromotionProduct.id)
        .join(Promotion, PromotionProduct.promotion_id == Promotion.id)
        .filter(
            PromotionProduct.product_id == product_id,
            Promotion.is_active.is_(True),
            Promotion.start_date <= now,
            Promotion.end_date >= now,
        )
        .order_by(PromotionTier.min_quantity.asc())
        .all()
    )
