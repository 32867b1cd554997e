from __future__ import annotations

from flask import Blueprint, current_app, request

from ..services import promotion_service
from ..services.errors import ShopLedgerError, ValidationError
from ..validation import require_json
from .responses import error_response, internal_error, ok

promotions_bp = Blueprint("promotions", __name__, url_prefix="/api/promotions")


@promotions_bp.route("", methods=["GET"])
def list_promotions():
    active_only = request.args.get("active_only", "false").lower() == "true"
    return ok(promotion_service.list_promotions(active_only=active_only))


@promotions_bp.route("/<int:promo_id>", methods=["GET"])
def get_promotion(promo_id: int):
    try:
        return ok(promotion_service.get_promotion(promo_id).to_dict())
    except ShopLedgerError as e:
        return error_response(e)


@promotions_bp.route("", methods=["POST"])
def create_promotion():
    try:
        data = require_json()
        missing = [f for f in ("name", "start_date", "end_date") if f not in data]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        promo = promotion_service.create_promotion(data)
        return ok(promo.to_dict(), 201)

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create promotion")
        return internal_error()


@promotions_bp.route("/<int:promo_id>", methods=["PUT", "PATCH"])
def update_promotion(promo_id: int):
    try:
        promo = promotion_service.update_promotion(promo_id, require_json())
        return ok(promo.to_dict())

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update promotion")
        return internal_error()


@promotions_bp.route("/<int:promo_id>/active", methods=["POST"])
def set_promotion_active(promo_id: int):
    try:
        data = require_json()
        if not isinstance(data.get("is_active"), bool):
            raise ValidationError("is_active must be true or false")
        promo = promotion_service.set_promotion_active(promo_id, data["is_active"])
        return ok(promo.to_dict())

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to toggle promotion")
        return internal_error()


@promotions_bp.route("/<int:promo_id>", methods=["DELETE"])
def delete_promotion(promo_id: int):
    try:
        promotion_service.delete_promotion(promo_id)
        return ok({"id": promo_id})

    except ShopLedgerError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete promotion")
        return internal_error()
