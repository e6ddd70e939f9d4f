# Overview: Flask API routes for per-shop inventory.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..errors import RestockError
from ..extensions import db
from ..models import ShopInventory
from ..services import shop_inventory_service
from ..validation import (
    SHOP_INVENTORY_POLICY,
    coerce_bool,
    coerce_int,
    enforce_rules_shop_inventory,
    validate_payload,
)


shop_inventory_bp = Blueprint("shop_inventory", __name__, url_prefix="/api/shops")


@shop_inventory_bp.get("/inventory/low-stock")
@require_auth
def list_low_stock_inventory():
    """Rows at or below their effective threshold. Optional ?shop_id= narrows to one shop."""
    try:
        raw = request.args.get("shop_id")
        items = shop_inventory_service.list_low_stock_inventory(
            g.caller,
            coerce_int(raw, "shop_id") if raw is not None else None,
        )
        return jsonify({"items": items, "count": len(items)})
    except RestockError as e:
        return jsonify(e.to_dict()), e.status_code


@shop_inventory_bp.get("/<int:shop_id>/inventory")
@require_auth
def list_shop_inventory(shop_id: int):
    try:
        raw = request.args.get("include_inactive")
        items = shop_inventory_service.list_shop_inventory(
            g.caller,
            shop_id,
            include_inactive=coerce_bool(raw, "include_inactive") if raw is not None else False,
        )
        return jsonify({"items": items, "count": len(items)})
    except RestockError as e:
        return jsonify(e.to_dict()), e.status_code


@shop_inventory_bp.patch("/<int:shop_id>/inventory/<int:product_id>")
@require_auth
def update_shop_inventory(shop_id: int, product_id: int):
    """
    Update a shop's inventory row.

    Request body (any subset):
    {
        "current_stock": int (>= 0, physical count),
        "min_stock_per_item": int | null,
        "low_stock_alerts_enabled": bool,
        "is_active": bool
    }
    """
    try:
        patch = validate_payload(
            model=ShopInventory,
            payload=request.get_json(silent=True),
            policy=SHOP_INVENTORY_POLICY,
            partial=True,
        )
        enforce_rules_shop_inventory(patch)
        inventory = shop_inventory_service.update_shop_inventory(g.caller, shop_id, product_id, patch)
        return jsonify(inventory.to_dict())

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update shop %s inventory for product %s", shop_id, product_id)
        return jsonify({"error": "internal_error", "message": "Failed to update shop inventory"}), 500


@shop_inventory_bp.delete("/<int:shop_id>/inventory/<int:product_id>")
@require_auth
def remove_product_from_shop(shop_id: int, product_id: int):
    try:
        inventory = shop_inventory_service.remove_product_from_shop(g.caller, shop_id, product_id)
        return jsonify({"message": "Product removed from shop successfully", "inventory": inventory.to_dict()})
    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
