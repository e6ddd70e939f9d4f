# Overview: Flask API routes for the factory product catalogue and factory stock edits.

"""
Product routes.

SECURITY: All routes require authentication.
- Reads are open to any authenticated user (shops order from the catalogue)
- Writes and factory stock edits are Admin only
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..errors import RestockError
from ..extensions import db
from ..models import Product, ROLE_ADMIN
from ..services import product_service, stock_ledger_service
from ..validation import (
    PRODUCT_POLICY,
    coerce_bool,
    enforce_rules_product,
    parse_stock_edit,
    validate_payload,
)


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _unexpected(action: str):
    db.session.rollback()
    current_app.logger.exception("Unexpected error while %s", action)
    return jsonify({"error": "internal_error", "message": f"Failed to {action}"}), 500


@products_bp.get("")
@require_auth
def list_products():
    """
    List products with optional pagination.

    Query params:
    - include_inactive: bool (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    try:
        raw = request.args.get("include_inactive")
        result = product_service.list_products(
            include_inactive=coerce_bool(raw, "include_inactive") if raw is not None else False,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except RestockError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.get("/low-stock")
@require_auth
def list_low_stock_products():
    products = product_service.list_low_stock_products()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)})


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    try:
        return jsonify(product_service.get_product(product_id).to_dict())
    except RestockError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_product():
    """
    Create a product.

    Request body:
    {
        "sku": str,
        "name": str,
        "description": str (optional),
        "unit_price_cents": int (optional),
        "total_stock": int (optional, booked as initial stock),
        "min_stock_level": int (optional)
    }
    """
    try:
        patch = validate_payload(
            model=Product, payload=request.get_json(silent=True), policy=PRODUCT_POLICY, partial=False,
        )
        enforce_rules_product(patch)
        product = product_service.create_product(patch=patch, user_id=g.caller.user_id)
        return jsonify(product.to_dict()), 201

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("create product")


@products_bp.patch("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product(product_id: int):
    """Partial update. total_stock is an absolute factory stock edit routed through the ledger."""
    try:
        patch = validate_payload(
            model=Product, payload=request.get_json(silent=True), policy=PRODUCT_POLICY, partial=True,
        )
        enforce_rules_product(patch)
        product = product_service.update_product(product_id=product_id, patch=patch, user_id=g.caller.user_id)
        return jsonify(product.to_dict())

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("update product")


@products_bp.post("/<int:product_id>/stock")
@require_auth
@require_role(ROLE_ADMIN)
def adjust_factory_stock(product_id: int):
    """
    Adjust factory stock.

    Request body (exactly one):
    {
        "delta": int (non-zero),
        "total_stock": int (>= 0, absolute)
        "reason": str (optional)
    }

    Returns:
        200: Updated product
        409: Stock would go negative
    """
    data = request.get_json(silent=True) or {}

    try:
        delta, absolute = parse_stock_edit(data, absolute_key="total_stock")
        reason = data.get("reason") or stock_ledger_service.REASON_MANUAL_ADJUSTMENT
        if delta is not None:
            product = stock_ledger_service.adjust_factory_stock(product_id, delta, reason=reason, caller=g.caller)
        else:
            product = stock_ledger_service.set_factory_stock(product_id, absolute, reason=reason, caller=g.caller)
        return jsonify(product.to_dict())

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("adjust factory stock")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def deactivate_product(product_id: int):
    """Soft delete (is_active=false)."""
    try:
        product = product_service.deactivate_product(product_id=product_id, user_id=g.caller.user_id)
        return jsonify({"message": "Product deactivated successfully", "product": product.to_dict()})

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("deactivate product")


@products_bp.delete("/<int:product_id>/hard")
@require_auth
@require_role(ROLE_ADMIN)
def hard_delete_product(product_id: int):
    """Hard delete; 409 while restock requests or shop inventory reference the product."""
    try:
        return jsonify(product_service.hard_delete_product(product_id=product_id, user_id=g.caller.user_id))

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("delete product")
