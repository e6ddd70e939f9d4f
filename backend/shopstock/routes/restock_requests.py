# Overview: Flask API routes for the restock request workflow; parses input and returns JSON responses.

"""
Restock request routes.

SECURITY: All routes require authentication.
- Shop owners act on shops they manage
- Listing across all shops, status overrides and hiding are Admin only

Error bodies are {"error": code, "message": ..., **context} with the status
code carried by the raised RestockError.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role
from ..errors import RestockError, ValidationError
from ..extensions import db
from ..models import ROLE_ADMIN
from ..services import restock_service
from ..validation import coerce_bool, coerce_int, parse_restock_create


restock_requests_bp = Blueprint("restock_requests", __name__, url_prefix="/api/restock-requests")


def _unexpected(action: str):
    db.session.rollback()
    current_app.logger.exception("Unexpected error while %s", action)
    return jsonify({"error": "internal_error", "message": f"Failed to {action}"}), 500


def _include_hidden() -> bool:
    raw = request.args.get("include_hidden")
    return coerce_bool(raw, "include_hidden") if raw is not None else False


@restock_requests_bp.route("", methods=["POST"])
@require_auth
def create_restock_request():
    """
    Create a restock request (status: waiting_for_approval).

    Request body:
    {
        "shop_id": int,
        "product_id": int,
        "requested_amount": int (> 0),
        "request_type": "RESTOCK" | "INVENTORY_ADD" (optional),
        "notes": str (optional)
    }

    Returns:
        201: Request created
        400: Invalid request
        403: Caller does not manage the shop
        404: Shop or product not found
    """
    try:
        data = parse_restock_create(request.get_json(silent=True))
        restock = restock_service.create_restock_request(g.caller, **data)
        return jsonify(restock.to_dict(include_relations=True)), 201

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("create restock request")


@restock_requests_bp.route("", methods=["GET"])
@require_auth
@require_role(ROLE_ADMIN)
def list_restock_requests():
    """
    List restock requests across all shops (Admin).

    Query params:
    - include_hidden: bool (optional, default false)
    - status: str (optional; legacy names accepted)
    """
    try:
        requests_ = restock_service.list_restock_requests(
            g.caller,
            restock_service.SCOPE_ALL,
            include_hidden=_include_hidden(),
            status=request.args.get("status"),
        )
        return jsonify({"items": [r.to_dict(include_relations=True) for r in requests_], "count": len(requests_)})

    except RestockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("list restock requests")


@restock_requests_bp.route("/shop/<int:shop_id>", methods=["GET"])
@require_auth
def list_shop_restock_requests(shop_id: int):
    """List restock requests for one shop (Admin or a manager of the shop)."""
    try:
        requests_ = restock_service.list_restock_requests(
            g.caller,
            shop_id,
            include_hidden=_include_hidden(),
            status=request.args.get("status"),
        )
        return jsonify({"items": [r.to_dict(include_relations=True) for r in requests_], "count": len(requests_)})

    except RestockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("list shop restock requests")


@restock_requests_bp.route("/<int:request_id>", methods=["GET"])
@require_auth
def get_restock_request(request_id: int):
    try:
        restock = restock_service.get_restock_request(g.caller, request_id)
        return jsonify(restock.to_dict(include_relations=True))

    except RestockError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("load restock request")


@restock_requests_bp.route("/<int:request_id>/approve", methods=["PATCH"])
@require_auth
def approve_restock_request(request_id: int):
    """
    Approve a request. Checks factory stock, moves nothing.

    Returns:
        200: Approved
        403: Forbidden
        404: Request not found
        409: Invalid state or insufficient factory stock
    """
    try:
        restock = restock_service.approve_restock_request(g.caller, request_id)
        return jsonify(restock.to_dict(include_relations=True)), 200

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("approve restock request")


@restock_requests_bp.route("/<int:request_id>/reject", methods=["PATCH"])
@require_auth
def reject_restock_request(request_id: int):
    """
    Reject a request awaiting approval.

    Request body (optional):
    {
        "notes": str
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        restock = restock_service.reject_restock_request(g.caller, request_id, notes=data.get("notes"))
        return jsonify(restock.to_dict(include_relations=True)), 200

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("reject restock request")


@restock_requests_bp.route("/<int:request_id>/status", methods=["PATCH"])
@require_auth
@require_role(ROLE_ADMIN)
def update_restock_request_status(request_id: int):
    """
    Admin status override.

    Request body:
    {
        "status": str,
        "notes": str (optional)
    }

    A target of "fulfilled" moves stock exactly like the fulfill endpoint.
    """
    data = request.get_json(silent=True) or {}

    try:
        if not data.get("status"):
            raise ValidationError("Missing required field: status", field="status")
        restock = restock_service.update_restock_request_status(
            g.caller, request_id, data["status"], notes=data.get("notes"),
        )
        return jsonify(restock.to_dict(include_relations=True)), 200

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("update restock request status")


@restock_requests_bp.route("/<int:request_id>/fulfill", methods=["POST"])
@require_auth
def fulfill_restock_request(request_id: int):
    """
    Fulfill an approved request: factory stock -n, shop inventory +n.

    Returns:
        200: Fulfilled
        403: Forbidden
        404: Request not found
        409: Not approved, already fulfilled, or insufficient factory stock
    """
    try:
        restock = restock_service.fulfill_restock_request(g.caller, request_id)
        return jsonify(restock.to_dict(include_relations=True)), 200

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("fulfill restock request")


@restock_requests_bp.route("/fulfill", methods=["POST"])
@require_auth
def fulfill_restock_request_for_pair():
    """
    Fulfill the most recent approved request for a (shop, product) pair.

    Request body:
    {
        "shop_id": int,
        "product_id": int
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        missing = [k for k in ("shop_id", "product_id") if data.get(k) is None]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)
        restock = restock_service.fulfill_restock_request_for(
            g.caller,
            coerce_int(data["shop_id"], "shop_id"),
            coerce_int(data["product_id"], "product_id"),
        )
        return jsonify(restock.to_dict(include_relations=True)), 200

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("fulfill restock request")


@restock_requests_bp.route("/<int:request_id>", methods=["DELETE"])
@require_auth
@require_role(ROLE_ADMIN)
def hide_restock_request(request_id: int):
    """Hide a request from default listings. The request itself is kept."""
    try:
        restock = restock_service.hide_restock_request(g.caller, request_id)
        return jsonify(restock.to_dict()), 200

    except RestockError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("hide restock request")
