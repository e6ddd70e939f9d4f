from __future__ import annotations

from flask import Blueprint, jsonify, request, g

from ..decorators import require_auth
from ..errors import RestockError
from ..services import notification_service

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.route("", methods=["GET"])
@require_auth
def list_notifications():
    unread_only = request.args.get("unread_only", "").lower() in {"1", "true", "yes"}
    limit = min(request.args.get("limit", 50, type=int) or 50, 200)
    items = notification_service.list_user_notifications(g.caller.user_id, unread_only=unread_only, limit=limit)
    return jsonify({"items": [n.to_dict() for n in items], "count": len(items)})


@notifications_bp.route("/<int:notification_id>/read", methods=["PATCH"])
@require_auth
def mark_read(notification_id: int):
    try:
        notification = notification_service.mark_notification_read(g.caller.user_id, notification_id)
        return jsonify(notification.to_dict())
    except RestockError as e:
        return jsonify(e.to_dict()), e.status_code
