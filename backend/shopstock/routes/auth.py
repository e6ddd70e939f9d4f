# Overview: Flask API routes for session operations.

from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_auth
from ..extensions import db
from ..services import session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the bearer token used for this request."""
    try:
        revoked = session_service.revoke_session(g.token)
        db.session.commit()
        if not revoked:
            return jsonify({"error": "Invalid or expired token"}), 401

        current_app.logger.info("User %s logged out", g.caller.user_id)
        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "internal_error", "message": "Failed to logout"}), 500
