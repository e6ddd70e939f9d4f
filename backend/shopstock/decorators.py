# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'caller')


def require_auth(f):
    """
    Require a bearer token and resolve the caller.

    Sets the following Flask g attributes:
    - g.caller: CallerContext (user_id, role, managed_shop_ids)
    - g.token: the raw bearer token (for revocation)

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        caller = session_service.validate_session(token)

        if not caller:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.caller = caller
        g.token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the authenticated caller to hold one of the given roles. Apply after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.caller.role not in roles:
                return jsonify({
                    "error": "forbidden",
                    "message": f"Requires role: {', '.join(roles)}",
                    "role": g.caller.role,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
