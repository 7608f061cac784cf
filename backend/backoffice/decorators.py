# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_auth(f):
    """
    Require a fully authenticated admin session (password + TOTP).

    Sets on Flask g:
    - g.current_admin: username of the authenticated admin
    - g.actor: same value, passed into services for ledger created_by
    - g.session_token: the bearer token (used by logout)

    SECURITY: Returns 401 if:
    - No Authorization header
    - Unknown, expired, or not-yet-verified (pending 2FA) token
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return jsonify({"success": False, "error": "Authentication required", "code": "AuthError"}), 401

        record = session_service.validate_session(token)
        if record is None:
            return jsonify({"success": False, "error": "Invalid or expired token", "code": "AuthError"}), 401

        g.current_admin = record.username
        g.actor = record.username
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function
