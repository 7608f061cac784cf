# Overview: Flask API routes for admin auth operations; parses input and returns JSON responses.

# backend/backoffice/routes/auth.py
"""
Admin authentication routes (password + TOTP).

Login flow:
1. POST /admin/login {username, password}
   - first login: {"needs2FA": true, "secret", "otpauth_url", "tempToken"}
   - otherwise:   {"require2FA": true, "tempToken"}
2. POST /admin/verify-2fa-setup {username, code, tempToken}   (first login)
   POST /admin/verify-2fa       {username, code, tempToken}   (later logins)
   -> {"success": true, "token": <session token>}
3. Send "Authorization: Bearer <token>" on protected routes.
"""

from flask import Blueprint, request, current_app, g

from ..errors import BackofficeError
from ..services import auth_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/admin")


@auth_bp.post("/login")
def login_route():
    payload = request.get_json(silent=True) or {}
    username = payload.get("username")
    password = payload.get("password")

    if not username or not password:
        return {"success": False, "error": "username and password required"}, 400

    try:
        challenge = auth_service.begin_login(username, password)
        return challenge.to_dict()
    except BackofficeError as e:
        current_app.logger.info("Failed admin login for %s", username)
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to log in")
        return {"success": False, "error": "Internal server error"}, 500


def _second_factor(verify):
    payload = request.get_json(silent=True) or {}
    username = payload.get("username")
    code = payload.get("code")
    temp_token = payload.get("tempToken")

    if not username or not code or not temp_token:
        return {"success": False, "error": "username, code and tempToken required"}, 400

    try:
        token = verify(username, code, temp_token)
        current_app.logger.info("Admin %s logged in", username)
        return {"success": True, "token": token}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to verify 2FA")
        return {"success": False, "error": "Internal server error"}, 500


@auth_bp.post("/verify-2fa-setup")
def verify_2fa_setup_route():
    return _second_factor(auth_service.verify_2fa_setup)


@auth_bp.post("/verify-2fa")
def verify_2fa_route():
    return _second_factor(auth_service.verify_2fa)


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        auth_service.logout(g.session_token)
        return {"success": True}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to log out")
        return {"success": False, "error": "Internal server error"}, 500


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    payload = request.get_json(silent=True) or {}
    current_password = payload.get("currentPassword")
    new_password = payload.get("newPassword")

    if not current_password or not new_password:
        return {"success": False, "error": "currentPassword and newPassword required"}, 400

    try:
        auth_service.change_password(g.current_admin, current_password, new_password)
        return {"success": True, "message": "Password changed successfully"}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change password")
        return {"success": False, "error": "Internal server error"}, 500
