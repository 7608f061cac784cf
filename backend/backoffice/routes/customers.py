# Overview: Flask API routes for customers and loyalty points; parses input and returns JSON responses.

# backend/backoffice/routes/customers.py
"""
Customer & loyalty points routes.

SECURITY: All routes require authentication.

Every points change appends a points ledger entry; balances never go
negative (InvalidAdjustment -> 400).
"""
from flask import Blueprint, request, current_app, g

from ..errors import BackofficeError
from ..validation import require_positive_int, require_int, require_amount
from ..decorators import require_auth
from ..services import customer_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")
customers_admin_bp = Blueprint("customers_admin", __name__, url_prefix="/admin/customers")


@customers_bp.post("/lookup")
@require_auth
def lookup_customer_route():
    """Get or create a customer by phone. Body: {"phone", "name"?, "email"?}"""
    payload = request.get_json(silent=True) or {}

    try:
        customer = customer_service.lookup_customer(
            payload.get("phone"),
            name=payload.get("name"),
            email=payload.get("email"),
        )
        return {"success": True, "customer": customer.to_dict()}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to look up customer")
        return {"success": False, "error": "Internal server error"}, 500


@customers_bp.post("/<int:customer_id>/award-points")
@require_auth
def award_points_route(customer_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        points = require_positive_int("points", payload.get("points"))
        order_total = payload.get("order_total")
        if order_total is not None:
            order_total = require_amount("order_total", order_total)
        entry = customer_service.award_points(
            customer_id,
            points=points,
            order_id=payload.get("order_id"),
            order_total=order_total,
            actor=g.actor,
        )
        return {
            "success": True,
            "points_awarded": points,
            "new_balance": entry.points_balance,
            "transaction": entry.to_dict(),
        }
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to award points")
        return {"success": False, "error": "Internal server error"}, 500


@customers_bp.post("/<int:customer_id>/redeem-points")
@require_auth
def redeem_points_route(customer_id: int):
    """1 point = 1 currency unit of discount."""
    payload = request.get_json(silent=True) or {}

    try:
        points = require_positive_int("points_to_redeem", payload.get("points_to_redeem"))
        entry = customer_service.redeem_points(
            customer_id,
            points=points,
            order_id=payload.get("order_id"),
            actor=g.actor,
        )
        return {
            "success": True,
            "points_redeemed": points,
            "discount_amount": points,
            "new_balance": entry.points_balance,
        }
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to redeem points")
        return {"success": False, "error": "Internal server error"}, 500


@customers_admin_bp.get("")
@require_auth
def list_customers_route():
    try:
        customers = customer_service.list_customers()
        return {"success": True, "customers": [c.to_dict() for c in customers]}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return {"success": False, "error": "Internal server error"}, 500


@customers_admin_bp.get("/<int:customer_id>/points")
@require_auth
def points_history_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
        entries = customer_service.list_points_transactions(customer_id)
        return {
            "success": True,
            "customer": customer.to_dict(),
            "transactions": [t.to_dict() for t in entries],
        }
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list points history")
        return {"success": False, "error": "Internal server error"}, 500


@customers_admin_bp.post("/<int:customer_id>/adjust-points")
@require_auth
def adjust_points_route(customer_id: int):
    """Body: {"points_change": int != 0 (either sign), "notes": str?}"""
    payload = request.get_json(silent=True) or {}

    try:
        points_change = require_int("points_change", payload.get("points_change"))
        entry = customer_service.adjust_points(
            customer_id,
            points_change=points_change,
            notes=payload.get("notes"),
            actor=g.actor,
        )
        return {
            "success": True,
            "new_balance": entry.points_balance,
            "transaction": entry.to_dict(),
        }
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust points")
        return {"success": False, "error": "Internal server error"}, 500
