# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/backoffice/routes/orders.py
"""
Order routes.

SECURITY: All routes require an authenticated admin session.

Placement is all-or-nothing: a 4xx/5xx response means nothing was persisted
and no stock moved. Loyalty points are credited afterwards, detached from the
request; a points failure never turns a placed order into an error.
"""
from flask import Blueprint, request, current_app, g

from ..errors import BackofficeError
from ..validation import validate_order_request, validate_status, require_positive_int
from ..decorators import require_auth
from ..services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def place_order_route():
    payload = request.get_json(silent=True)

    try:
        order_request = validate_order_request(payload)
        order = order_service.place_order(order_request, actor=g.actor)
        return {
            "success": True,
            "message": "Order created successfully",
            "order": order.to_dict(),
        }, 201
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to place order")
        return {"success": False, "error": "Internal server error"}, 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    status = request.args.get("status")
    limit = request.args.get("limit")

    try:
        if status:
            status = validate_status(status)
        if limit is not None:
            limit = require_positive_int("limit", limit)
        orders = order_service.list_orders(status=status, limit=limit)
        return {"success": True, "orders": [o.to_dict() for o in orders]}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return {"success": False, "error": "Internal server error"}, 500


@orders_bp.get("/<order_id>")
@require_auth
def get_order_route(order_id: str):
    try:
        order = order_service.get_order(order_id)
        return {"success": True, "order": order.to_dict()}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order")
        return {"success": False, "error": "Internal server error"}, 500


@orders_bp.put("/<order_id>/status")
@require_auth
def update_status_route(order_id: str):
    """
    Move an order along its lifecycle.

    Refunding is not a plain status change (stock must come back); use
    POST /api/orders/<order_id>/refund.
    """
    payload = request.get_json(silent=True) or {}

    try:
        new_status = validate_status(payload.get("status"))
        order = order_service.update_order_status(order_id, new_status)
        return {"success": True, "order": order.to_dict()}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return {"success": False, "error": "Internal server error"}, 500


@orders_bp.post("/<order_id>/refund")
@require_auth
def refund_order_route(order_id: str):
    try:
        order = order_service.refund_order(order_id, actor=g.actor)
        return {
            "success": True,
            "message": "Order refunded and stock restored",
            "order": order.to_dict(),
        }
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to refund order")
        return {"success": False, "error": "Internal server error"}, 500
