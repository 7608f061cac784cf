# backend/backoffice/routes/inventory.py
"""
Inventory routes.

SECURITY: All routes require authentication.

Every stock change made here is a ledger entry (restock or adjustment) with
the admin's username as created_by. Stock is never overwritten.
"""
from flask import Blueprint, request, current_app, g

from ..errors import BackofficeError, ValidationError
from ..validation import require_positive_int, require_int
from ..decorators import require_auth
from ..services import inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/low-stock")
@require_auth
def low_stock_route():
    try:
        rows = inventory_service.list_low_stock()
        return {"success": True, "variants": rows}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return {"success": False, "error": "Internal server error"}, 500


@inventory_bp.get("/out-of-stock")
@require_auth
def out_of_stock_route():
    try:
        rows = inventory_service.list_out_of_stock()
        return {"success": True, "variants": rows}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list out of stock")
        return {"success": False, "error": "Internal server error"}, 500


@inventory_bp.post("/restock")
@require_auth
def restock_route():
    """
    Add stock to a variant.

    Body: {"variant_id": int, "quantity": int > 0, "notes": str?}
    """
    payload = request.get_json(silent=True) or {}

    try:
        variant_id = require_positive_int("variant_id", payload.get("variant_id"))
        quantity = require_positive_int("quantity", payload.get("quantity"))
        result = inventory_service.restock(
            variant_id,
            quantity,
            note=payload.get("notes") or "Manual restock",
            actor=g.actor,
        )
        return {
            "success": True,
            "message": f"Added {quantity} units to stock",
            "previous_stock": result.previous_quantity,
            "new_stock": result.new_quantity,
            "transaction": result.transaction.to_dict(),
        }
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to restock")
        return {"success": False, "error": "Internal server error"}, 500


@inventory_bp.post("/adjust")
@require_auth
def adjust_route():
    """
    Signed correction (shrink, recount, damage).

    Body: {"variant_id": int, "quantity_change": int != 0, "notes": str}
    Rejected with InvalidAdjustment if stock would go below zero.
    """
    payload = request.get_json(silent=True) or {}

    try:
        variant_id = require_positive_int("variant_id", payload.get("variant_id"))
        delta = require_int("quantity_change", payload.get("quantity_change"))
        if delta == 0:
            raise ValidationError("quantity_change must be non-zero")
        result = inventory_service.adjust_stock(
            variant_id,
            delta,
            "adjustment",
            note=payload.get("notes") or "Manual adjustment",
            actor=g.actor,
        )
        return {
            "success": True,
            "previous_stock": result.previous_quantity,
            "new_stock": result.new_quantity,
            "transaction": result.transaction.to_dict(),
        }
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return {"success": False, "error": "Internal server error"}, 500


@inventory_bp.get("/variants/<int:variant_id>/transactions")
@require_auth
def variant_transactions_route(variant_id: int):
    limit = request.args.get("limit", 200)

    try:
        limit = require_positive_int("limit", limit)
        rows = inventory_service.list_variant_transactions(variant_id, limit=limit)
        return {
            "success": True,
            "variant_id": variant_id,
            "transactions": [t.to_dict() for t in rows],
        }
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory transactions")
        return {"success": False, "error": "Internal server error"}, 500
