# Overview: Flask API routes for the catalog; parses input and returns JSON responses.

# backend/backoffice/routes/products.py
"""
Catalog routes.

Storefront reads (/api/products...) are public.
Admin catalog management (/admin/products, /admin/variants) requires auth.

Variant stock is never written directly here: initial stock and stock edits
go through the inventory ledger in catalog_service.
"""
from flask import Blueprint, request, current_app, g

from ..models import Product, Variant
from ..errors import BackofficeError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_variant,
    require_positive_int,
)
from ..decorators import require_auth
from ..services import catalog_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")
catalog_admin_bp = Blueprint("catalog_admin", __name__, url_prefix="/admin")

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "base_price", "description", "image_url", "is_active"},
    required_on_create={"name", "category", "base_price"},
)

VARIANT_POLICY = ModelValidationPolicy(
    writable_fields={
        "variant_type",
        "variant_value",
        "stock_quantity",
        "low_stock_threshold",
        "sku",
        "is_available",
        "variant_price",
        "image_url",
    },
    required_on_create={"variant_type", "variant_value"},
)


def _internal_error(message: str):
    current_app.logger.exception(message)
    return {"success": False, "error": "Internal server error"}, 500


# =============================================================================
# STOREFRONT (public)
# =============================================================================

@products_bp.get("")
def list_products_route():
    try:
        products = catalog_service.list_products()
        return {"success": True, "products": [catalog_service.product_with_variants(p) for p in products]}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return _internal_error("Failed to list products")


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
        return {"success": True, "product": catalog_service.product_with_variants(product)}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return _internal_error("Failed to get product")


@products_bp.post("/check-stock")
def check_stock_route():
    payload = request.get_json(silent=True) or {}
    variant_type = payload.get("variant_type")
    variant_value = payload.get("variant_value")

    try:
        product_id = require_positive_int("product_id", payload.get("product_id"))
        if not variant_type or not variant_value:
            return {"success": False, "error": "variant_type and variant_value are required"}, 400

        result = catalog_service.check_stock(product_id, str(variant_type), str(variant_value))
        return {"success": True, **result}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return _internal_error("Failed to check stock")


# =============================================================================
# ADMIN CATALOG
# =============================================================================

@catalog_admin_bp.post("/products")
@require_auth
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        product = catalog_service.create_product(patch)
        current_app.logger.info("Product %s created by %s", product.id, g.actor)
        return {"success": True, "product": product.to_dict()}, 201
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return _internal_error("Failed to create product")


@catalog_admin_bp.put("/products/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        product = catalog_service.update_product(product_id, patch)
        return {"success": True, "product": product.to_dict()}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return _internal_error("Failed to update product")


@catalog_admin_bp.delete("/products/<int:product_id>")
@require_auth
def deactivate_product_route(product_id: int):
    try:
        catalog_service.deactivate_product(product_id)
        return {"success": True, "message": "Product deleted"}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return _internal_error("Failed to delete product")


@catalog_admin_bp.post("/products/<int:product_id>/variants")
@require_auth
def add_variant_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Variant, payload=payload, policy=VARIANT_POLICY, partial=False)
        enforce_rules_variant(patch)
        variant = catalog_service.add_variant(product_id, patch, actor=g.actor)
        return {"success": True, "variant": variant.to_dict()}, 201
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return _internal_error("Failed to add variant")


@catalog_admin_bp.put("/variants/<int:variant_id>")
@require_auth
def update_variant_route(variant_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Variant, payload=payload, policy=VARIANT_POLICY, partial=True)
        enforce_rules_variant(patch)
        variant = catalog_service.update_variant(variant_id, patch, actor=g.actor)
        return {"success": True, "variant": variant.to_dict()}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return _internal_error("Failed to update variant")


@catalog_admin_bp.delete("/variants/<int:variant_id>")
@require_auth
def deactivate_variant_route(variant_id: int):
    try:
        catalog_service.deactivate_variant(variant_id)
        return {"success": True, "message": "Variant deleted"}
    except BackofficeError as e:
        return e.to_dict(), e.status_code
    except Exception:
        return _internal_error("Failed to delete variant")
