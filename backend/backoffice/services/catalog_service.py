# Overview: Service-layer operations for products and variants; encapsulates business logic and database work.

"""
Catalog management.

Products and variants are plain CRUD except where stock is involved: a new
variant's initial stock and any stock edit from the admin are written through
the inventory ledger (restock "Initial stock" / adjustment "Admin edit"), so
the ledger replay invariant holds from the variant's first row.

Deletes are soft (is_active=False): order items and ledger rows keep
referencing the rows.
"""

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Variant
from ..errors import BackofficeError, ConflictError, ProductNotFound, VariantNotFound
from .concurrency import lock_for_update, begin_exclusive, run_with_retry, commit_or_fail
from .inventory_service import _adjust_stock_inner


def _storefront_variant(variant: Variant, product: Product) -> dict:
    return {
        "value": variant.variant_value,
        "stock": variant.stock_quantity,
        "available": variant.in_stock,
        "low_stock": variant.low_stock,
        "variant_id": variant.id,
        "sku": variant.sku,
        "image_url": variant.image_url or product.image_url or "",
        "variant_price": float(variant.variant_price) if variant.variant_price is not None else None,
    }


def product_with_variants(product: Product) -> dict:
    """Storefront shape: variants grouped by variant type."""
    grouped: dict[str, list[dict]] = {}
    for variant in product.variants:
        if not variant.is_active:
            continue
        grouped.setdefault(variant.variant_type, []).append(_storefront_variant(variant, product))
    return {
        "id": product.id,
        "name": product.name,
        "category": product.category,
        "price": float(product.base_price),
        "image": product.image_url,
        "description": product.description,
        "variants": grouped,
    }


def list_products() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .order_by(Product.category.asc(), Product.name.asc())
        .all()
    )


def get_product(product_id: int, *, active_only: bool = True) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    product = query.first()
    if product is None:
        raise ProductNotFound(product_id)
    return product


def check_stock(product_id: int, variant_type: str, variant_value: str) -> dict:
    variant = (
        db.session.query(Variant)
        .filter(
            Variant.product_id == product_id,
            Variant.is_active.is_(True),
            func.lower(Variant.variant_type) == variant_type.lower(),
            func.lower(Variant.variant_value) == variant_value.lower(),
        )
        .first()
    )
    if variant is None:
        return {
            "in_stock": False,
            "stock_quantity": 0,
            "message": "Variant not found",
        }
    return {
        "in_stock": variant.in_stock,
        "low_stock": variant.low_stock,
        "stock_quantity": variant.stock_quantity,
        "variant_id": variant.id,
        "sku": variant.sku,
    }


def create_product(patch: dict) -> Product:
    product = Product(**patch)
    db.session.add(product)
    commit_or_fail()
    return product


def update_product(product_id: int, patch: dict) -> Product:
    product = get_product(product_id, active_only=False)
    for key, value in patch.items():
        setattr(product, key, value)
    commit_or_fail()
    return product


def deactivate_product(product_id: int) -> Product:
    product = get_product(product_id, active_only=False)
    product.is_active = False
    commit_or_fail()
    return product


def _ensure_variant_unique(
    product_id: int,
    variant_type: str,
    variant_value: str,
    exclude_id: int | None = None,
) -> None:
    """Type/value pairs are unique per product regardless of case."""
    query = db.session.query(Variant.id).filter(
        Variant.product_id == product_id,
        func.lower(Variant.variant_type) == str(variant_type).lower(),
        func.lower(Variant.variant_value) == str(variant_value).lower(),
    )
    if exclude_id is not None:
        query = query.filter(Variant.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(
            "This variant already exists for this product",
            {"product_id": product_id, "variant_type": variant_type, "variant_value": variant_value},
        )


def add_variant(product_id: int, patch: dict, actor: str | None = None) -> Variant:
    """
    Create a variant; initial stock (if any) is logged as a restock entry.
    """
    initial_stock = patch.pop("stock_quantity", None) or 0

    def _op():
        begin_exclusive()
        try:
            get_product(product_id, active_only=False)
            _ensure_variant_unique(product_id, patch.get("variant_type", ""), patch.get("variant_value", ""))
            variant = Variant(product_id=product_id, stock_quantity=0, **patch)
            db.session.add(variant)
            try:
                db.session.flush()
            except IntegrityError as exc:
                raise ConflictError(
                    "This variant already exists for this product",
                    {"product_id": product_id},
                ) from exc

            if initial_stock > 0:
                _adjust_stock_inner(
                    variant=variant,
                    delta=initial_stock,
                    kind="restock",
                    note="Initial stock",
                    actor=actor,
                )
        except BackofficeError:
            db.session.rollback()
            raise

        commit_or_fail()
        return variant

    return run_with_retry(_op)


def update_variant(variant_id: int, patch: dict, actor: str | None = None) -> Variant:
    """
    Edit variant attributes. A new stock_quantity is applied as a ledger
    adjustment ("Admin edit") for the difference, never as an overwrite.
    """
    target_stock = patch.pop("stock_quantity", None)

    def _op():
        begin_exclusive()
        try:
            variant = lock_for_update(db.session.query(Variant).filter_by(id=variant_id)).first()
            if variant is None:
                raise VariantNotFound(variant_id=variant_id)

            if "variant_type" in patch or "variant_value" in patch:
                _ensure_variant_unique(
                    variant.product_id,
                    patch.get("variant_type", variant.variant_type),
                    patch.get("variant_value", variant.variant_value),
                    exclude_id=variant.id,
                )

            for key, value in patch.items():
                setattr(variant, key, value)
            try:
                db.session.flush()
            except IntegrityError as exc:
                raise ConflictError(
                    "Another variant already uses this value or SKU",
                    {"variant_id": variant_id},
                ) from exc

            if target_stock is not None and target_stock != variant.stock_quantity:
                _adjust_stock_inner(
                    variant=variant,
                    delta=target_stock - variant.stock_quantity,
                    kind="adjustment",
                    note="Admin edit",
                    actor=actor,
                )
        except BackofficeError:
            db.session.rollback()
            raise

        commit_or_fail()
        return variant

    return run_with_retry(_op)


def deactivate_variant(variant_id: int) -> Variant:
    variant = db.session.get(Variant, variant_id)
    if variant is None:
        raise VariantNotFound(variant_id=variant_id)
    variant.is_active = False
    commit_or_fail()
    return variant
