# Overview: Service-layer operations for the inventory ledger; encapsulates business logic and database work.

# backend/backoffice/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Variant, Product, InventoryTransaction, TRANSACTION_KINDS
from ..errors import VariantNotFound, InsufficientStock, InvalidAdjustment
from .concurrency import lock_for_update, begin_exclusive, run_with_retry, commit_or_fail
"""
Inventory Ledger Invariants (authoritative)

Stock model:
- Variant.stock_quantity holds current stock; it is never negative.
- Every change to stock_quantity appends exactly one InventoryTransaction
  in the same DB transaction: (previous_quantity, quantity_change, new_quantity).
- Replaying a variant's transactions in id order from 0 reproduces stock_quantity.
- Ledger rows are never updated or deleted.

Kinds:
- sale: negative delta; rejected with InsufficientStock if it would go below 0.
- restock / refund: positive delta.
- adjustment: either sign; may not drive stock below 0.

Concurrency:
- The variant row is read under lock (FOR UPDATE / BEGIN IMMEDIATE on SQLite)
  and the write is version-checked (Variant.version_id). A concurrent writer
  waits or fails with StaleDataError, which run_with_retry retries.
"""


@dataclass
class StockAdjustment:
    previous_quantity: int
    new_quantity: int
    transaction: InventoryTransaction

    def to_dict(self) -> dict:
        return {
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "transaction": self.transaction.to_dict(),
        }


def _validate_delta(kind: str, delta) -> None:
    if kind not in TRANSACTION_KINDS:
        raise InvalidAdjustment(
            f"Unknown transaction kind: {kind}",
            {"allowed": list(TRANSACTION_KINDS)},
        )
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise InvalidAdjustment("Quantity change must be an integer")
    if delta == 0:
        raise InvalidAdjustment("Quantity change must be non-zero")
    if kind == "sale" and delta > 0:
        raise InvalidAdjustment("Sale quantity change must be negative")
    if kind in ("restock", "refund") and delta < 0:
        raise InvalidAdjustment(f"{kind.capitalize()} quantity change must be positive")


def _lock_variant(variant_id: int) -> Variant:
    begin_exclusive()
    variant = lock_for_update(db.session.query(Variant).filter_by(id=variant_id)).first()
    if variant is None:
        raise VariantNotFound(variant_id=variant_id)
    return variant


def _adjust_stock_inner(
    *,
    variant: Variant,
    delta: int,
    kind: str,
    reference: str | None = None,
    note: str | None = None,
    actor: str | None = None,
    product_name: str | None = None,
) -> StockAdjustment:
    """Core ledger write without locking, retry, or commit.

    The caller must hold the variant row lock for the current transaction.
    """
    previous = variant.stock_quantity
    new = previous + delta

    if new < 0:
        if kind == "sale":
            raise InsufficientStock(variant.id, available=previous, requested=-delta, product_name=product_name)
        raise InvalidAdjustment(
            "Adjustment would make stock negative",
            {"variant_id": variant.id, "available": previous, "quantity_change": delta},
        )

    variant.stock_quantity = new

    tx = InventoryTransaction(
        variant_id=variant.id,
        transaction_type=kind,
        quantity_change=delta,
        previous_quantity=previous,
        new_quantity=new,
        reference_order_id=reference,
        notes=note,
        created_by=actor or "system",
    )
    db.session.add(tx)
    db.session.flush()

    return StockAdjustment(previous_quantity=previous, new_quantity=new, transaction=tx)


def adjust_stock(
    variant_id: int,
    delta: int,
    kind: str,
    *,
    reference: str | None = None,
    note: str | None = None,
    actor: str | None = None,
    commit: bool = True,
    product_name: str | None = None,
) -> StockAdjustment:
    """
    Apply a signed change to a variant's stock and append one ledger row.

    With commit=False the adjustment is enlisted in the caller's transaction
    (the caller commits or rolls back, and owns the retry loop). With
    commit=True this is its own atomic unit, retried on lock conflicts.

    Raises VariantNotFound, InsufficientStock (sales), InvalidAdjustment.
    Nothing is written when an error is raised.
    """
    _validate_delta(kind, delta)

    def _op():
        variant = _lock_variant(variant_id)
        result = _adjust_stock_inner(
            variant=variant,
            delta=delta,
            kind=kind,
            reference=reference,
            note=note,
            actor=actor,
            product_name=product_name,
        )
        if commit:
            commit_or_fail()
            current_app.logger.info(
                "Stock %s for variant %s: %s -> %s",
                kind, variant_id, result.previous_quantity, result.new_quantity,
            )
        return result

    if not commit:
        return _op()

    def _atomic():
        try:
            return _op()
        except (VariantNotFound, InsufficientStock, InvalidAdjustment):
            db.session.rollback()
            raise

    return run_with_retry(_atomic)


def restock(variant_id: int, quantity: int, *, note: str | None = None, actor: str | None = None) -> StockAdjustment:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidAdjustment("Restock quantity must be a positive integer")
    return adjust_stock(variant_id, quantity, "restock", note=note, actor=actor)


def get_variant(variant_id: int) -> Variant:
    variant = db.session.get(Variant, variant_id)
    if variant is None:
        raise VariantNotFound(variant_id=variant_id)
    return variant


def list_variant_transactions(variant_id: int, limit: int = 200) -> list[InventoryTransaction]:
    get_variant(variant_id)
    return (
        InventoryTransaction.query.filter_by(variant_id=variant_id)
        .order_by(InventoryTransaction.id.desc())
        .limit(limit)
        .all()
    )


def replay_stock(variant_id: int) -> int:
    """Fold the variant's ledger from 0 in creation order."""
    rows = (
        db.session.query(InventoryTransaction.quantity_change)
        .filter_by(variant_id=variant_id)
        .order_by(InventoryTransaction.id.asc())
        .all()
    )
    quantity = 0
    for (change,) in rows:
        quantity += change
    return quantity


def find_ledger_mismatches() -> list[dict]:
    """Variants whose stored stock disagrees with their ledger replay."""
    mismatches = []
    for variant in db.session.query(Variant).order_by(Variant.id).all():
        replayed = replay_stock(variant.id)
        if replayed != variant.stock_quantity:
            mismatches.append({
                "variant_id": variant.id,
                "stock_quantity": variant.stock_quantity,
                "ledger_quantity": replayed,
            })
    return mismatches


def _stock_row(variant: Variant, product: Product) -> dict:
    return {
        "variant_id": variant.id,
        "product_id": product.id,
        "product_name": product.name,
        "category": product.category,
        "variant_type": variant.variant_type,
        "variant_value": variant.variant_value,
        "sku": variant.sku,
        "stock_quantity": variant.stock_quantity,
        "low_stock_threshold": variant.low_stock_threshold,
    }


def list_low_stock() -> list[dict]:
    """In-stock variants at or below their low-stock threshold."""
    rows = (
        db.session.query(Variant, Product)
        .join(Product, Product.id == Variant.product_id)
        .filter(
            Product.is_active.is_(True),
            Variant.is_active.is_(True),
            Variant.stock_quantity > 0,
            Variant.stock_quantity <= Variant.low_stock_threshold,
        )
        .order_by(Variant.stock_quantity.asc(), Product.name.asc())
        .all()
    )
    return [_stock_row(v, p) for v, p in rows]


def list_out_of_stock() -> list[dict]:
    rows = (
        db.session.query(Variant, Product)
        .join(Product, Product.id == Variant.product_id)
        .filter(
            Product.is_active.is_(True),
            Variant.is_active.is_(True),
            Variant.stock_quantity == 0,
        )
        .order_by(Product.category.asc(), Product.name.asc())
        .all()
    )
    return [_stock_row(v, p) for v, p in rows]
