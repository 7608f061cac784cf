from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


TRANSACTION_KINDS = ("sale", "restock", "refund", "adjustment")


class InventoryTransaction(db.Model):
    """
    Append-only stock ledger.

    One row per change to Variant.stock_quantity, written in the same DB
    transaction as the change. For any variant, summing quantity_change in
    id order from 0 reproduces the current stock_quantity, and every row
    satisfies previous_quantity + quantity_change == new_quantity.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_variant_created", "variant_id", "created_at"),
        db.CheckConstraint(
            "previous_quantity + quantity_change = new_quantity",
            name="ck_invtx_quantities_consistent",
        ),
        db.CheckConstraint("new_quantity >= 0", name="ck_invtx_new_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)  # sale, restock, refund, adjustment
    quantity_change = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    # External order identifier (Order.order_id), not the surrogate key
    reference_order_id = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(100), nullable=False, default="system")

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    variant = db.relationship("Variant", backref=db.backref("inventory_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "transaction_type": self.transaction_type,
            "quantity_change": self.quantity_change,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reference_order_id": self.reference_order_id,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
