from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z
from .catalog import money_to_json


class Customer(db.Model):
    """
    Loyalty customer, keyed by phone number.

    total_spent / total_orders are denormalized aggregates updated by the
    points accrual that follows each successful order.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_total_spent", "total_spent"),
        db.CheckConstraint("total_points >= 0", name="ck_customers_points_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    phone = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)

    total_points = db.Column(db.Integer, nullable=False, default=0)
    total_spent = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_orders = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "phone": self.phone,
            "name": self.name,
            "email": self.email,
            "address": self.address,
            "total_points": self.total_points,
            "total_spent": money_to_json(self.total_spent),
            "total_orders": self.total_orders,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PointsTransaction(db.Model):
    """
    Append-only ledger of loyalty point events.

    TRANSACTION TYPES:
    - earned: Points earned from an order
    - redeemed: Points spent as a discount (negative)
    - adjustment: Manual adjustment by an admin (either sign)

    points_balance is the customer's balance after this entry.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "points_transactions"
    __table_args__ = (
        db.Index("ix_points_txns_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    order_id = db.Column(db.String(64), nullable=True, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)  # earned, redeemed, adjustment
    points_change = db.Column(db.Integer, nullable=False)
    points_balance = db.Column(db.Integer, nullable=False)
    order_total = db.Column(db.Numeric(10, 2), nullable=True)
    notes = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(100), nullable=False, default="system")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("points_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "transaction_type": self.transaction_type,
            "points_change": self.points_change,
            "points_balance": self.points_balance,
            "order_total": money_to_json(self.order_total),
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
