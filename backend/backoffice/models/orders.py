from __future__ import annotations

import json

from ..extensions import db
from backoffice.time_utils import to_utc_z
from .catalog import money_to_json


ORDER_STATUSES = (
    "pending",
    "awaiting_payment",
    "paid",
    "payment_failed",
    "delivered",
    "cancelled",
    "refunded",
)


class Order(db.Model):
    """
    Order header.

    order_id is the client-supplied external identifier (unique); id is the
    surrogate key used by order_items. Customer contact fields are a snapshot
    taken when the order was placed.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "order_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(64), nullable=False, unique=True, index=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True, index=True)
    customer_address = db.Column(db.Text, nullable=True)

    subtotal = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    delivery_fee = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    rewards_discount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(10, 2), nullable=False)

    payment_method = db.Column(db.String(50), nullable=True)
    payment_provider = db.Column(db.String(50), nullable=True)
    transaction_id = db.Column(db.String(128), nullable=True)
    payment_status = db.Column(db.String(32), nullable=False, default="pending")
    usd_amount = db.Column(db.Numeric(10, 2), nullable=True)
    exchange_rate = db.Column(db.Numeric(10, 4), nullable=True)

    delivery_option = db.Column(db.String(50), nullable=True)
    delivery_parish = db.Column(db.String(100), nullable=True)

    order_status = db.Column(db.String(32), nullable=False, default="pending", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship("OrderItem", back_populates="order", lazy=True, order_by="OrderItem.id")

    def __repr__(self) -> str:
        return f"<Order id={self.id} order_id={self.order_id!r} status={self.order_status}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_id": self.order_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "customer_address": self.customer_address,
            "subtotal": money_to_json(self.subtotal),
            "delivery_fee": money_to_json(self.delivery_fee),
            "rewards_discount": money_to_json(self.rewards_discount),
            "total": money_to_json(self.total),
            "payment_method": self.payment_method,
            "payment_provider": self.payment_provider,
            "transaction_id": self.transaction_id,
            "payment_status": self.payment_status,
            "usd_amount": money_to_json(self.usd_amount),
            "exchange_rate": money_to_json(self.exchange_rate),
            "delivery_option": self.delivery_option,
            "delivery_parish": self.delivery_parish,
            "order_status": self.order_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Order line.

    product_name and variant_details are denormalized on purpose: they record
    what was sold even if the catalog changes later. Created once, never edited.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    variant_details = db.Column(db.Text, nullable=True)  # JSON snapshot

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    total_price = db.Column(db.Numeric(10, 2), nullable=False)

    order = db.relationship("Order", back_populates="items")

    def to_dict(self) -> dict:
        details = None
        if self.variant_details:
            try:
                details = json.loads(self.variant_details)
            except ValueError:
                details = self.variant_details
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "product_name": self.product_name,
            "variant_details": details,
            "quantity": self.quantity,
            "unit_price": money_to_json(self.unit_price),
            "total_price": money_to_json(self.total_price),
        }
