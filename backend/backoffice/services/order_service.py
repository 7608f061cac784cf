# Overview: Order transaction coordinator; places, refunds and transitions orders over the inventory ledger.

"""
Order Transaction Coordinator

place_order() is one atomic unit:
  header -> for each item in request order: resolve variant, check stock,
  insert item, ledger sale -> commit.
Any failure rolls back the whole unit: no header, no items, no ledger rows,
no stock change. Items are processed sequentially so the first failing item
is the one reported.

After commit the loyalty accrual is handed to the task queue. It runs on its
own transaction; its failure is logged and never affects the order.

refund_order() restores every item's stock through the ledger (kind=refund)
and marks the order refunded, atomically. Points are not reversed.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, OrderItem, Product, Variant
from ..errors import (
    BackofficeError,
    DuplicateOrder,
    InvalidStatusTransition,
    OrderNotFound,
    VariantNotFound,
    InsufficientStock,
    StorageFailure,
)
from ..validation import OrderRequest, OrderLine
from ..tasks import task_queue
from .concurrency import lock_for_update, begin_exclusive, run_with_retry, commit_or_fail
from .inventory_service import adjust_stock
from .customer_service import accrue_order_points


# Forward-only order lifecycle. refunded/cancelled are terminal; nothing
# re-enters pending. Payment states behave like pending.
_PAYMENT_STATES = {"awaiting_payment", "paid", "payment_failed"}

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"delivered", "cancelled", "refunded"} | _PAYMENT_STATES,
    "awaiting_payment": {"delivered", "cancelled", "refunded", "paid", "payment_failed"},
    "paid": {"delivered", "cancelled", "refunded"},
    "payment_failed": {"cancelled", "awaiting_payment", "paid"},
    "delivered": {"refunded"},
    "refunded": set(),
    "cancelled": set(),
}


def _resolve_variant(line: OrderLine) -> Variant:
    """Case-insensitive match on variant type and value, variant row locked."""
    variant = lock_for_update(
        db.session.query(Variant).filter(
            Variant.product_id == line.product_id,
            Variant.is_active.is_(True),
            func.lower(Variant.variant_type) == line.variant_type.lower(),
            func.lower(Variant.variant_value) == line.variant_value.lower(),
        )
    ).first()
    if variant is None:
        raise VariantNotFound(line.product_id, line.variant_type, line.variant_value)
    return variant


def _is_order_id_conflict(exc: IntegrityError) -> bool:
    """True when the unique order_id constraint (not some other constraint) failed."""
    message = str(exc.orig).lower()
    return "order_id" in message and ("unique" in message or "duplicate" in message)


def _place_item(order: Order, line: OrderLine, actor: str | None) -> OrderItem:
    variant = _resolve_variant(line)
    product = db.session.get(Product, variant.product_id)
    product_name = line.product_name or product.name

    if variant.stock_quantity < line.quantity:
        raise InsufficientStock(
            variant.id,
            available=variant.stock_quantity,
            requested=line.quantity,
            product_name=product_name,
        )

    item = OrderItem(
        order_id=order.id,
        product_id=line.product_id,
        variant_id=variant.id,
        product_name=product_name,
        variant_details=line.variant_details,
        quantity=line.quantity,
        unit_price=line.unit_price,
        total_price=line.total_price,
    )
    db.session.add(item)

    adjust_stock(
        variant.id,
        -line.quantity,
        "sale",
        reference=order.order_id,
        note=f"Order placed by {order.customer_name}",
        actor=actor,
        commit=False,
        product_name=product_name,
    )
    return item


def place_order(request: OrderRequest, actor: str | None = None) -> Order:
    """
    Persist an order and decrement stock for every item, atomically.

    Raises DuplicateOrder, VariantNotFound, InsufficientStock,
    StorageFailure. On any error nothing is persisted.
    """
    def _op():
        begin_exclusive()
        try:
            if db.session.query(Order.id).filter_by(order_id=request.order_id).first() is not None:
                raise DuplicateOrder(request.order_id)

            header = dict(request.header)
            header.setdefault("order_status", "pending")
            header.setdefault("payment_status", "pending")
            order = Order(**header)
            db.session.add(order)
            try:
                db.session.flush()
            except IntegrityError as exc:
                if _is_order_id_conflict(exc):
                    raise DuplicateOrder(request.order_id) from exc
                raise StorageFailure("Failed to write order header", {"order_id": request.order_id}) from exc

            for line in request.items:
                _place_item(order, line, actor)

            db.session.flush()
        except BackofficeError:
            db.session.rollback()
            raise

        commit_or_fail()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Order %s placed: %s item(s), total %s", order.order_id, len(request.items), order.total
    )

    _schedule_points_accrual(order)
    return order


def _schedule_points_accrual(order: Order) -> None:
    """Fire-and-forget; the order has already succeeded whatever happens here."""
    try:
        task_queue.submit(
            accrue_order_points,
            order.order_id,
            order.customer_phone,
            order.customer_name,
            order.customer_email,
            order.customer_address,
            order.total,
        )
    except Exception:
        current_app.logger.exception("Failed to schedule points accrual for order %s", order.order_id)


def get_order(order_id: str) -> Order:
    order = db.session.query(Order).filter_by(order_id=order_id).first()
    if order is None:
        raise OrderNotFound(order_id)
    return order


def list_orders(status: str | None = None, limit: int | None = None) -> list[Order]:
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.order_status == status)
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def update_order_status(order_id: str, new_status: str) -> Order:
    """
    Pure status transition; no ledger interaction.

    Refunds must go through refund_order() so that stock is restored.
    """
    def _op():
        try:
            order = lock_for_update(db.session.query(Order).filter_by(order_id=order_id)).first()
            if order is None:
                raise OrderNotFound(order_id)

            current = order.order_status
            if new_status == current:
                return order

            if new_status == "refunded":
                raise InvalidStatusTransition(
                    order_id, current, new_status,
                    message="Use the refund endpoint to refund an order",
                )

            if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
                raise InvalidStatusTransition(order_id, current, new_status)

            order.order_status = new_status
            if new_status == "paid":
                order.payment_status = "paid"
            elif new_status == "payment_failed":
                order.payment_status = "failed"
        except BackofficeError:
            db.session.rollback()
            raise

        commit_or_fail()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s status -> %s", order_id, order.order_status)
    return order


def refund_order(order_id: str, actor: str | None = None) -> Order:
    """
    Restore stock for every item and mark the order refunded, atomically.

    An order that is already refunded (or cancelled) is rejected without
    touching stock. If any restore fails the order keeps its prior status.
    """
    def _op():
        begin_exclusive()
        try:
            order = lock_for_update(db.session.query(Order).filter_by(order_id=order_id)).first()
            if order is None:
                raise OrderNotFound(order_id)

            if order.order_status == "refunded":
                raise InvalidStatusTransition(
                    order_id, order.order_status, "refunded",
                    message=f"Order {order_id} is already refunded",
                )
            if "refunded" not in ALLOWED_TRANSITIONS.get(order.order_status, set()):
                raise InvalidStatusTransition(order_id, order.order_status, "refunded")

            items = (
                db.session.query(OrderItem)
                .filter_by(order_id=order.id)
                .order_by(OrderItem.id.asc())
                .all()
            )
            for item in items:
                adjust_stock(
                    item.variant_id,
                    item.quantity,
                    "refund",
                    reference=order.order_id,
                    note="Order refunded",
                    actor=actor,
                    commit=False,
                )

            order.order_status = "refunded"
            order.payment_status = "refunded"
            db.session.flush()
        except BackofficeError:
            db.session.rollback()
            raise

        commit_or_fail()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s refunded by %s", order_id, actor or "system")
    return order
