# Overview: Service-layer operations for customers and loyalty points; encapsulates business logic and database work.

"""
Customers & loyalty points.

Customers are keyed by phone number. Points live on Customer.total_points and
every change appends a PointsTransaction in the same DB transaction, mirroring
the inventory ledger: the balance never goes negative and ledger rows are
never edited.

Order accrual (accrue_order_points) runs detached from order placement via
the task queue; see order_service.place_order.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, PointsTransaction
from ..errors import CustomerNotFound, InvalidAdjustment, ValidationError
from .concurrency import lock_for_update, run_with_retry, commit_or_fail


def points_for_total(total, divisor: int | None = None) -> int:
    """floor(total / divisor) whole points; 1% cashback with the default divisor of 100."""
    if divisor is None:
        divisor = current_app.config.get("POINTS_DIVISOR", 100)
    amount = Decimal(str(total))
    if amount <= 0:
        return 0
    return int(amount // Decimal(divisor))


def get_customer(customer_id: int, *, lock: bool = False) -> Customer:
    query = db.session.query(Customer).filter_by(id=customer_id)
    if lock:
        query = lock_for_update(query)
    customer = query.first()
    if customer is None:
        raise CustomerNotFound(customer_id)
    return customer


def _get_or_create_by_phone(phone: str, *, name=None, email=None, address=None) -> tuple[Customer, bool]:
    """
    Must run before any other write in the current unit: a concurrent insert
    of the same phone is resolved by rolling back and re-reading.
    """
    customer = lock_for_update(db.session.query(Customer).filter_by(phone=phone)).first()
    if customer is not None:
        return customer, False

    customer = Customer(
        phone=phone,
        name=name,
        email=email,
        address=address,
        total_points=0,
        total_spent=0,
        total_orders=0,
    )
    db.session.add(customer)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        customer = lock_for_update(db.session.query(Customer).filter_by(phone=phone)).first()
        if customer is None:
            raise
        return customer, False
    return customer, True


def _append_points(
    customer: Customer,
    *,
    points_change: int,
    transaction_type: str,
    order_id: str | None = None,
    order_total=None,
    notes: str | None = None,
    actor: str | None = None,
) -> PointsTransaction:
    new_balance = customer.total_points + points_change
    if new_balance < 0:
        raise InvalidAdjustment(
            "Points cannot be negative",
            {"customer_id": customer.id, "points_balance": customer.total_points, "points_change": points_change},
        )
    customer.total_points = new_balance

    entry = PointsTransaction(
        customer_id=customer.id,
        order_id=order_id,
        transaction_type=transaction_type,
        points_change=points_change,
        points_balance=new_balance,
        order_total=order_total,
        notes=notes,
        created_by=actor or "system",
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def lookup_customer(phone: str, name: str | None = None, email: str | None = None) -> Customer:
    """Get or create a customer by phone; name/email replace stored values only when given."""
    if not phone or not str(phone).strip():
        raise ValidationError("Phone number required")
    phone = str(phone).strip()

    def _op():
        customer, created = _get_or_create_by_phone(phone, name=name, email=email)
        if not created:
            if name:
                customer.name = name
            if email:
                customer.email = email
        commit_or_fail()
        return customer

    return run_with_retry(_op)


def accrue_order_points(
    order_id: str,
    phone: str | None,
    name: str | None,
    email: str | None,
    address: str | None,
    total,
) -> int:
    """
    Record a completed order against the customer and credit its points.

    Runs on its own transaction after the order has committed. Returns the
    points credited (0 when the order earns none or has no phone).
    """
    if not phone:
        current_app.logger.info("Order %s has no customer phone; skipping points", order_id)
        return 0

    amount = Decimal(str(total))
    customer, created = _get_or_create_by_phone(phone, name=name, email=email, address=address)
    if not created:
        customer.name = name or customer.name
        customer.email = email or customer.email
        customer.address = address or customer.address
    customer.total_spent = (customer.total_spent or 0) + amount
    customer.total_orders = (customer.total_orders or 0) + 1

    points = points_for_total(amount)
    if points > 0:
        _append_points(
            customer,
            points_change=points,
            transaction_type="earned",
            order_id=order_id,
            order_total=amount,
            notes="Points earned from order",
        )

    commit_or_fail()
    current_app.logger.info("Order %s: %s points credited to customer %s", order_id, points, customer.id)
    return points


def award_points(
    customer_id: int,
    *,
    points: int,
    order_id: str | None = None,
    order_total=None,
    actor: str | None = None,
) -> PointsTransaction:
    """Manual earn for an order: credits points and counts the order towards spend."""
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise InvalidAdjustment("points must be a positive integer")
    amount = Decimal(str(order_total)) if order_total is not None else None

    def _op():
        try:
            customer = get_customer(customer_id, lock=True)
            if amount is not None:
                customer.total_spent = (customer.total_spent or 0) + amount
            customer.total_orders = (customer.total_orders or 0) + 1
            entry = _append_points(
                customer,
                points_change=points,
                transaction_type="earned",
                order_id=order_id,
                order_total=amount,
                notes="1% cashback on order",
                actor=actor,
            )
        except (CustomerNotFound, InvalidAdjustment):
            db.session.rollback()
            raise
        commit_or_fail()
        return entry

    return run_with_retry(_op)


def redeem_points(
    customer_id: int,
    *,
    points: int,
    order_id: str | None = None,
    actor: str | None = None,
) -> PointsTransaction:
    """Spend points as a discount (1 point = 1 currency unit)."""
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise InvalidAdjustment("points_to_redeem must be a positive integer")

    def _op():
        try:
            customer = get_customer(customer_id, lock=True)
            if customer.total_points < points:
                raise InvalidAdjustment(
                    "Insufficient points",
                    {"customer_id": customer_id, "points_balance": customer.total_points, "requested": points},
                )
            entry = _append_points(
                customer,
                points_change=-points,
                transaction_type="redeemed",
                order_id=order_id,
                notes="Redeemed for discount",
                actor=actor,
            )
        except (CustomerNotFound, InvalidAdjustment):
            db.session.rollback()
            raise
        commit_or_fail()
        return entry

    return run_with_retry(_op)


def adjust_points(
    customer_id: int,
    *,
    points_change: int,
    notes: str | None = None,
    actor: str | None = None,
) -> PointsTransaction:
    if isinstance(points_change, bool) or not isinstance(points_change, int) or points_change == 0:
        raise InvalidAdjustment("points_change must be a non-zero integer")

    def _op():
        try:
            customer = get_customer(customer_id, lock=True)
            entry = _append_points(
                customer,
                points_change=points_change,
                transaction_type="adjustment",
                notes=notes or "Manual adjustment",
                actor=actor,
            )
        except (CustomerNotFound, InvalidAdjustment):
            db.session.rollback()
            raise
        commit_or_fail()
        return entry

    return run_with_retry(_op)


def list_customers() -> list[Customer]:
    return db.session.query(Customer).order_by(Customer.total_spent.desc(), Customer.id.asc()).all()


def list_points_transactions(customer_id: int, limit: int = 200) -> list[PointsTransaction]:
    get_customer(customer_id)
    return (
        db.session.query(PointsTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(PointsTransaction.id.desc())
        .limit(limit)
        .all()
    )
