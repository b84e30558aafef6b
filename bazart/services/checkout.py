"""Turn a customer's cart into a PENDING order backed by a payment session.

Stock reservation, order and sub-order creation, cart clearing and the payment
session handle all land in one transaction. The partial unique index on
``orders(customer_id) WHERE status = 'PENDING'`` arbitrates concurrent
checkouts: the loser rolls back and is handed the winner's order.
"""
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bazart.core.clock import expiry_from, now_utc
from bazart.core.config import settings
from bazart.core.logging import get_logger
from bazart.db.models import Order, OrderStatus, ReservationStatus, StockReservation
from bazart.errors import (
    ConflictError, EmptyCartError, ForbiddenError, InvalidStateError, NotFoundError, PendingOrderExistsError,
)
from bazart.kafka.producer import emit_order_event
from bazart.services import stock
from bazart.services.payment_client import PaymentClient
from bazart.services.splitter import materialize, split_lines
from bazart.store import cart_store

log = get_logger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    order_id: int
    payment_session_url: str
    total_cents: int


def get_pending_order(db: Session, customer_id: int, lock: bool = False) -> Order | None:
    stmt = select(Order).where(Order.customer_id == customer_id, Order.status == OrderStatus.PENDING)
    if lock:
        stmt = stmt.with_for_update()
    return db.execute(stmt).scalar_one_or_none()


def release_order(db: Session, order: Order, terminal: OrderStatus, now: datetime) -> None:
    """Give back every HELD reservation, then close the order. No commit."""
    for r in order.reservations:
        if r.status != ReservationStatus.HELD:
            continue
        stock.release(db, r.product_id, r.qty)
        r.status = ReservationStatus.RELEASED
        r.updated_at = now
    order.status = terminal
    order.closed_at = now
    order.updated_at = now


def initiate(db: Session, customer_id: int, customer_email: str | None, payments: PaymentClient,
             now: datetime | None = None) -> CheckoutResult:
    now = now or now_utc()

    pending = get_pending_order(db, customer_id, lock=True)
    if pending is not None:
        if pending.expires_at > now:
            raise PendingOrderExistsError(pending.id, pending.payment_session_url)
        release_order(db, pending, OrderStatus.EXPIRED, now)
        db.commit()
        log.info("checkout.stale_order_expired", order_id=pending.id, customer_id=customer_id)
        emit_order_event(db, pending, "order.expired")

    lines = cart_store.lines_for_checkout(db, customer_id)
    if not lines:
        raise EmptyCartError("Cart is empty")
    drafts = split_lines(lines)
    total = sum(l.subtotal_cents for l in lines)

    order = Order(
        customer_id=customer_id,
        status=OrderStatus.PENDING,
        total_cents=total,
        currency=settings.CURRENCY,
        created_at=now,
        expires_at=expiry_from(now, settings.CHECKOUT_SESSION_TTL_MINUTES),
        updated_at=now,
    )
    db.add(order)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        existing = get_pending_order(db, customer_id)
        if existing is None:
            raise ConflictError("Another checkout is in progress for this customer")
        log.info("checkout.duplicate", order_id=existing.id, customer_id=customer_id)
        raise PendingOrderExistsError(existing.id, existing.payment_session_url)

    try:
        for line in sorted(lines, key=lambda l: l.product_id):
            stock.reserve(db, line.product_id, line.qty)
            db.add(StockReservation(
                order_id=order.id,
                product_id=line.product_id,
                qty=line.qty,
                status=ReservationStatus.HELD,
                updated_at=now,
            ))
        materialize(db, order, drafts, now)
        cart_store.delete_lines(db, customer_id)
        db.flush()

        session = payments.create_session(order.id, total, customer_email, order.expires_at)
        order.payment_session_id = session.session_id
        order.payment_session_url = session.url
        db.commit()
    except Exception:
        db.rollback()
        log.info("checkout.rolled_back", customer_id=customer_id)
        raise

    log.info("checkout.order_created", order_id=order.id, customer_id=customer_id,
             total_cents=total, sub_orders=len(drafts))
    emit_order_event(db, order, "order.created")
    return CheckoutResult(order_id=order.id, payment_session_url=order.payment_session_url, total_cents=total)


def cancel(db: Session, customer_id: int, order_id: int, now: datetime | None = None) -> Order:
    now = now or now_utc()
    order = db.execute(select(Order).where(Order.id == order_id).with_for_update()).scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found", order_id=order_id)
    if order.customer_id != customer_id:
        raise ForbiddenError("Only the customer who placed the order can cancel it", order_id=order_id)
    if order.status != OrderStatus.PENDING:
        raise InvalidStateError(f"Order is {order.status.value}; only PENDING orders can be cancelled",
                                order_id=order_id, status=order.status.value)
    release_order(db, order, OrderStatus.CANCELLED, now)
    db.commit()
    log.info("order.cancelled", order_id=order.id, customer_id=customer_id)
    emit_order_event(db, order, "order.cancelled")
    return order
