"""Apply the payment provider's verdict to a PENDING order.

Paid: reservations become permanent and the sub-orders are activated.
Expired: reservations go back to stock and the order is closed.
Both paths are idempotent so webhook retries, the Kafka consumer, the
verify-session page and the reconciliation sweep can all race safely.
"""
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from bazart.core.clock import now_utc
from bazart.core.logging import get_logger
from bazart.db.models import Order, OrderStatus, ReservationStatus
from bazart.errors import ConflictError, InvalidStateError, NotFoundError
from bazart.kafka.producer import emit_order_event
from bazart.services.checkout import release_order
from bazart.services.payment_client import PaymentClient

log = get_logger(__name__)

CLOSED = (OrderStatus.EXPIRED, OrderStatus.CANCELLED)


def _locked(db: Session, order_id: int) -> Order:
    order = db.execute(select(Order).where(Order.id == order_id).with_for_update()).scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found", order_id=order_id)
    return order


def confirm_payment(db: Session, order_id: int, session_id: str | None = None,
                    now: datetime | None = None) -> Order:
    now = now or now_utc()
    order = _locked(db, order_id)
    if session_id and order.payment_session_id and session_id != order.payment_session_id:
        raise ConflictError("Payment session does not belong to this order", order_id=order_id)
    if order.status == OrderStatus.PAID:
        return order
    if order.status in CLOSED:
        # money was taken for an order whose stock is gone; needs a manual refund
        log.error("payment.on_closed_order", order_id=order.id, status=order.status.value, session_id=session_id)
        raise InvalidStateError(f"Order is {order.status.value}; payment cannot be applied",
                                order_id=order.id, status=order.status.value)

    for r in order.reservations:
        if r.status == ReservationStatus.HELD:
            r.status = ReservationStatus.COMMITTED
            r.updated_at = now
    order.status = OrderStatus.PAID
    order.paid_at = now
    order.updated_at = now
    for sub in order.sub_orders:
        sub.activated_at = now
        sub.updated_at = now
    db.commit()
    log.info("payment.confirmed", order_id=order.id, customer_id=order.customer_id)
    emit_order_event(db, order, "order.paid")
    return order


def expire_order(db: Session, order_id: int, now: datetime | None = None) -> Order:
    now = now or now_utc()
    order = _locked(db, order_id)
    if order.status != OrderStatus.PENDING:
        log.info("payment.expire_ignored", order_id=order.id, status=order.status.value)
        return order
    release_order(db, order, OrderStatus.EXPIRED, now)
    db.commit()
    log.info("payment.expired", order_id=order.id, customer_id=order.customer_id)
    emit_order_event(db, order, "order.expired")
    return order


def settle_session(db: Session, payments: PaymentClient, session_id: str,
                   order_id: int | None = None, customer_id: int | None = None) -> Order:
    """Ask the provider about ``session_id`` and apply whatever it says.

    ``order_id`` and ``customer_id``, when given, must match the order the
    session was created for.
    """
    order = db.execute(select(Order).where(Order.payment_session_id == session_id)).scalar_one_or_none()
    if (order is None
            or (order_id is not None and order.id != order_id)
            or (customer_id is not None and order.customer_id != customer_id)):
        raise NotFoundError("No order for this payment session", session_id=session_id)
    status = payments.verify_session(session_id)
    if status.paid:
        return confirm_payment(db, order.id, session_id)
    if status.expired:
        return expire_order(db, order.id)
    return order


def handle_payment_event(db: Session, ev: dict) -> Order | None:
    t = ev.get("type")
    order_id = ev.get("order_id")
    if order_id is None:
        log.warning("payment.event_without_order", type=t)
        return None
    if t == "payment.succeeded":
        return confirm_payment(db, int(order_id), ev.get("session_id"))
    if t in ("payment.expired", "payment.failed"):
        return expire_order(db, int(order_id))
    log.debug("payment.event_ignored", type=t, order_id=order_id)
    return None
