"""Periodic sweep closing PENDING orders whose payment session ran out."""
import threading
from datetime import datetime
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bazart.core.clock import now_utc
from bazart.core.config import settings
from bazart.core.logging import get_logger
from bazart.db.models import Order, OrderStatus
from bazart.db.session import SessionLocal
from bazart.errors import MarketplaceError, PaymentProviderError
from bazart.services import payment_outcome
from bazart.services.payment_client import PaymentClient

log = get_logger(__name__)

_stop = threading.Event()
_thread = None


def expire_stale_orders(db: Session, payments: PaymentClient, now: datetime | None = None) -> List[int]:
    """Returns the ids of the orders that were closed as EXPIRED.

    A session paid at the last second is confirmed instead of expired. When the
    provider cannot be reached the order is left for the next sweep.
    """
    now = now or now_utc()
    overdue = db.execute(
        select(Order.id, Order.payment_session_id)
        .where(Order.status == OrderStatus.PENDING, Order.expires_at <= now)
        .order_by(Order.id)
    ).all()
    expired = []
    for order_id, session_id in overdue:
        try:
            if session_id:
                status = payments.verify_session(session_id)
                if status.paid:
                    payment_outcome.confirm_payment(db, order_id, session_id, now=now)
                    continue
            order = payment_outcome.expire_order(db, order_id, now=now)
            if order.status == OrderStatus.EXPIRED:
                expired.append(order_id)
        except PaymentProviderError:
            log.warning("reconcile.provider_unavailable", order_id=order_id)
            db.rollback()
        except MarketplaceError as e:
            # e.g. closed by a cancel between the overdue select and the row lock
            log.error("reconcile.order_skipped", order_id=order_id, error=e.kind, message=e.message)
            db.rollback()
    if overdue:
        log.info("reconcile.swept", overdue=len(overdue), expired=len(expired))
    return expired


def _run():
    payments = PaymentClient()
    while not _stop.wait(settings.RECONCILE_INTERVAL_SECONDS):
        db = SessionLocal()
        try:
            expire_stale_orders(db, payments)
        except MarketplaceError as e:
            log.error("reconcile.failed", error=e.kind, message=e.message)
            db.rollback()
        except SQLAlchemyError:
            log.exception("reconcile.db_error")
            db.rollback()
        finally:
            db.close()


def start():
    global _thread
    if settings.RECONCILE_INTERVAL_SECONDS <= 0:
        return
    if _thread and _thread.is_alive():
        return
    _stop.clear()
    _thread = threading.Thread(target=_run, daemon=True)
    _thread.start()


def stop():
    _stop.set()
