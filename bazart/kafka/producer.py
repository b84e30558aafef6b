from kafka import KafkaProducer
from kafka.errors import KafkaError
from sqlalchemy.orm import Session
import json

from bazart.core.config import settings
from bazart.core.logging import get_logger
from bazart.db.models import Order, User

log = get_logger(__name__)

_producer = None

def get_producer():
    global _producer
    if _producer is None:
        _producer = KafkaProducer(
            bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
            value_serializer=lambda v: json.dumps(v).encode("utf-8"),
            key_serializer=lambda v: (v.encode("utf-8") if isinstance(v, str) else v),
            linger_ms=5,
            retries=3,
        )
    return _producer

def send(topic: str, key: str, value: dict):
    """Fire-and-forget: a broker failure is logged, never raised to the caller."""
    if not settings.KAFKA_ENABLED:
        log.debug("event.skipped", topic=topic, type=value.get("type"))
        return
    try:
        p = get_producer()
        p.send(topic, key=key, value=value)
        p.flush(5)
    except KafkaError as e:
        log.warning("event.publish_failed", topic=topic, type=value.get("type"), error=str(e))

def _email(db: Session, user_id: int) -> str | None:
    user = db.get(User, user_id)
    return user.email if user else None

def order_event(db: Session, order: Order, event_type: str, **extra) -> dict:
    ev = {
        "type": event_type,
        "order_id": order.id,
        "customer_id": order.customer_id,
        "customer_email": _email(db, order.customer_id),
        "status": order.status.value,
        "amount_cents": order.total_cents,
        "currency": order.currency,
    }
    if event_type == "order.paid":
        ev["sub_orders"] = [
            {
                "sub_order_id": s.id,
                "artisan_id": s.artisan_id,
                "artisan_email": _email(db, s.artisan_id),
                "subtotal_cents": s.subtotal_cents,
            }
            for s in order.sub_orders
        ]
    ev.update(extra)
    return ev

def emit_order_event(db: Session, order: Order, event_type: str, **extra):
    send(topic=settings.TOPIC_ORDER_EVENTS, key=str(order.id), value=order_event(db, order, event_type, **extra))
