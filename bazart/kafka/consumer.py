import threading, json
from kafka import KafkaConsumer
from sqlalchemy.exc import SQLAlchemyError

from bazart.core.config import settings
from bazart.core.logging import get_logger
from bazart.db.session import SessionLocal
from bazart.errors import MarketplaceError
from bazart.notifications import mailer
from bazart.services.payment_outcome import handle_payment_event

log = get_logger(__name__)

_stop = threading.Event()
_thread = None

def process_event(topic: str, ev: dict):
    if topic == settings.TOPIC_ORDER_EVENTS:
        mailer.handle(ev)
        return
    db = SessionLocal()
    try:
        handle_payment_event(db, ev)
    except MarketplaceError as e:
        log.error("consumer.event_rejected", type=ev.get("type"), order_id=ev.get("order_id"),
                  error=e.kind, message=e.message)
        db.rollback()
    except SQLAlchemyError:
        log.exception("consumer.db_error", type=ev.get("type"), order_id=ev.get("order_id"))
        db.rollback()
    finally:
        db.close()

def _run():
    consumer = KafkaConsumer(
        settings.TOPIC_PAYMENT_EVENTS,
        settings.TOPIC_ORDER_EVENTS,
        bootstrap_servers=[settings.KAFKA_BOOTSTRAP],
        group_id="bazart",
        value_deserializer=lambda v: json.loads(v.decode("utf-8")),
        enable_auto_commit=True,
        auto_offset_reset="earliest",
    )
    try:
        for msg in consumer:
            if _stop.is_set():
                break
            process_event(msg.topic, msg.value)
    finally:
        consumer.close()

def start():
    global _thread
    if not settings.KAFKA_ENABLED:
        return
    if _thread and _thread.is_alive():
        return
    _stop.clear()
    _thread = threading.Thread(target=_run, daemon=True)
    _thread.start()

def stop():
    _stop.set()
