import smtplib
from email.mime.text import MIMEText

from bazart.core.config import settings
from bazart.core.logging import get_logger
from bazart.core.money import to_amount

log = get_logger(__name__)


def send_email(to: str, subject: str, body: str):
    msg = MIMEText(body)
    msg["Subject"] = subject
    msg["From"] = settings.FROM_EMAIL
    msg["To"] = to
    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as s:
        s.sendmail(settings.FROM_EMAIL, [to], msg.as_string())


def _amount(ev: dict, key: str = "amount_cents") -> str:
    return f"{to_amount(int(ev.get(key) or 0)):.2f} {ev.get('currency', settings.CURRENCY)}"


def messages_for(ev: dict) -> list[tuple[str, str, str]]:
    """(to, subject, body) for every email an order event should produce."""
    t = ev.get("type")
    order_id = ev.get("order_id")
    customer = ev.get("customer_email")
    out = []
    if t == "order.created" and customer:
        out.append((customer, "Order received",
                    f"We received your order {order_id} for {_amount(ev)}. Complete the payment to confirm it."))
    elif t == "order.paid":
        if customer:
            out.append((customer, "Payment received", f"Payment for order {order_id} succeeded."))
        for sub in ev.get("sub_orders") or []:
            if sub.get("artisan_email"):
                out.append((sub["artisan_email"], "New order to ship",
                            f"Order {order_id} contains your products for {_amount(sub, 'subtotal_cents')}. "
                            f"Sub-order {sub.get('sub_order_id')} is waiting to be shipped."))
    elif t == "order.cancelled" and customer:
        out.append((customer, "Order cancelled", f"Your order {order_id} was cancelled."))
    elif t == "order.expired" and customer:
        out.append((customer, "Order expired",
                    f"The payment window for order {order_id} closed; the items went back on sale."))
    elif t == "suborder.status_changed" and customer:
        out.append((customer, f"Order {order_id}: {ev.get('sub_order_status')}",
                    f"Part of your order {order_id} is now '{ev.get('sub_order_status')}'. "
                    f"Overall status: {ev.get('fulfillment_status')}."))
    return out


def handle(ev: dict) -> int:
    """Send the emails for ``ev``; delivery problems are logged, never raised."""
    sent = 0
    for to, subject, body in messages_for(ev):
        try:
            send_email(to, subject, body)
            sent += 1
        except (smtplib.SMTPException, OSError) as e:
            log.warning("notify.send_failed", to=to, type=ev.get("type"), error=str(e))
    return sent
