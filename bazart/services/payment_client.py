"""HTTP client for the payment provider's hosted checkout sessions.

Only two calls are used: create a session for an order and read a session back
to learn whether it was paid.
"""
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from bazart.core.config import settings
from bazart.core.logging import get_logger
from bazart.errors import PaymentProviderError

log = get_logger(__name__)


@dataclass(frozen=True)
class PaymentSession:
    session_id: str
    url: str


@dataclass(frozen=True)
class SessionStatus:
    session_id: str
    paid: bool
    expired: bool
    order_id: int | None


class PaymentClient:
    def __init__(self, base_url: str | None = None, secret_key: str | None = None,
                 timeout: float | None = None, transport: httpx.BaseTransport | None = None):
        self.base_url = (base_url or settings.PAYMENT_API_BASE).rstrip("/")
        self.secret_key = secret_key or settings.PAYMENT_SECRET_KEY
        self.timeout = timeout or settings.PAYMENT_TIMEOUT_SECONDS
        self.transport = transport

    def _request(self, method: str, path: str, data: dict | None = None) -> dict:
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                resp = client.request(
                    method, path, data=data,
                    headers={"Authorization": f"Bearer {self.secret_key}"},
                )
        except httpx.RequestError as e:
            log.warning("payment.provider_unreachable", path=path, error=str(e))
            raise PaymentProviderError("Payment provider unavailable")
        if resp.status_code >= 400:
            log.warning("payment.provider_error", path=path, status=resp.status_code, body=resp.text[:500])
            raise PaymentProviderError("Payment provider rejected the request", provider_status=resp.status_code)
        try:
            return resp.json()
        except ValueError:
            raise PaymentProviderError("Payment provider returned a malformed response")

    def create_session(self, order_id: int, amount_cents: int, customer_email: str | None,
                       expires_at: datetime | None = None) -> PaymentSession:
        data = {
            "mode": "payment",
            "client_reference_id": str(order_id),
            "metadata[order_id]": str(order_id),
            "line_items[0][quantity]": "1",
            "line_items[0][price_data][currency]": settings.CURRENCY.lower(),
            "line_items[0][price_data][unit_amount]": str(amount_cents),
            "line_items[0][price_data][product_data][name]": f"Bazart order #{order_id}",
            "success_url": (
                f"{settings.FRONTEND_URL}/pagamentoSuccesso.html"
                f"?order_id={order_id}&session_id={{CHECKOUT_SESSION_ID}}"
            ),
            "cancel_url": f"{settings.FRONTEND_URL}/carrello.html",
        }
        if customer_email:
            data["customer_email"] = customer_email
        if expires_at is not None:
            data["expires_at"] = str(int(expires_at.replace(tzinfo=timezone.utc).timestamp()))
        body = self._request("POST", "/v1/checkout/sessions", data)
        if not body.get("id") or not body.get("url"):
            raise PaymentProviderError("Payment provider returned no session")
        log.info("payment.session_created", order_id=order_id, session_id=body["id"])
        return PaymentSession(session_id=body["id"], url=body["url"])

    def verify_session(self, session_id: str) -> SessionStatus:
        body = self._request("GET", f"/v1/checkout/sessions/{session_id}")
        ref = body.get("client_reference_id")
        return SessionStatus(
            session_id=session_id,
            paid=body.get("payment_status") == "paid",
            expired=body.get("status") == "expired",
            order_id=int(ref) if ref and str(ref).isdigit() else None,
        )
