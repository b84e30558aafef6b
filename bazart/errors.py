"""Failure kinds shared by the cart, checkout and fulfilment code.

Every error carries a stable ``kind`` (rendered as ``error`` in responses), a
human readable message and optional details that are merged into the JSON body.
``kinds`` in the body also lists the broader kinds, so ``OutOfStock`` is reported
as ``["OutOfStock", "InsufficientStock"]``.
"""
from typing import Any


class MarketplaceError(Exception):
    kind = "Internal"
    status_code = 500
    retryable = False

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    @classmethod
    def kind_chain(cls) -> list[str]:
        """Own kind first, then every broader kind it specializes."""
        chain = []
        for c in cls.__mro__:
            if not issubclass(c, MarketplaceError) or c is MarketplaceError:
                continue
            k = c.__dict__.get("kind")
            if k and k not in chain:
                chain.append(k)
        return chain

    def to_dict(self) -> dict:
        body = {"error": self.kind, "kinds": self.kind_chain(), "message": self.message}
        body.update(self.details)
        return body


class NotFoundError(MarketplaceError):
    kind = "NotFound"
    status_code = 404


class ForbiddenError(MarketplaceError):
    kind = "Forbidden"
    status_code = 403


class ConflictError(MarketplaceError):
    kind = "Conflict"
    status_code = 409


class PendingOrderExistsError(ConflictError):
    """The customer already has a PENDING order; carries its reference."""

    def __init__(self, existing_order_id: int, payment_session_url: str | None):
        super().__init__(
            "A pending order already exists for this customer",
            existing_order_id=existing_order_id,
            payment_session_url=payment_session_url,
        )
        self.existing_order_id = existing_order_id
        self.payment_session_url = payment_session_url


class InsufficientStockError(MarketplaceError):
    kind = "InsufficientStock"
    status_code = 409


class OutOfStockError(InsufficientStockError):
    kind = "OutOfStock"


class EmptyCartError(MarketplaceError):
    kind = "EmptyCart"
    status_code = 400


class InvalidTransitionError(MarketplaceError):
    kind = "InvalidTransition"
    status_code = 409


class InvalidStateError(InvalidTransitionError):
    kind = "InvalidState"


class InternalError(MarketplaceError):
    kind = "Internal"


class PaymentProviderError(InternalError):
    kind = "PaymentProviderUnavailable"
    status_code = 503
    retryable = True
