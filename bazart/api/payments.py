from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bazart.api.deps import get_db, get_payment_client, internal_only
from bazart.core.auth import Identity, get_current_identity
from bazart.schemas import PaymentEvent, VerifySessionRequest, VerifySessionResponse
from bazart.services import payment_outcome
from bazart.services.payment_client import PaymentClient

router = APIRouter()

@router.post("/v1/payments/verify-session", response_model=VerifySessionResponse)
def verify_session(payload: VerifySessionRequest, identity: Identity = Depends(get_current_identity),
                   db: Session = Depends(get_db), payments: PaymentClient = Depends(get_payment_client)):
    order = payment_outcome.settle_session(db, payments, payload.session_id, payload.order_id,
                                           customer_id=identity.user_id)
    return VerifySessionResponse(order_id=order.id, status=order.status.value)

@router.post("/v1/payments/webhook", response_model=VerifySessionResponse | None)
def payment_webhook(payload: PaymentEvent, _=Depends(internal_only), db: Session = Depends(get_db)):
    order = payment_outcome.handle_payment_event(db, payload.model_dump())
    if order is None:
        return None
    return VerifySessionResponse(order_id=order.id, status=order.status.value)
