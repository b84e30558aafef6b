from fastapi import APIRouter, Depends
from typing import List, Optional
from sqlalchemy.orm import Session

from bazart.api.deps import get_db, get_payment_client
from bazart.core.auth import Identity, get_current_identity, require_capability
from bazart.core.logging import bind_request_context
from bazart.core.money import to_amount
from bazart.core.permissions import Capability
from bazart.db.models import OrderStatus
from bazart.schemas import CheckoutResponse, OrderDetail, OrderRead, order_read, sub_order_read
from bazart.services import checkout as checkout_service
from bazart.services import orders as order_service
from bazart.services.payment_client import PaymentClient
from bazart.services.suborders import fulfillment_status

router = APIRouter()

buyer = require_capability(Capability.PLACE_ORDERS)

@router.post("/v1/orders/checkout", response_model=CheckoutResponse, status_code=201)
def checkout(identity: Identity = Depends(buyer), db: Session = Depends(get_db),
             payments: PaymentClient = Depends(get_payment_client)):
    bind_request_context(customer_id=identity.user_id)
    res = checkout_service.initiate(db, identity.user_id, identity.email, payments)
    return CheckoutResponse(order_id=res.order_id, payment_session_url=res.payment_session_url,
                            total=to_amount(res.total_cents))

@router.post("/v1/orders/{order_id}/cancel", response_model=OrderRead)
def cancel(order_id: int, identity: Identity = Depends(buyer), db: Session = Depends(get_db)):
    bind_request_context(customer_id=identity.user_id, order_id=order_id)
    return order_read(checkout_service.cancel(db, identity.user_id, order_id))

@router.get("/v1/orders/mine", response_model=List[OrderRead])
def my_orders(status: Optional[OrderStatus] = None, identity: Identity = Depends(buyer),
              db: Session = Depends(get_db)):
    return [order_read(o) for o in order_service.list_for_customer(db, identity.user_id, status)]

@router.get("/v1/orders/{order_id}", response_model=OrderDetail)
def get_order(order_id: int, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    order = order_service.visible_order(db, identity, order_id)
    return OrderDetail(
        **order_read(order).model_dump(),
        fulfillment_status=fulfillment_status(order),
        sub_orders=[sub_order_read(s) for s in order_service.visible_sub_orders(order, identity)],
    )
