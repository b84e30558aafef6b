from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional

from bazart.core.money import to_amount
from bazart.db.models import Order, SubOrder, SubOrderStatus, User
from bazart.store.cart_store import CartView

# --- cart ---
class CartItemAdd(BaseModel):
    product_id: int
    qty: int = Field(ge=1)

class CartItemUpdate(BaseModel):
    qty: int

class CartItemDelta(BaseModel):
    delta: int = Field(default=1, ge=1)

class CartItemRead(BaseModel):
    product_id: int
    product_name: str
    qty: int
    unit_price: float
    subtotal: float

class CartRead(BaseModel):
    customer_id: int
    items: List[CartItemRead] = []
    total: float = 0.0

def cart_read(view: CartView) -> CartRead:
    return CartRead(
        customer_id=view.customer_id,
        items=[
            CartItemRead(
                product_id=l.product_id,
                product_name=l.product_name,
                qty=l.qty,
                unit_price=to_amount(l.unit_price_cents),
                subtotal=to_amount(l.subtotal_cents),
            )
            for l in view.lines
        ],
        total=to_amount(view.total_cents),
    )

# --- orders ---
class CheckoutResponse(BaseModel):
    order_id: int
    payment_session_url: str
    total: float

class OrderItemRead(BaseModel):
    product_id: int
    title: str
    qty: int
    historical_unit_price: float
    subtotal: float

class CustomerInfo(BaseModel):
    id: int
    email: str
    full_name: str = ""
    address: str = ""

class SubOrderRead(BaseModel):
    sub_order_id: int
    order_id: int
    artisan_id: int
    status: SubOrderStatus
    subtotal: float
    activated_at: Optional[datetime] = None
    items: List[OrderItemRead] = []
    customer_info: Optional[CustomerInfo] = None

class OrderRead(BaseModel):
    id: int
    status: str
    total: float
    currency: str
    created_at: datetime
    expires_at: datetime
    paid_at: Optional[datetime] = None
    payment_session_url: Optional[str] = None

class OrderDetail(OrderRead):
    fulfillment_status: Optional[SubOrderStatus] = None
    sub_orders: List[SubOrderRead] = []

class SubOrderStatusUpdate(BaseModel):
    status: SubOrderStatus

def customer_info(user: User | None) -> CustomerInfo | None:
    if user is None:
        return None
    return CustomerInfo(id=user.id, email=user.email, full_name=user.full_name or "", address=user.address or "")

def sub_order_read(sub: SubOrder, customer: User | None = None) -> SubOrderRead:
    return SubOrderRead(
        sub_order_id=sub.id,
        order_id=sub.order_id,
        artisan_id=sub.artisan_id,
        status=sub.status,
        subtotal=to_amount(sub.subtotal_cents),
        activated_at=sub.activated_at,
        items=[
            OrderItemRead(
                product_id=it.product_id,
                title=it.title_snapshot,
                qty=it.qty,
                historical_unit_price=to_amount(it.historical_unit_price_cents),
                subtotal=to_amount(it.subtotal_cents),
            )
            for it in sub.items
        ],
        customer_info=customer_info(customer),
    )

def order_read(order: Order) -> OrderRead:
    return OrderRead(
        id=order.id,
        status=order.status.value,
        total=to_amount(order.total_cents),
        currency=order.currency,
        created_at=order.created_at,
        expires_at=order.expires_at,
        paid_at=order.paid_at,
        payment_session_url=order.payment_session_url,
    )

# --- payments ---
class VerifySessionRequest(BaseModel):
    session_id: str
    order_id: Optional[int] = None

class VerifySessionResponse(BaseModel):
    order_id: int
    status: str

class PaymentEvent(BaseModel):
    type: str
    order_id: int
    session_id: Optional[str] = None
