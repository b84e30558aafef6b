from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from bazart.core.auth import Identity
from bazart.core.permissions import Capability
from bazart.db.models import Order, OrderStatus, SubOrder
from bazart.errors import NotFoundError


def list_for_customer(db: Session, customer_id: int, status: OrderStatus | None = None) -> List[Order]:
    stmt = select(Order).where(Order.customer_id == customer_id)
    if status is not None:
        stmt = stmt.where(Order.status == status)
    return list(db.execute(stmt.order_by(Order.created_at.desc(), Order.id.desc())).scalars())


def _sees_whole_order(order: Order, caller: Identity) -> bool:
    return order.customer_id == caller.user_id or caller.can(Capability.VIEW_ANY_ORDER)


def _fulfils_part_of(order: Order, caller: Identity) -> bool:
    return caller.can(Capability.FULFIL_SUBORDERS) and any(s.artisan_id == caller.user_id for s in order.sub_orders)


def visible_order(db: Session, caller: Identity, order_id: int) -> Order:
    """Owner, admin, or an artisan with a sub-order in it; anyone else reads it as missing."""
    order = db.get(Order, order_id)
    if order is None or not (_sees_whole_order(order, caller) or _fulfils_part_of(order, caller)):
        raise NotFoundError("Order not found", order_id=order_id)
    return order


def visible_sub_orders(order: Order, caller: Identity) -> List[SubOrder]:
    # artisans only see their own slice
    if _sees_whole_order(order, caller):
        return list(order.sub_orders)
    return [s for s in order.sub_orders if s.artisan_id == caller.user_id]
