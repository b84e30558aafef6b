"""Fulfilment lifecycle of the per-artisan slices of an order.

    In attesa -> Spedito -> Consegnato

Only single forward steps are accepted, only by the artisan that owns the
sub-order and only once the parent order is PAID. A CANCELLED or EXPIRED
parent freezes its sub-orders for good.
"""
from datetime import datetime
from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from bazart.core.auth import Identity
from bazart.core.clock import now_utc
from bazart.core.logging import get_logger
from bazart.core.permissions import Capability
from bazart.db.models import Order, OrderStatus, SubOrder, SubOrderStatus
from bazart.errors import ForbiddenError, InvalidTransitionError, NotFoundError
from bazart.kafka.producer import emit_order_event

log = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    SubOrderStatus.IN_ATTESA: SubOrderStatus.SPEDITO,
    SubOrderStatus.SPEDITO: SubOrderStatus.CONSEGNATO,
}
FROZEN_PARENT = (OrderStatus.CANCELLED, OrderStatus.EXPIRED)


def can_transition(current: SubOrderStatus, new: SubOrderStatus) -> bool:
    return ALLOWED_TRANSITIONS.get(current) == new


def fulfillment_status(order: Order) -> SubOrderStatus | None:
    """Rollup of the sub-order statuses; None until the order is paid."""
    if order.status != OrderStatus.PAID or not order.sub_orders:
        return None
    statuses = {s.status for s in order.sub_orders}
    if statuses == {SubOrderStatus.CONSEGNATO}:
        return SubOrderStatus.CONSEGNATO
    if statuses <= {SubOrderStatus.SPEDITO, SubOrderStatus.CONSEGNATO}:
        return SubOrderStatus.SPEDITO
    return SubOrderStatus.IN_ATTESA


def get_sub_order(db: Session, sub_order_id: int, lock: bool = False) -> SubOrder:
    stmt = select(SubOrder).where(SubOrder.id == sub_order_id)
    if lock:
        stmt = stmt.with_for_update()
    sub = db.execute(stmt).scalar_one_or_none()
    if sub is None:
        raise NotFoundError("Sub-order not found", sub_order_id=sub_order_id)
    return sub


def get_by_pairing(db: Session, order_id: int, artisan_id: int, lock: bool = False) -> SubOrder:
    stmt = select(SubOrder).where(SubOrder.order_id == order_id, SubOrder.artisan_id == artisan_id)
    if lock:
        stmt = stmt.with_for_update()
    sub = db.execute(stmt).scalar_one_or_none()
    if sub is None:
        raise NotFoundError("No sub-order for this order and artisan", order_id=order_id, artisan_id=artisan_id)
    return sub


def _apply(db: Session, sub: SubOrder, new_status: SubOrderStatus, now: datetime) -> SubOrder:
    parent = sub.order
    if parent.status in FROZEN_PARENT:
        raise InvalidTransitionError(
            f"Order is {parent.status.value}; its sub-orders can no longer change",
            sub_order_id=sub.id, order_status=parent.status.value,
        )
    if parent.status != OrderStatus.PAID:
        raise InvalidTransitionError(
            "Order has not been paid yet", sub_order_id=sub.id, order_status=parent.status.value
        )
    if not can_transition(sub.status, new_status):
        raise InvalidTransitionError(
            f"Cannot move from '{sub.status.value}' to '{new_status.value}'",
            sub_order_id=sub.id, current=sub.status.value, requested=new_status.value,
        )
    previous = sub.status
    sub.status = new_status
    sub.updated_at = now
    db.commit()
    log.info("suborder.status_changed", sub_order_id=sub.id, order_id=sub.order_id,
             artisan_id=sub.artisan_id, previous=previous.value, status=new_status.value)
    emit_order_event(
        db, parent, "suborder.status_changed",
        sub_order_id=sub.id, artisan_id=sub.artisan_id, sub_order_status=new_status.value,
        fulfillment_status=fulfillment_status(parent).value,
    )
    return sub


def set_status(db: Session, caller: Identity, sub_order_id: int, artisan_id: int,
               new_status: SubOrderStatus, now: datetime | None = None) -> SubOrder:
    if caller.user_id != artisan_id or not caller.can(Capability.FULFIL_SUBORDERS):
        raise ForbiddenError("Only the owning artisan can update this sub-order", sub_order_id=sub_order_id)
    sub = get_sub_order(db, sub_order_id, lock=True)
    if sub.artisan_id != artisan_id:
        raise ForbiddenError("Only the owning artisan can update this sub-order", sub_order_id=sub_order_id)
    return _apply(db, sub, new_status, now or now_utc())


def set_status_for_pairing(db: Session, caller: Identity, order_id: int, artisan_id: int,
                           new_status: SubOrderStatus, now: datetime | None = None) -> SubOrder:
    if caller.user_id != artisan_id or not caller.can(Capability.FULFIL_SUBORDERS):
        raise ForbiddenError("Only the owning artisan can update this sub-order", order_id=order_id)
    sub = get_by_pairing(db, order_id, artisan_id, lock=True)
    return _apply(db, sub, new_status, now or now_utc())


def visible_sub_order(db: Session, caller: Identity, sub_order_id: int) -> SubOrder:
    sub = get_sub_order(db, sub_order_id)
    if sub.artisan_id != caller.user_id and not caller.can(Capability.VIEW_ANY_SUBORDER):
        raise NotFoundError("Sub-order not found", sub_order_id=sub_order_id)
    return sub


def list_for_artisan(db: Session, caller: Identity, artisan_id: int, include_unpaid: bool = False) -> List[SubOrder]:
    if artisan_id != caller.user_id and not caller.can(Capability.VIEW_ANY_SUBORDER):
        raise ForbiddenError("Cannot list another artisan's sub-orders", artisan_id=artisan_id)
    stmt = select(SubOrder).where(SubOrder.artisan_id == artisan_id)
    if not include_unpaid:
        stmt = stmt.where(SubOrder.activated_at.is_not(None))
    return list(db.execute(stmt.order_by(SubOrder.id.desc())).scalars())
