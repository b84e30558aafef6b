from fastapi import APIRouter, Depends
from typing import List
from sqlalchemy.orm import Session

from bazart.api.deps import get_db
from bazart.core.auth import Identity, get_current_identity, require_capability
from bazart.core.logging import bind_request_context
from bazart.core.permissions import Capability
from bazart.db.models import SubOrder, User
from bazart.schemas import SubOrderRead, SubOrderStatusUpdate, sub_order_read
from bazart.services import suborders as suborder_service

router = APIRouter()

artisan = require_capability(Capability.FULFIL_SUBORDERS)

def _read(db: Session, sub: SubOrder) -> SubOrderRead:
    return sub_order_read(sub, db.get(User, sub.order.customer_id))

@router.get("/v1/suborders/mine", response_model=List[SubOrderRead])
def my_sub_orders(identity: Identity = Depends(artisan), db: Session = Depends(get_db)):
    return [_read(db, s) for s in suborder_service.list_for_artisan(db, identity, identity.user_id)]

@router.get("/v1/suborders/artisans/{artisan_id}", response_model=List[SubOrderRead])
def artisan_sub_orders(artisan_id: int, include_unpaid: bool = False,
                       identity: Identity = Depends(require_capability(Capability.FULFIL_SUBORDERS, Capability.VIEW_ANY_SUBORDER)),
                       db: Session = Depends(get_db)):
    subs = suborder_service.list_for_artisan(db, identity, artisan_id, include_unpaid=include_unpaid)
    return [_read(db, s) for s in subs]

@router.get("/v1/suborders/{sub_order_id}", response_model=SubOrderRead)
def get_sub_order(sub_order_id: int, identity: Identity = Depends(get_current_identity), db: Session = Depends(get_db)):
    return _read(db, suborder_service.visible_sub_order(db, identity, sub_order_id))

@router.put("/v1/suborders/{sub_order_id}/status", response_model=SubOrderRead)
def update_status(sub_order_id: int, payload: SubOrderStatusUpdate, identity: Identity = Depends(artisan),
                  db: Session = Depends(get_db)):
    bind_request_context(artisan_id=identity.user_id, sub_order_id=sub_order_id)
    sub = suborder_service.set_status(db, identity, sub_order_id, identity.user_id, payload.status)
    return _read(db, sub)

@router.put("/v1/suborders/orders/{order_id}/artisans/{artisan_id}/status", response_model=SubOrderRead)
def update_status_for_order(order_id: int, artisan_id: int, payload: SubOrderStatusUpdate,
                            identity: Identity = Depends(artisan), db: Session = Depends(get_db)):
    bind_request_context(artisan_id=identity.user_id, order_id=order_id)
    sub = suborder_service.set_status_for_pairing(db, identity, order_id, artisan_id, payload.status)
    return _read(db, sub)
