from fastapi import APIRouter, Depends
from typing import List, Optional
from sqlalchemy.orm import Session

from bazart.api.deps import get_db
from bazart.core.auth import Identity, require_capability
from bazart.core.permissions import Capability
from bazart.errors import ForbiddenError
from bazart.schemas import CartItemAdd, CartItemDelta, CartItemUpdate, CartRead, cart_read
from bazart.store import cart_store

router = APIRouter()

shopper = require_capability(Capability.MANAGE_OWN_CART)

@router.get("/v1/cart", response_model=CartRead)
def get_my_cart(identity: Identity = Depends(shopper), db: Session = Depends(get_db)):
    return cart_read(cart_store.get_cart(db, identity.user_id))

@router.post("/v1/cart/items", response_model=CartRead, status_code=201)
def add_item(payload: CartItemAdd, identity: Identity = Depends(shopper), db: Session = Depends(get_db)):
    return cart_read(cart_store.add_item(db, identity.user_id, payload.product_id, payload.qty))

@router.patch("/v1/cart/items/{product_id}", response_model=CartRead)
def update_item(product_id: int, payload: CartItemUpdate, identity: Identity = Depends(shopper),
                db: Session = Depends(get_db)):
    # qty <= 0 removes the line
    return cart_read(cart_store.set_quantity(db, identity.user_id, product_id, payload.qty))

@router.post("/v1/cart/items/{product_id}/increment", response_model=CartRead)
def increment_item(product_id: int, payload: Optional[CartItemDelta] = None, identity: Identity = Depends(shopper),
                   db: Session = Depends(get_db)):
    return cart_read(cart_store.increment(db, identity.user_id, product_id, payload.delta if payload else 1))

@router.post("/v1/cart/items/{product_id}/decrement", response_model=CartRead)
def decrement_item(product_id: int, payload: Optional[CartItemDelta] = None, identity: Identity = Depends(shopper),
                   db: Session = Depends(get_db)):
    return cart_read(cart_store.decrement(db, identity.user_id, product_id, payload.delta if payload else 1))

@router.delete("/v1/cart/items/{product_id}", response_model=CartRead)
def remove_item(product_id: int, identity: Identity = Depends(shopper), db: Session = Depends(get_db)):
    return cart_read(cart_store.remove_item(db, identity.user_id, product_id))

@router.post("/v1/cart/clear", response_model=CartRead)
def clear(identity: Identity = Depends(shopper), db: Session = Depends(get_db)):
    return cart_read(cart_store.clear_cart(db, identity.user_id))

# --- admin / owner reads ---
@router.get("/v1/carts", response_model=List[CartRead])
def list_carts(_: Identity = Depends(require_capability(Capability.VIEW_ANY_CART)), db: Session = Depends(get_db)):
    return [cart_read(v) for v in cart_store.list_carts(db)]

@router.get("/v1/carts/{customer_id}", response_model=CartRead)
def get_customer_cart(customer_id: int,
                      identity: Identity = Depends(require_capability(Capability.VIEW_ANY_CART, Capability.MANAGE_OWN_CART)),
                      db: Session = Depends(get_db)):
    if customer_id != identity.user_id and not identity.can(Capability.VIEW_ANY_CART):
        raise ForbiddenError("Cannot read another customer's cart", customer_id=customer_id)
    return cart_read(cart_store.get_cart(db, customer_id))
