"""Per-customer cart lines kept in the relational store.

Lines live next to orders so that clearing a cart and creating an order commit
together. Stock is only read here, never reserved.
"""
from dataclasses import dataclass, field
from itertools import groupby
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bazart.core.clock import now_utc
from bazart.core.logging import get_logger
from bazart.core.money import line_subtotal
from bazart.db.models import CartItem, Product
from bazart.errors import ConflictError, InsufficientStockError, NotFoundError, OutOfStockError
from bazart.services import stock

log = get_logger(__name__)


@dataclass(frozen=True)
class CartLine:
    """A cart line priced at the product's current unit price."""
    product_id: int
    product_name: str
    qty: int
    unit_price_cents: int
    artisan_id: int | None

    @property
    def subtotal_cents(self) -> int:
        return line_subtotal(self.qty, self.unit_price_cents)


@dataclass(frozen=True)
class CartView:
    customer_id: int
    lines: List[CartLine] = field(default_factory=list)

    @property
    def total_cents(self) -> int:
        return sum(l.subtotal_cents for l in self.lines)


def _line(item: CartItem, product: Product) -> CartLine:
    return CartLine(
        product_id=product.id,
        product_name=product.name,
        qty=item.qty,
        unit_price_cents=product.price_cents,
        artisan_id=product.artisan_id,
    )


def _live_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if not product or product.deleted:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
    return product


def _item(db: Session, customer_id: int, product_id: int) -> CartItem | None:
    return db.get(CartItem, (customer_id, product_id))


def get_cart(db: Session, customer_id: int) -> CartView:
    rows = db.execute(
        select(CartItem, Product)
        .join(Product, Product.id == CartItem.product_id)
        .where(CartItem.customer_id == customer_id, Product.deleted.is_(False))
        .order_by(CartItem.added_at, CartItem.product_id)
    ).all()
    return CartView(customer_id=customer_id, lines=[_line(i, p) for i, p in rows])


def list_carts(db: Session) -> List[CartView]:
    rows = db.execute(
        select(CartItem, Product)
        .join(Product, Product.id == CartItem.product_id)
        .where(Product.deleted.is_(False))
        .order_by(CartItem.customer_id, CartItem.added_at, CartItem.product_id)
    ).all()
    return [
        CartView(customer_id=cid, lines=[_line(i, p) for i, p in group])
        for cid, group in groupby(rows, key=lambda r: r[0].customer_id)
    ]


def add_item(db: Session, customer_id: int, product_id: int, qty: int) -> CartView:
    product = _live_product(db, product_id)
    if _item(db, customer_id, product_id):
        raise ConflictError("Product already in cart", product_id=product_id)
    if not stock.check_availability(db, product_id, qty):
        raise OutOfStockError(
            f"Only {stock.available(db, product_id)} units available", product_id=product_id, requested=qty
        )
    now = now_utc()
    db.add(CartItem(
        customer_id=customer_id,
        product_id=product_id,
        qty=qty,
        subtotal_cents=line_subtotal(qty, product.price_cents),
        added_at=now,
        updated_at=now,
    ))
    try:
        db.commit()
    except IntegrityError:
        # a concurrent add for the same product won the insert
        db.rollback()
        raise ConflictError("Product already in cart", product_id=product_id)
    log.info("cart.item_added", customer_id=customer_id, product_id=product_id, qty=qty)
    return get_cart(db, customer_id)


def set_quantity(db: Session, customer_id: int, product_id: int, qty: int) -> CartView:
    product = _live_product(db, product_id)
    item = _item(db, customer_id, product_id)
    if not item:
        raise NotFoundError("Item not in cart", product_id=product_id)
    if qty <= 0:
        db.delete(item)
        db.commit()
        log.info("cart.item_removed", customer_id=customer_id, product_id=product_id)
        return get_cart(db, customer_id)
    if not stock.check_availability(db, product_id, qty):
        raise InsufficientStockError(
            f"Only {stock.available(db, product_id)} units available", product_id=product_id, requested=qty
        )
    item.qty = qty
    item.subtotal_cents = line_subtotal(qty, product.price_cents)
    item.updated_at = now_utc()
    db.commit()
    log.info("cart.item_updated", customer_id=customer_id, product_id=product_id, qty=qty)
    return get_cart(db, customer_id)


def increment(db: Session, customer_id: int, product_id: int, delta: int = 1) -> CartView:
    _live_product(db, product_id)
    item = _item(db, customer_id, product_id)
    if not item:
        raise NotFoundError("Item not in cart", product_id=product_id)
    return set_quantity(db, customer_id, product_id, item.qty + delta)


def decrement(db: Session, customer_id: int, product_id: int, delta: int = 1) -> CartView:
    return increment(db, customer_id, product_id, -delta)


def remove_item(db: Session, customer_id: int, product_id: int) -> CartView:
    item = _item(db, customer_id, product_id)
    if not item:
        raise NotFoundError("Item not in cart", product_id=product_id)
    db.delete(item)
    db.commit()
    log.info("cart.item_removed", customer_id=customer_id, product_id=product_id)
    return get_cart(db, customer_id)


def clear_cart(db: Session, customer_id: int) -> CartView:
    delete_lines(db, customer_id)
    db.commit()
    log.info("cart.cleared", customer_id=customer_id)
    return CartView(customer_id=customer_id)


def lines_for_checkout(db: Session, customer_id: int) -> List[CartLine]:
    """Every line of the cart, by product id; a line whose product was deleted is an error."""
    rows = db.execute(
        select(CartItem, Product)
        .join(Product, Product.id == CartItem.product_id)
        .where(CartItem.customer_id == customer_id)
        .order_by(CartItem.product_id)
    ).all()
    for _, product in rows:
        if product.deleted:
            raise NotFoundError(
                f"Product {product.id} is no longer available; remove it from the cart", product_id=product.id
            )
    return [_line(i, p) for i, p in rows]


def delete_lines(db: Session, customer_id: int) -> None:
    db.execute(delete(CartItem).where(CartItem.customer_id == customer_id))
