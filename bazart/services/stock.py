"""Authoritative per-product availability counter.

``reserve`` and ``release`` only stage their UPDATE inside the caller's
transaction; committing (or rolling back) is always the caller's job.
"""
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bazart.core.logging import get_logger
from bazart.db.models import Product
from bazart.errors import InsufficientStockError, InternalError, NotFoundError

log = get_logger(__name__)


def available(db: Session, product_id: int) -> int:
    qty = db.execute(
        select(Product.available_qty).where(Product.id == product_id, Product.deleted.is_(False))
    ).scalar_one_or_none()
    if qty is None:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
    return qty


def check_availability(db: Session, product_id: int, qty: int) -> bool:
    return available(db, product_id) >= qty


def reserve(db: Session, product_id: int, qty: int) -> None:
    if qty <= 0:
        raise InternalError(f"Cannot reserve {qty} units", product_id=product_id)
    # single conditional decrement: never drives available_qty below zero
    res = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.deleted.is_(False), Product.available_qty >= qty)
        .values(available_qty=Product.available_qty - qty)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        log.info("stock.reserve_rejected", product_id=product_id, qty=qty)
        raise InsufficientStockError(
            f"Insufficient stock for product_id {product_id}", product_id=product_id, requested=qty
        )
    log.debug("stock.reserved", product_id=product_id, qty=qty)


def release(db: Session, product_id: int, qty: int) -> None:
    res = db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(available_qty=Product.available_qty + qty)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        raise InternalError(f"Cannot release stock for missing product_id {product_id}", product_id=product_id)
    log.debug("stock.released", product_id=product_id, qty=qty)
