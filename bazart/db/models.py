from datetime import datetime
from enum import Enum

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, DateTime, Enum as SAEnum, ForeignKey,
    Index, Integer, String, Text, UniqueConstraint, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bazart.core.clock import now_utc
from bazart.db.session import Base


def _enum(cls, name: str):
    # store the enum values ("In attesa"), not member names
    return SAEnum(cls, name=name, native_enum=False, length=32,
                  values_callable=lambda e: [m.value for m in e])


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), default="")
    address: Mapped[str] = mapped_column(Text, default="")
    role: Mapped[str] = mapped_column(String(32), default="customer")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("available_qty >= 0", name="ck_products_available_qty"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(240), nullable=False)
    price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    available_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    artisan_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (CheckConstraint("qty > 0", name="ck_cart_items_qty"),)

    customer_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), primary_key=True)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    subtotal_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        # at most one PENDING order per customer
        Index(
            "uq_orders_one_pending_per_customer", "customer_id", unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    status: Mapped[OrderStatus] = mapped_column(_enum(OrderStatus, "order_status"), default=OrderStatus.PENDING, nullable=False)
    total_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="EUR")
    payment_session_id: Mapped[str | None] = mapped_column(String(255), index=True, nullable=True)
    payment_session_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)
    expires_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)

    sub_orders = relationship("SubOrder", back_populates="order", order_by="SubOrder.artisan_id")
    reservations = relationship("StockReservation", back_populates="order", order_by="StockReservation.product_id")


class SubOrderStatus(str, Enum):
    IN_ATTESA = "In attesa"
    SPEDITO = "Spedito"
    CONSEGNATO = "Consegnato"


class SubOrder(Base):
    __tablename__ = "sub_orders"
    __table_args__ = (UniqueConstraint("order_id", "artisan_id", name="uq_sub_orders_order_artisan"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    artisan_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    status: Mapped[SubOrderStatus] = mapped_column(_enum(SubOrderStatus, "sub_order_status"), default=SubOrderStatus.IN_ATTESA, nullable=False)
    subtotal_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)

    order = relationship("Order", back_populates="sub_orders")
    items = relationship("OrderItem", back_populates="sub_order", order_by="OrderItem.product_id")


class OrderItem(Base):
    """Frozen copy of a cart line at reservation time."""
    __tablename__ = "order_items"
    __table_args__ = (UniqueConstraint("sub_order_id", "product_id", name="uq_order_items_sub_order_product"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sub_order_id: Mapped[int] = mapped_column(ForeignKey("sub_orders.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title_snapshot: Mapped[str] = mapped_column(String(255), nullable=False)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    historical_unit_price_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    subtotal_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)

    sub_order = relationship("SubOrder", back_populates="items")


class ReservationStatus(str, Enum):
    HELD = "HELD"
    COMMITTED = "COMMITTED"
    RELEASED = "RELEASED"


class StockReservation(Base):
    __tablename__ = "stock_reservations"
    __table_args__ = (UniqueConstraint("order_id", "product_id", name="uq_stock_reservations_order_product"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    qty: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(_enum(ReservationStatus, "reservation_status"), default=ReservationStatus.HELD, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(), default=now_utc)

    order = relationship("Order", back_populates="reservations")
