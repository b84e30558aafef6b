"""Partition an order's lines into one sub-order per artisan."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List

from sqlalchemy.orm import Session

from bazart.core.money import line_subtotal
from bazart.db.models import Order, OrderItem, SubOrder, SubOrderStatus
from bazart.errors import InternalError
from bazart.store.cart_store import CartLine


@dataclass(frozen=True)
class DraftLine:
    product_id: int
    title: str
    qty: int
    historical_unit_price_cents: int

    @property
    def subtotal_cents(self) -> int:
        return line_subtotal(self.qty, self.historical_unit_price_cents)


@dataclass
class SubOrderDraft:
    artisan_id: int
    lines: List[DraftLine] = field(default_factory=list)

    @property
    def subtotal_cents(self) -> int:
        return sum(l.subtotal_cents for l in self.lines)


def split_lines(lines: Iterable[CartLine]) -> List[SubOrderDraft]:
    """Group cart lines by owning artisan, freezing the unit price seen right now.

    Drafts come back ordered by artisan id and the sum of their subtotals equals
    the cart total.
    """
    drafts: dict[int, SubOrderDraft] = {}
    for line in lines:
        if line.artisan_id is None:
            raise InternalError(f"Product {line.product_id} has no owning artisan", product_id=line.product_id)
        draft = drafts.setdefault(line.artisan_id, SubOrderDraft(artisan_id=line.artisan_id))
        draft.lines.append(DraftLine(
            product_id=line.product_id,
            title=line.product_name,
            qty=line.qty,
            historical_unit_price_cents=line.unit_price_cents,
        ))
    return [drafts[k] for k in sorted(drafts)]


def materialize(db: Session, order: Order, drafts: List[SubOrderDraft], now: datetime) -> List[SubOrder]:
    """Stage SubOrder and OrderItem rows for ``order``; no commit."""
    created = []
    for d in drafts:
        sub = SubOrder(
            order_id=order.id,
            artisan_id=d.artisan_id,
            status=SubOrderStatus.IN_ATTESA,
            subtotal_cents=d.subtotal_cents,
            updated_at=now,
        )
        db.add(sub)
        db.flush()
        for l in d.lines:
            db.add(OrderItem(
                sub_order_id=sub.id,
                product_id=l.product_id,
                title_snapshot=l.title,
                qty=l.qty,
                historical_unit_price_cents=l.historical_unit_price_cents,
                subtotal_cents=l.subtotal_cents,
            ))
        created.append(sub)
    return created
