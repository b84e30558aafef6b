import pytest

from bazart.db.models import Order, SubOrderStatus
from bazart.errors import ForbiddenError, InvalidTransitionError, NotFoundError
from bazart.services import checkout, payment_outcome, suborders
from bazart.store import cart_store
from conftest import identity_for


@pytest.fixture()
def order(db, customer, artisan, other_artisan, payments, make_product):
    a = make_product(artisan, price_cents=1000)
    b = make_product(other_artisan, price_cents=2000)
    cart_store.add_item(db, customer.id, a.id, 2)
    cart_store.add_item(db, customer.id, b.id, 1)
    res = checkout.initiate(db, customer.id, customer.email, payments)
    return db.get(Order, res.order_id)


def _sub_of(order, artisan):
    return next(s for s in order.sub_orders if s.artisan_id == artisan.id)


class TestTransitions:
    @pytest.mark.parametrize("current, new, allowed", [
        (SubOrderStatus.IN_ATTESA, SubOrderStatus.SPEDITO, True),
        (SubOrderStatus.SPEDITO, SubOrderStatus.CONSEGNATO, True),
        (SubOrderStatus.IN_ATTESA, SubOrderStatus.CONSEGNATO, False),
        (SubOrderStatus.SPEDITO, SubOrderStatus.IN_ATTESA, False),
        (SubOrderStatus.CONSEGNATO, SubOrderStatus.SPEDITO, False),
        (SubOrderStatus.SPEDITO, SubOrderStatus.SPEDITO, False),
    ])
    def test_can_transition(self, current, new, allowed):
        assert suborders.can_transition(current, new) is allowed


class TestSetStatus:
    def test_ship_then_deliver(self, db, artisan, order):
        payment_outcome.confirm_payment(db, order.id)
        sub = _sub_of(order, artisan)
        me = identity_for(artisan)
        suborders.set_status(db, me, sub.id, artisan.id, SubOrderStatus.SPEDITO)
        updated = suborders.set_status(db, me, sub.id, artisan.id, SubOrderStatus.CONSEGNATO)
        assert updated.status == SubOrderStatus.CONSEGNATO

    def test_only_touches_one_sub_order(self, db, artisan, other_artisan, order):
        payment_outcome.confirm_payment(db, order.id)
        sub = _sub_of(order, artisan)
        suborders.set_status(db, identity_for(artisan), sub.id, artisan.id, SubOrderStatus.SPEDITO)
        assert _sub_of(order, other_artisan).status == SubOrderStatus.IN_ATTESA

    def test_skipping_a_step(self, db, artisan, order):
        payment_outcome.confirm_payment(db, order.id)
        sub = _sub_of(order, artisan)
        with pytest.raises(InvalidTransitionError):
            suborders.set_status(db, identity_for(artisan), sub.id, artisan.id, SubOrderStatus.CONSEGNATO)

    def test_unpaid_parent(self, db, artisan, order):
        sub = _sub_of(order, artisan)
        with pytest.raises(InvalidTransitionError):
            suborders.set_status(db, identity_for(artisan), sub.id, artisan.id, SubOrderStatus.SPEDITO)

    def test_cancelled_parent_freezes(self, db, customer, artisan, order):
        checkout.cancel(db, customer.id, order.id)
        sub = _sub_of(order, artisan)
        with pytest.raises(InvalidTransitionError) as exc:
            suborders.set_status(db, identity_for(artisan), sub.id, artisan.id, SubOrderStatus.SPEDITO)
        assert exc.value.details["order_status"] == "CANCELLED"
        assert sub.status == SubOrderStatus.IN_ATTESA

    def test_other_artisan_is_forbidden(self, db, artisan, other_artisan, order):
        payment_outcome.confirm_payment(db, order.id)
        sub = _sub_of(order, artisan)
        with pytest.raises(ForbiddenError):
            suborders.set_status(db, identity_for(other_artisan), sub.id, other_artisan.id, SubOrderStatus.SPEDITO)

    def test_claiming_someone_elses_id_is_forbidden(self, db, artisan, other_artisan, order):
        payment_outcome.confirm_payment(db, order.id)
        sub = _sub_of(order, artisan)
        with pytest.raises(ForbiddenError):
            suborders.set_status(db, identity_for(other_artisan), sub.id, artisan.id, SubOrderStatus.SPEDITO)

    def test_admin_cannot_change_status(self, db, admin, artisan, order):
        payment_outcome.confirm_payment(db, order.id)
        sub = _sub_of(order, artisan)
        with pytest.raises(ForbiddenError):
            suborders.set_status(db, identity_for(admin), sub.id, admin.id, SubOrderStatus.SPEDITO)

    def test_missing_sub_order(self, db, artisan):
        with pytest.raises(NotFoundError):
            suborders.set_status(db, identity_for(artisan), 999, artisan.id, SubOrderStatus.SPEDITO)


class TestSetStatusForPairing:
    def test_by_order_and_artisan(self, db, artisan, order):
        payment_outcome.confirm_payment(db, order.id)
        sub = suborders.set_status_for_pairing(db, identity_for(artisan), order.id, artisan.id, SubOrderStatus.SPEDITO)
        assert sub.status == SubOrderStatus.SPEDITO

    def test_pairing_mismatch(self, db, make_user, order):
        payment_outcome.confirm_payment(db, order.id)
        outsider = make_user("artisan")
        with pytest.raises(NotFoundError):
            suborders.set_status_for_pairing(db, identity_for(outsider), order.id, outsider.id, SubOrderStatus.SPEDITO)


class TestFulfillmentStatus:
    def test_none_before_payment(self, order):
        assert suborders.fulfillment_status(order) is None

    def test_rollup(self, db, artisan, other_artisan, order):
        payment_outcome.confirm_payment(db, order.id)
        assert suborders.fulfillment_status(order) == SubOrderStatus.IN_ATTESA

        a, b = identity_for(artisan), identity_for(other_artisan)
        suborders.set_status_for_pairing(db, a, order.id, artisan.id, SubOrderStatus.SPEDITO)
        assert suborders.fulfillment_status(order) == SubOrderStatus.IN_ATTESA

        suborders.set_status_for_pairing(db, b, order.id, other_artisan.id, SubOrderStatus.SPEDITO)
        assert suborders.fulfillment_status(order) == SubOrderStatus.SPEDITO

        suborders.set_status_for_pairing(db, a, order.id, artisan.id, SubOrderStatus.CONSEGNATO)
        assert suborders.fulfillment_status(order) == SubOrderStatus.SPEDITO

        suborders.set_status_for_pairing(db, b, order.id, other_artisan.id, SubOrderStatus.CONSEGNATO)
        assert suborders.fulfillment_status(order) == SubOrderStatus.CONSEGNATO


class TestListing:
    def test_unpaid_sub_orders_hidden_by_default(self, db, artisan, order):
        me = identity_for(artisan)
        assert suborders.list_for_artisan(db, me, artisan.id) == []
        assert len(suborders.list_for_artisan(db, me, artisan.id, include_unpaid=True)) == 1

    def test_paid_sub_orders_listed(self, db, artisan, order):
        payment_outcome.confirm_payment(db, order.id)
        subs = suborders.list_for_artisan(db, identity_for(artisan), artisan.id)
        assert [s.order_id for s in subs] == [order.id]

    def test_admin_may_list_any_artisan(self, db, admin, artisan, order):
        payment_outcome.confirm_payment(db, order.id)
        assert len(suborders.list_for_artisan(db, identity_for(admin), artisan.id)) == 1

    def test_artisan_may_not_list_another(self, db, artisan, other_artisan, order):
        with pytest.raises(ForbiddenError):
            suborders.list_for_artisan(db, identity_for(other_artisan), artisan.id)
