"""Sub-order endpoints via TestClient."""

import pytest

from bazart.db.models import Order
from bazart.services import checkout, payment_outcome
from bazart.store import cart_store
from conftest import auth


@pytest.fixture()
def paid_order(db, customer, artisan, other_artisan, payments, make_product):
    a = make_product(artisan, price_cents=1000, name="Tazza")
    b = make_product(other_artisan, price_cents=2000, name="Tagliere")
    cart_store.add_item(db, customer.id, a.id, 2)
    cart_store.add_item(db, customer.id, b.id, 1)
    res = checkout.initiate(db, customer.id, customer.email, payments)
    payment_outcome.confirm_payment(db, res.order_id)
    return db.get(Order, res.order_id)


def _sub_id(order, artisan):
    return next(s.id for s in order.sub_orders if s.artisan_id == artisan.id)


class TestSubOrderReads:
    def test_my_sub_orders(self, client, customer, artisan, paid_order):
        body = client.get("/suborders/v1/suborders/mine", headers=auth(artisan)).json()
        assert len(body) == 1
        sub = body[0]
        assert sub["status"] == "In attesa"
        assert sub["items"] == [
            {"product_id": sub["items"][0]["product_id"], "title": "Tazza", "qty": 2,
             "historical_unit_price": 10.0, "subtotal": 20.0}
        ]
        assert sub["customer_info"]["email"] == customer.email
        assert sub["customer_info"]["address"] == "Via Roma 1"

    def test_sub_order_detail_for_owner(self, client, artisan, paid_order):
        sub_id = _sub_id(paid_order, artisan)
        response = client.get(f"/suborders/v1/suborders/{sub_id}", headers=auth(artisan))
        assert response.status_code == 200
        assert response.json()["sub_order_id"] == sub_id

    def test_sub_order_detail_hidden_from_other_artisan(self, client, artisan, other_artisan, paid_order):
        sub_id = _sub_id(paid_order, artisan)
        assert client.get(f"/suborders/v1/suborders/{sub_id}", headers=auth(other_artisan)).status_code == 404

    def test_order_detail_shows_artisan_only_their_sub_order(self, client, artisan, paid_order):
        response = client.get(f"/order/v1/orders/{paid_order.id}", headers=auth(artisan))
        assert response.status_code == 200
        assert [s["artisan_id"] for s in response.json()["sub_orders"]] == [artisan.id]

    def test_order_detail_hidden_from_artisan_outside_order(self, client, make_user, paid_order):
        outsider = make_user("artisan")
        assert client.get(f"/order/v1/orders/{paid_order.id}", headers=auth(outsider)).status_code == 404

    def test_admin_lists_artisan(self, client, admin, artisan, paid_order):
        response = client.get(f"/suborders/v1/suborders/artisans/{artisan.id}", headers=auth(admin))
        assert response.status_code == 200
        assert len(response.json()) == 1

    def test_customer_cannot_list(self, client, customer, artisan, paid_order):
        response = client.get(f"/suborders/v1/suborders/artisans/{artisan.id}", headers=auth(customer))
        assert response.status_code == 403


class TestSubOrderStatusEndpoints:
    def test_ship(self, client, artisan, paid_order):
        sub_id = _sub_id(paid_order, artisan)
        response = client.put(f"/suborders/v1/suborders/{sub_id}/status", json={"status": "Spedito"},
                              headers=auth(artisan))
        assert response.status_code == 200
        assert response.json()["status"] == "Spedito"

    def test_ship_by_pairing(self, client, artisan, paid_order):
        response = client.put(
            f"/suborders/v1/suborders/orders/{paid_order.id}/artisans/{artisan.id}/status",
            json={"status": "Spedito"}, headers=auth(artisan),
        )
        assert response.status_code == 200

    def test_skip_is_rejected(self, client, artisan, paid_order):
        sub_id = _sub_id(paid_order, artisan)
        response = client.put(f"/suborders/v1/suborders/{sub_id}/status", json={"status": "Consegnato"},
                              headers=auth(artisan))
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransition"

    def test_unknown_status_value(self, client, artisan, paid_order):
        sub_id = _sub_id(paid_order, artisan)
        response = client.put(f"/suborders/v1/suborders/{sub_id}/status", json={"status": "Da spedire"},
                              headers=auth(artisan))
        assert response.status_code == 422

    def test_other_artisan_forbidden(self, client, artisan, other_artisan, paid_order):
        sub_id = _sub_id(paid_order, artisan)
        response = client.put(f"/suborders/v1/suborders/{sub_id}/status", json={"status": "Spedito"},
                              headers=auth(other_artisan))
        assert response.status_code == 403

    def test_pairing_for_someone_else(self, client, artisan, other_artisan, paid_order):
        response = client.put(
            f"/suborders/v1/suborders/orders/{paid_order.id}/artisans/{artisan.id}/status",
            json={"status": "Spedito"}, headers=auth(other_artisan),
        )
        assert response.status_code == 403

    def test_customer_cannot_update(self, client, customer, artisan, paid_order):
        sub_id = _sub_id(paid_order, artisan)
        response = client.put(f"/suborders/v1/suborders/{sub_id}/status", json={"status": "Spedito"},
                              headers=auth(customer))
        assert response.status_code == 403

    def test_order_rollup_after_delivery(self, client, customer, artisan, other_artisan, paid_order):
        for who in (artisan, other_artisan):
            for status in ("Spedito", "Consegnato"):
                r = client.put(
                    f"/suborders/v1/suborders/orders/{paid_order.id}/artisans/{who.id}/status",
                    json={"status": status}, headers=auth(who),
                )
                assert r.status_code == 200, r.text
        body = client.get(f"/order/v1/orders/{paid_order.id}", headers=auth(customer)).json()
        assert body["fulfillment_status"] == "Consegnato"
