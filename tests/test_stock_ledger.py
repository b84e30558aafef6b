import pytest

from bazart.errors import InsufficientStockError, NotFoundError
from bazart.services import stock


class TestCheckAvailability:
    def test_enough_stock(self, db, artisan, make_product):
        p = make_product(artisan, qty=3)
        assert stock.check_availability(db, p.id, 3) is True

    def test_not_enough_stock(self, db, artisan, make_product):
        p = make_product(artisan, qty=3)
        assert stock.check_availability(db, p.id, 4) is False

    def test_deleted_product_is_missing(self, db, artisan, make_product):
        p = make_product(artisan, qty=3, deleted=True)
        with pytest.raises(NotFoundError):
            stock.available(db, p.id)


class TestReserveRelease:
    def test_reserve_decrements(self, db, artisan, make_product):
        p = make_product(artisan, qty=5)
        stock.reserve(db, p.id, 2)
        db.commit()
        assert stock.available(db, p.id) == 3

    def test_reserve_exact_remaining_stock(self, db, artisan, make_product):
        p = make_product(artisan, qty=2)
        stock.reserve(db, p.id, 2)
        db.commit()
        assert stock.available(db, p.id) == 0

    def test_reserve_beyond_stock_has_no_effect(self, db, artisan, make_product):
        p = make_product(artisan, qty=1)
        with pytest.raises(InsufficientStockError) as exc:
            stock.reserve(db, p.id, 2)
        db.rollback()
        assert exc.value.details["product_id"] == p.id
        assert stock.available(db, p.id) == 1

    def test_reserve_on_deleted_product_fails(self, db, artisan, make_product):
        p = make_product(artisan, qty=5, deleted=True)
        with pytest.raises(InsufficientStockError):
            stock.reserve(db, p.id, 1)

    def test_repeated_reserves_never_go_negative(self, db, artisan, make_product):
        p = make_product(artisan, qty=3)
        taken = 0
        for _ in range(5):
            try:
                stock.reserve(db, p.id, 1)
                taken += 1
            except InsufficientStockError:
                pass
        db.commit()
        assert taken == 3
        assert stock.available(db, p.id) == 0

    def test_release_restores(self, db, artisan, make_product):
        p = make_product(artisan, qty=4)
        stock.reserve(db, p.id, 3)
        stock.release(db, p.id, 3)
        db.commit()
        assert stock.available(db, p.id) == 4
