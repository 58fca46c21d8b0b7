from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from stockledger import crud, ledger, models, queries
from stockledger.exceptions import NotFound, StorageUnavailable, ValidationError
from stockledger.models import ProductStatus


def _p(stock, min_stock=5, price="1.00", status=ProductStatus.ACTIVE, id=1):
    return SimpleNamespace(
        id=id, current_stock=stock, min_stock_level=min_stock,
        price=Decimal(price), status=status,
    )


@pytest.mark.parametrize("stock,expected", [(0, True), (5, True), (6, False)])
def test_is_low_stock_boundary(stock, expected):
    assert queries.is_low_stock(_p(stock, min_stock=5)) is expected


def test_out_of_stock():
    assert queries.out_of_stock(_p(0))
    assert not queries.out_of_stock(_p(1))


def test_summarize_counts_active_products_only():
    products = [
        _p(10, price="2.50", id=1),
        _p(3, price="4.00", id=2),
        _p(0, price="9.99", id=3),
        _p(100, price="1.00", status=ProductStatus.INACTIVE, id=4),
    ]

    summary = queries.summarize(products)

    assert summary.total_products == 3
    assert summary.low_stock_count == 2
    assert summary.out_of_stock_count == 1
    assert summary.total_value == Decimal("37.00")
    assert [p.id for p in summary.low_stock_items] == [3, 2]


def test_summarize_empty():
    summary = queries.summarize([])
    assert summary.total_products == 0
    assert summary.total_value == Decimal("0.00")


def test_list_movements_newest_first_and_paginated(db, user, make_product):
    product = make_product(stock=0)
    for quantity in range(1, 8):
        ledger.adjust_stock(db, product.id, quantity, f"Receipt {quantity}", user.id)

    page = queries.list_movements(db, product.id, limit=3, offset=0)
    assert [m.quantity for m in page] == [7, 6, 5]
    assert page.total() == 7

    page = queries.list_movements(db, product.id, limit=3, offset=6)
    assert [m.quantity for m in page] == [1]


def test_movement_page_is_restartable(db, user, make_product):
    product = make_product(stock=0)
    ledger.adjust_stock(db, product.id, 4, "Receipt", user.id)
    page = queries.list_movements(db, product.id)

    assert len(list(page)) == 1
    ledger.adjust_stock(db, product.id, -1, "Sale", user.id)
    assert [m.quantity for m in page] == [-1, 4]


def test_list_movements_empty_history(db, make_product):
    product = make_product(stock=0)
    assert list(queries.list_movements(db, product.id)) == []


def test_list_movements_unknown_product(db):
    with pytest.raises(NotFound):
        queries.list_movements(db, 404)


def test_list_movements_rejects_bad_paging(db, make_product):
    product = make_product(stock=0)
    with pytest.raises(ValidationError):
        queries.list_movements(db, product.id, limit=0)
    with pytest.raises(ValidationError):
        queries.list_movements(db, product.id, offset=-1)


def test_iter_movements_walks_all_batches(db, user, make_product):
    product = make_product(stock=0)
    for _ in range(5):
        ledger.adjust_stock(db, product.id, 1, "Receipt", user.id)

    movements = list(queries.iter_movements(db, product.id, batch_size=2))
    assert len(movements) == 5
    assert [m.new_stock for m in movements] == [5, 4, 3, 2, 1]


def test_search_products_filters(db, make_product):
    make_product(stock=50, min_stock=5, name="Blue Pen")
    low = make_product(stock=2, min_stock=5, name="Red Pen")
    gone = make_product(stock=1, min_stock=5, name="Old Pen")
    crud.deactivate_product(db, gone.id)

    products, total = queries.search_products(db, search="pen")
    assert total == 2
    assert {p.name for p in products} == {"Blue Pen", "Red Pen"}

    products, total = queries.search_products(db, low_stock=True)
    assert [p.id for p in products] == [low.id]

    products, total = queries.search_products(db, include_inactive=True)
    assert total == 3


def test_low_stock_products_ordered_by_stock(db, make_product):
    a = make_product(stock=4, min_stock=5)
    b = make_product(stock=1, min_stock=5)
    make_product(stock=40, min_stock=5)

    assert [p.id for p in queries.low_stock_products(db)] == [b.id, a.id]


def test_low_stock_products_reports_storage_failure(db, make_product, monkeypatch):
    make_product(stock=1, min_stock=5)

    def broken_query(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    monkeypatch.setattr(db, "query", broken_query)
    with pytest.raises(StorageUnavailable):
        queries.low_stock_products(db)


def test_movements_follow_id_order_not_timestamps(db, user, make_product):
    product = make_product(stock=0)
    first = ledger.adjust_stock(db, product.id, 10, "Receipt", user.id).movement.id
    second = ledger.adjust_stock(db, product.id, -5, "Sale", user.id).movement.id

    # A writer with a slow clock stamps the later movement before the earlier one.
    movements_table = models.Movement.__table__
    db.execute(
        movements_table.update()
        .where(movements_table.c.id == second)
        .values(created_at=datetime.utcnow() - timedelta(hours=1))
    )
    db.commit()
    db.expire_all()

    movements = list(queries.list_movements(db, product.id))
    assert [m.id for m in movements] == [second, first]
    assert movements[0].previous_stock == movements[1].new_stock
    assert [m.id for m in queries.iter_movements(db, product.id)] == [second, first]


def test_iter_movements_not_shifted_by_new_rows(db, user, make_product):
    product = make_product(stock=0)
    for _ in range(5):
        ledger.adjust_stock(db, product.id, 1, "Receipt", user.id)

    walk = queries.iter_movements(db, product.id, batch_size=2)
    seen = [next(walk).new_stock, next(walk).new_stock]
    ledger.adjust_stock(db, product.id, 1, "Late receipt", user.id)
    seen.extend(m.new_stock for m in walk)

    assert seen == [5, 4, 3, 2, 1]
