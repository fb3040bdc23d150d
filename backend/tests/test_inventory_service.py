import pytest

from billing.extensions import db
from billing.services.inventory_service import adjust_stock, get_stock
from billing.validation import InvalidReferenceError, NotFoundError


def test_adjust_stock_applies_relative_delta(db_session, product_a):
    assert adjust_stock(product_a.id, -3) == 7
    assert adjust_stock(product_a.id, 5) == 12
    db.session.commit()

    assert get_stock(product_a.id) == 12


def test_adjust_stock_allows_negative(db_session, product_a):
    assert adjust_stock(product_a.id, -15) == -5
    db.session.commit()
    assert get_stock(product_a.id) == -5


def test_adjust_stock_is_undone_by_rollback(db_session, product_a):
    adjust_stock(product_a.id, -4)
    db.session.rollback()

    assert get_stock(product_a.id) == 10


def test_unknown_product(db_session):
    with pytest.raises(InvalidReferenceError):
        adjust_stock(424242, 1)
    with pytest.raises(NotFoundError):
        get_stock(424242)
