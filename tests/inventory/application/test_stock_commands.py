"""Application tests for product registration, restock and corrections."""

import json

import pytest
from commerce.inventory.movements import MovementReason, movements_for
from commerce.inventory.product import Product, load_locations
from commerce.inventory.registration import AddProduct
from commerce.inventory.repository import StockOp
from commerce.inventory.restock import CorrectStock, RestockProduct
from protean import current_domain
from protean.exceptions import ValidationError


def _add_product(**overrides):
    defaults = {"name": "Kiondo Bag", "unit_price": 250_000, "sku": "KIONDO-1", "stock": 5}
    defaults.update(overrides)
    return current_domain.process(AddProduct(**defaults), asynchronous=False)


def _product(product_id):
    return current_domain.repository_for(Product).get(product_id)


class TestAddProduct:
    def test_returns_product_id(self):
        product_id = _add_product()
        assert _product(product_id).name == "Kiondo Bag"

    def test_with_locations(self):
        product_id = _add_product(stock_by_location=json.dumps({"kisumu": 3, "nairobi": 2}))
        product = _product(product_id)
        assert product.stock == 5
        assert load_locations(product.stock_by_location) == {"kisumu": 3, "nairobi": 2}

    def test_with_variants(self):
        product_id = _add_product(variants=json.dumps([{"title": "Small", "stock": 1}, {"title": "Large", "stock": 2}]))
        assert _product(product_id).stock == 3


class TestRestock:
    def test_restock_increases_stock(self):
        product_id = _add_product(stock=0)
        stock = current_domain.process(RestockProduct(product_id=product_id, quantity=7), asynchronous=False)
        assert stock == 7
        assert _product(product_id).in_stock is True

    def test_restock_records_movement(self):
        product_id = _add_product(stock=1)
        current_domain.process(
            RestockProduct(product_id=product_id, quantity=4, note="PO-19", actor="admin-1"), asynchronous=False
        )
        (movement,) = movements_for(product_id)
        assert movement.reason == MovementReason.RESTOCK.value
        assert movement.change == 4
        assert movement.reference_id == "PO-19"

    def test_restock_requires_positive_quantity(self):
        product_id = _add_product()
        with pytest.raises(ValidationError):
            RestockProduct(product_id=product_id, quantity=0)

    def test_restock_location(self):
        product_id = _add_product(stock_by_location=json.dumps({"kisumu": 1}))
        current_domain.process(
            RestockProduct(product_id=product_id, quantity=2, location="nairobi"), asynchronous=False
        )
        assert _product(product_id).available(location="nairobi") == 2


class TestCorrectStock:
    def test_negative_correction(self):
        product_id = _add_product(stock=5)
        stock = current_domain.process(CorrectStock(product_id=product_id, change=-2), asynchronous=False)
        assert stock == 3
        assert movements_for(product_id)[0].reason == MovementReason.ADJUSTMENT.value

    def test_zero_correction_rejected(self):
        product_id = _add_product(stock=5)
        with pytest.raises(ValidationError):
            current_domain.process(CorrectStock(product_id=product_id, change=0), asynchronous=False)

    def test_correction_below_zero_rejected(self):
        product_id = _add_product(stock=1)
        with pytest.raises(ValidationError):
            current_domain.process(CorrectStock(product_id=product_id, change=-2), asynchronous=False)
        assert _product(product_id).stock == 1


class TestProductRepository:
    def test_find_by_id_returns_none_when_missing(self):
        assert current_domain.repository_for(Product).find_by_id("missing") is None

    def test_find_many_skips_missing(self):
        product_id = _add_product()
        found = current_domain.repository_for(Product).find_many([product_id, "missing", product_id])
        assert list(found) == [product_id]

    def test_bulk_adjust_applies_in_order(self):
        product_id = _add_product(stock=5)
        repo = current_domain.repository_for(Product)
        touched = repo.bulk_adjust_stock([StockOp(product_id, -3), StockOp(product_id, 1)])
        assert touched[product_id].stock == 3
        assert repo.get(product_id).stock == 3
