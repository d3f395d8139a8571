"""Shared BDD fixtures and step definitions for stock reservation."""

import pytest
from commerce.errors import ReservationFailed
from commerce.inventory.product import Product
from protean import current_domain
from pytest_bdd import given, parsers, then


@pytest.fixture()
def products():
    """Scenario product names → ids."""
    return {}


@pytest.fixture()
def error():
    """Container for the exception raised by a When step."""
    return {"exc": None}


@given(parsers.cfparse('a product "{name}" with {stock:d} units in stock'))
def _(products, add_product, name, stock):
    product = add_product(name=name, sku=f"SKU-{name}", stock=stock)
    products[name] = str(product.id)


@then(parsers.cfparse('the stock of "{name}" is {stock:d}'))
def _(products, name, stock):
    assert current_domain.repository_for(Product).get(products[name]).stock == stock


@then(parsers.cfparse('the reservation fails with "{reason}" for "{name}"'))
def _(products, error, reason, name):
    exc = error["exc"]
    assert isinstance(exc, ReservationFailed), f"Expected ReservationFailed, got {exc!r}"
    assert [(f.product_id, f.reason) for f in exc.failures] == [(products[name], reason)]
