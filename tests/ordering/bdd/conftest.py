"""Shared BDD fixtures and step definitions for the order lifecycle."""

import pytest
from commerce.errors import ConflictError
from commerce.inventory.product import Product
from commerce.order.order import Order
from commerce.order.placement import place_order
from commerce.order.status import change_order_status
from commerce.payment.ledger import PaymentLedger
from protean import current_domain
from pytest_bdd import given, parsers, then

CUSTOMER = "user-001"


@pytest.fixture()
def products():
    return {}


@pytest.fixture()
def error():
    """Container for the exception raised by a When step."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('a product "{name}" with {stock:d} units in stock'))
def _(products, add_product, name, stock):
    products[name] = str(add_product(name=name, sku=f"SKU-{name}", stock=stock).id)


@given(parsers.cfparse('a customer ordered {quantity:d} unit of "{name}"'), target_fixture="order_id")
def _(products, address, quantity, name):
    return place_order(
        user_id=CUSTOMER,
        items=[{"product_id": products[name], "quantity": quantity}],
        shipping_address=address,
    )


@given("the order was paid")
def _(order_id):
    PaymentLedger().initiate(order_id=order_id, provider="none", requested_by=CUSTOMER, idempotency_key="bdd")


@given(parsers.cfparse('an administrator moved the order to "{status}"'))
def _(order_id, status):
    change_order_status(order_id, status, changed_by="admin-1")


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the stock of "{name}" is {stock:d}'))
def _(products, name, stock):
    assert current_domain.repository_for(Product).get(products[name]).stock == stock


@then(parsers.cfparse('the order status is "{status}"'))
def _(order_id, status):
    assert current_domain.repository_for(Order).get(order_id).status == status


@then("the order action is refused as a conflict")
def _(error):
    assert isinstance(error["exc"], ConflictError), f"Expected a conflict, got {error['exc']!r}"
