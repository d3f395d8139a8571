"""Shared BDD fixtures and step definitions for payment reconciliation."""

import pytest
from commerce.order.order import Order
from commerce.payment.ledger import PaymentLedger
from commerce.payment.transaction import PaymentTransaction
from protean import current_domain
from pytest_bdd import given, parsers, then


@pytest.fixture()
def callbacks():
    """Acknowledgements returned for each delivered callback, in order."""
    return []


@given(parsers.cfparse("a pending order totalling {total:d}"), target_fixture="order_id")
def _(add_product, place, total):
    # Kisumu delivery adds 10 000 to the item price
    product = add_product(stock=5, unit_price=total - 10_000)
    order = place([{"product_id": str(product.id), "quantity": 1}])
    assert order.totals.total == total
    return str(order.id)


@given(parsers.cfparse('a payment was requested through the "{provider}" provider'), target_fixture="transaction_id")
def _(fake_gateway, order_id, provider):
    result = PaymentLedger().initiate(
        order_id=order_id, provider=provider, requested_by="user-001", idempotency_key="bdd-recon"
    )
    return str(result.transaction.id)


@then(parsers.cfparse('the transaction status is "{status}"'))
def _(transaction_id, status):
    assert current_domain.repository_for(PaymentTransaction).get(transaction_id).status == status


@then(parsers.cfparse('the order status is "{status}"'))
def _(order_id, status):
    assert current_domain.repository_for(Order).get(order_id).status == status


@then(parsers.cfparse('the last callback was acknowledged as "{outcome}"'))
def _(callbacks, outcome):
    assert callbacks[-1].ok is True
    assert callbacks[-1].outcome == outcome
