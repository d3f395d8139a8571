"""BDD tests for payment reconciliation."""

from commerce.gateway.fake_adapter import TEST_SIGNATURE, FakeGateway
from commerce.payment.reconciliation import ReconciliationHandler
from commerce.payment.transaction import PaymentTransaction
from protean import current_domain
from pytest_bdd import parsers, scenarios, when

scenarios("features/payment_reconciliation.feature")


def _deliver(callbacks, payload):
    callbacks.append(ReconciliationHandler().handle_callback("fake", payload, TEST_SIGNATURE))


def _correlation_id(transaction_id):
    return current_domain.repository_for(PaymentTransaction).get(transaction_id).correlation_id


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse("the provider reports success for {amount:d}"))
def _(callbacks, transaction_id, amount):
    _deliver(callbacks, FakeGateway.callback_payload(_correlation_id(transaction_id), amount))


@when("the provider reports failure")
def _(callbacks, transaction_id):
    _deliver(callbacks, FakeGateway.callback_payload(_correlation_id(transaction_id), None, succeeded=False))


@when("the provider reports success for an unknown request")
def _(callbacks):
    _deliver(callbacks, FakeGateway.callback_payload("fake_req_nobody", 310_000))
