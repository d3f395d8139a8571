"""Tests for the Order aggregate: placement snapshot, totals and state machine."""

import json

import pytest
from commerce.errors import TransitionNotAllowed
from commerce.inventory.engine import Reservation, ReservedLine
from commerce.order.events import OrderCancelled, OrderPaid, OrderPlaced, OrderStatusChanged
from commerce.order.order import Order, OrderStatus, OrderTotals, PaymentStatus, compute_total
from protean.exceptions import ValidationError

ADDRESS = {"full_name": "Achieng Otieno", "line1": "Oginga Odinga Street", "city": "Kisumu"}


def _reservation(*lines):
    lines = lines or (
        ReservedLine(
            product_id="prod-001",
            variant_id=None,
            quantity=2,
            name="Kikoy Beach Towel",
            sku="KIKOY-001",
            unit_price=150_000,
            currency="KES",
            allocations={"": 2},
        ),
    )
    return Reservation(reference="ORD-2026-000001", lines=list(lines))


def _make_order(**overrides):
    defaults = {
        "order_number": "ORD-2026-000001",
        "user_id": "user-001",
        "reservation": _reservation(),
        "shipping_address": ADDRESS,
        "shipping_fee": 10_000,
    }
    defaults.update(overrides)
    return Order.place(**defaults)


def _order_in(status):
    order = _make_order()
    order.status = status.value
    return order


class TestComputeTotal:
    def test_sum(self):
        assert compute_total(300_000, 10_000, 5_000, 2_000) == 313_000

    def test_floored_at_zero(self):
        assert compute_total(1_000, 0, 0, 5_000) == 0

    def test_totals_invariant(self):
        with pytest.raises(ValidationError):
            OrderTotals(sub_total=100, shipping_fee=10, total=50)


class TestPlace:
    def test_snapshots_lines(self):
        order = _make_order()
        (line,) = order.lines
        assert line.name == "Kikoy Beach Towel"
        assert line.unit_price == 150_000
        assert line.quantity == 2
        assert line.line_total == 300_000
        assert json.loads(line.allocations) == {"": 2}

    def test_totals(self):
        order = _make_order()
        assert order.totals.sub_total == 300_000
        assert order.totals.shipping_fee == 10_000
        assert order.totals.total == 310_000

    def test_starts_pending_with_pending_payment(self):
        order = _make_order(payment_provider="mpesa")
        assert order.status == OrderStatus.PENDING.value
        assert order.payment.status == PaymentStatus.PENDING.value
        assert order.payment.amount == 310_000
        assert order.payment.provider == "mpesa"

    def test_currency_taken_from_lines(self):
        assert _make_order().currency == "KES"

    def test_billing_defaults_to_shipping(self):
        order = _make_order()
        assert order.billing_address.line1 == ADDRESS["line1"]

    def test_raises_order_placed(self):
        order = _make_order()
        (event,) = [e for e in order._events if isinstance(e, OrderPlaced)]
        assert event.order_number == "ORD-2026-000001"
        assert event.total == 310_000

    def test_requires_lines(self):
        with pytest.raises(ValidationError):
            _make_order(reservation=Reservation(reference=None, lines=[]))

    def test_requires_address_line(self):
        with pytest.raises(ValidationError):
            _make_order(shipping_address={"city": "Kisumu"})


class TestMarkPaid:
    def test_pending_order_becomes_paid(self):
        order = _make_order()
        order.mark_paid(transaction_id="tx-1", amount=310_000, receipt_id="QKX1", provider="mpesa")
        assert order.status == OrderStatus.PAID.value
        assert order.payment.status == PaymentStatus.PAID.value
        assert order.payment.receipt_id == "QKX1"
        assert order.paid_at is not None
        assert any(isinstance(e, OrderPaid) for e in order._events)

    def test_amount_must_match_total(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.mark_paid(transaction_id="tx-1", amount=300_000)
        assert order.status == OrderStatus.PENDING.value

    def test_cannot_pay_cancelled_order(self):
        order = _order_in(OrderStatus.CANCELLED)
        with pytest.raises(TransitionNotAllowed):
            order.mark_paid(transaction_id="tx-1", amount=310_000)

    def test_is_payable_only_when_pending(self):
        assert _make_order().is_payable is True
        assert _order_in(OrderStatus.PAID).is_payable is False


class TestCancel:
    @pytest.mark.parametrize("status", [OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.PROCESSING])
    def test_cancellable_states(self, status):
        order = _order_in(status)
        order.cancel(reason="Changed my mind", cancelled_by="user-001")
        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation_reason == "Changed my mind"
        assert order.payment.status == PaymentStatus.FAILED.value
        (event,) = [e for e in order._events if isinstance(e, OrderCancelled)]
        assert event.previous_status == status.value

    @pytest.mark.parametrize(
        "status", [OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED]
    )
    def test_non_cancellable_states(self, status):
        order = _order_in(status)
        with pytest.raises(TransitionNotAllowed):
            order.cancel(reason="too late", cancelled_by="user-001")
        assert order.status == status.value


class TestChangeStatus:
    def test_fulfilment_path(self):
        order = _order_in(OrderStatus.PAID)
        for target in ("processing", "shipped", "delivered"):
            order.change_status(target, changed_by="admin-1")
        assert order.status == OrderStatus.DELIVERED.value
        changes = [e.new_status for e in order._events if isinstance(e, OrderStatusChanged)]
        assert changes == ["processing", "shipped", "delivered"]

    def test_refund_marks_payment_refunded(self):
        order = _order_in(OrderStatus.PAID)
        order.change_status("refunded", changed_by="admin-1")
        assert order.payment.status == PaymentStatus.REFUNDED.value

    def test_pending_cannot_skip_to_shipped(self):
        with pytest.raises(TransitionNotAllowed):
            _make_order().change_status("shipped", changed_by="admin-1")

    def test_paid_cannot_be_set_directly(self):
        with pytest.raises(ValidationError):
            _make_order().change_status("paid", changed_by="admin-1")

    def test_cancelled_must_go_through_cancel(self):
        with pytest.raises(ValidationError):
            _make_order().change_status("cancelled", changed_by="admin-1")

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            _make_order().change_status("teleported", changed_by="admin-1")

    def test_delivered_is_terminal(self):
        with pytest.raises(TransitionNotAllowed):
            _order_in(OrderStatus.DELIVERED).change_status("refunded", changed_by="admin-1")
