"""Application tests for cancellation and administrative status changes."""

import pytest
from commerce.errors import TransitionNotAllowed
from commerce.inventory.movements import MovementReason, movements_for
from commerce.inventory.product import Product
from commerce.order.cancellation import cancel_order
from commerce.order.order import Order, OrderStatus, PaymentStatus
from commerce.order.status import change_order_status
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError


def _stock(product_id):
    return current_domain.repository_for(Product).get(product_id).stock


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


@pytest.fixture()
def product(add_product):
    return add_product(stock=10)


@pytest.fixture()
def order(product, place):
    return place([{"product_id": str(product.id), "quantity": 3}])


class TestCancelOrder:
    def test_restores_stock_exactly(self, product, order):
        assert _stock(product.id) == 7
        cancel_order(order.id, cancelled_by="user-001", reason="Changed my mind")
        assert _stock(product.id) == 10

    def test_marks_order_cancelled(self, order):
        cancel_order(order.id, cancelled_by="user-001", reason="Changed my mind")
        cancelled = _order(order.id)
        assert cancelled.status == OrderStatus.CANCELLED.value
        assert cancelled.payment.status == PaymentStatus.FAILED.value
        assert cancelled.cancelled_by == "user-001"

    def test_records_cancellation_movement(self, product, order):
        cancel_order(order.id, cancelled_by="user-001")
        reasons = sorted(m.reason for m in movements_for(product.id))
        assert reasons == sorted([MovementReason.ORDER.value, MovementReason.CANCELLATION.value])

    def test_second_cancel_conflicts_and_restores_nothing(self, product, order):
        cancel_order(order.id, cancelled_by="user-001")
        with pytest.raises(TransitionNotAllowed):
            cancel_order(order.id, cancelled_by="user-001")
        assert _stock(product.id) == 10

    def test_shipped_order_cannot_be_cancelled(self, product, order):
        current = _order(order.id)
        current.status = OrderStatus.SHIPPED.value
        current_domain.repository_for(Order).add(current)

        with pytest.raises(TransitionNotAllowed):
            cancel_order(order.id, cancelled_by="user-001")
        assert _stock(product.id) == 7

    def test_unknown_order(self):
        with pytest.raises(ObjectNotFoundError):
            cancel_order("missing", cancelled_by="user-001")

    def test_location_stock_goes_back_where_it_came_from(self, add_product, place):
        product = add_product(stock_by_location={"kisumu": 2, "nairobi": 5})
        order = place([{"product_id": str(product.id), "quantity": 6}])

        cancel_order(order.id, cancelled_by="user-001")

        restored = current_domain.repository_for(Product).get(product.id)
        assert restored.available(location="kisumu") == 2
        assert restored.available(location="nairobi") == 5


class TestChangeOrderStatus:
    def _paid(self, order):
        current = _order(order.id)
        current.mark_paid(transaction_id="tx-1", amount=current.totals.total)
        current_domain.repository_for(Order).add(current)

    def test_fulfilment_statuses(self, order):
        self._paid(order)
        for status in ("processing", "shipped", "delivered"):
            assert change_order_status(order.id, status, changed_by="admin-1") == status
        assert _order(order.id).status == OrderStatus.DELIVERED.value

    def test_admin_cancel_restores_stock(self, product, order):
        change_order_status(order.id, "cancelled", changed_by="admin-1", reason="Fraud check failed")
        assert _stock(product.id) == 10
        cancelled = _order(order.id)
        assert cancelled.cancellation_reason == "Fraud check failed"
        assert cancelled.cancelled_by == "admin-1"

    def test_refund_leaves_stock_alone(self, product, order):
        self._paid(order)
        change_order_status(order.id, "refunded", changed_by="admin-1")
        refunded = _order(order.id)
        assert refunded.status == OrderStatus.REFUNDED.value
        assert refunded.payment.status == PaymentStatus.REFUNDED.value
        assert _stock(product.id) == 7

    def test_invalid_transition(self, order):
        with pytest.raises(TransitionNotAllowed):
            change_order_status(order.id, "delivered", changed_by="admin-1")

    def test_paid_is_reserved_for_reconciliation(self, order):
        with pytest.raises(ValidationError):
            change_order_status(order.id, "paid", changed_by="admin-1")
