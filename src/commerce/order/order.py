"""Order aggregate: item snapshot, totals, payment summary and status lifecycle.

State Machine:
    PENDING → PAID → PROCESSING → SHIPPED → DELIVERED
    PENDING | PAID | PROCESSING → CANCELLED
    PAID → REFUNDED

Terminal states are DELIVERED, CANCELLED and REFUNDED.  Status only changes
through the transition methods below.  Lines and totals are captured once at
placement and never recomputed from live product data.  All money is held in
integer minor units.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, HasMany, Identifier, Integer, String, Text, ValueObject

from commerce.domain import commerce
from commerce.errors import TransitionNotAllowed
from commerce.inventory.product import DEFAULT_CURRENCY
from commerce.order.events import OrderCancelled, OrderPaid, OrderPlaced, OrderStatusChanged


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELLED},
    OrderStatus.PAID: {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

_CANCELLABLE_STATES = {OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.PROCESSING}

# Statuses an administrator may set directly. PAID is reserved for reconciliation.
ADMIN_STATUSES = {
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.REFUNDED,
}


def compute_total(sub_total, shipping_fee=0, tax_total=0, discount_total=0) -> int:
    return max(0, sub_total + shipping_fee + tax_total - discount_total)


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@commerce.value_object(part_of="Order")
class Address:
    """A delivery or billing address, copied onto the order at placement."""

    full_name = String(max_length=255)
    phone = String(max_length=50)
    company = String(max_length=255)
    line1 = String(required=True, max_length=255)
    line2 = String(max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=100, default="Kenya")


@commerce.value_object(part_of="Order")
class OrderTotals:
    sub_total = Integer(default=0, min_value=0)
    shipping_fee = Integer(default=0, min_value=0)
    tax_total = Integer(default=0, min_value=0)
    discount_total = Integer(default=0, min_value=0)
    total = Integer(default=0, min_value=0)

    @invariant.post
    def total_is_floored_sum_of_components(self):
        expected = compute_total(self.sub_total, self.shipping_fee, self.tax_total, self.discount_total)
        if self.total != expected:
            raise ValidationError({"total": [f"Total must be {expected}, got {self.total}"]})


@commerce.value_object(part_of="Order")
class PaymentSummary:
    """Mirror of the ledger's view of this order's payment."""

    provider = String(max_length=50)
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    amount = Integer(default=0, min_value=0)
    currency = String(max_length=3)
    transaction_id = Identifier()
    receipt_id = String(max_length=255)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@commerce.entity(part_of="Order")
class OrderLine:
    """Snapshot of one purchased item.

    ``allocations`` records the locations the stock was drawn from (JSON
    ``{location: quantity}``, ``""`` for untracked stock) so that
    cancellation puts it back in the same place.
    """

    product_id = Identifier(required=True)
    variant_id = Identifier()
    sku = String(max_length=64)
    name = String(required=True, max_length=255)
    unit_price = Integer(required=True, min_value=0)
    quantity = Integer(required=True, min_value=1)
    line_total = Integer(required=True, min_value=0)
    allocations = Text()


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@commerce.aggregate
class Order:
    order_number = String(required=True, max_length=30)
    user_id = Identifier(required=True)
    lines = HasMany(OrderLine)
    totals = ValueObject(OrderTotals)
    currency = String(max_length=3, default=DEFAULT_CURRENCY)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment = ValueObject(PaymentSummary)
    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)
    notes = Text()
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=255)
    paid_at = DateTime()
    cancelled_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def order_must_have_lines(self):
        if not self.lines:
            raise ValidationError({"lines": ["Order must contain at least one line"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        order_number,
        user_id,
        reservation,
        shipping_address,
        shipping_fee=0,
        billing_address=None,
        currency=None,
        payment_provider=None,
        tax_total=0,
        discount_total=0,
        notes=None,
    ):
        """Record an order for a successful reservation.

        Args:
            reservation: ``commerce.inventory.engine.Reservation`` whose lines
                carry the name, SKU, unit price and allocations to snapshot.
            shipping_address: Dict of ``Address`` fields.
            billing_address: Dict of ``Address`` fields; defaults to the
                shipping address.
        """
        now = datetime.now(UTC)
        currency = currency or (reservation.lines[0].currency if reservation.lines else DEFAULT_CURRENCY)

        lines = [
            OrderLine(
                product_id=line.product_id,
                variant_id=line.variant_id,
                sku=line.sku,
                name=line.name,
                unit_price=line.unit_price,
                quantity=line.quantity,
                line_total=line.unit_price * line.quantity,
                allocations=json.dumps(line.allocations, sort_keys=True),
            )
            for line in reservation.lines
        ]
        sub_total = sum(line.line_total for line in lines)
        totals = OrderTotals(
            sub_total=sub_total,
            shipping_fee=shipping_fee,
            tax_total=tax_total,
            discount_total=discount_total,
            total=compute_total(sub_total, shipping_fee, tax_total, discount_total),
        )

        order = cls(
            order_number=order_number,
            user_id=user_id,
            lines=lines,
            totals=totals,
            currency=currency,
            payment=PaymentSummary(
                provider=payment_provider,
                status=PaymentStatus.PENDING.value,
                amount=totals.total,
                currency=currency,
            ),
            shipping_address=Address(**shipping_address),
            billing_address=Address(**(billing_address or shipping_address)),
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        snapshot = [
            {"product_id": line.product_id, "variant_id": line.variant_id, "quantity": line.quantity} for line in lines
        ]
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order_number,
                user_id=str(user_id),
                lines=json.dumps(snapshot),
                total=totals.total,
                currency=currency,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_payable(self) -> bool:
        return OrderStatus(self.status) == OrderStatus.PENDING

    @property
    def is_cancellable(self) -> bool:
        return OrderStatus(self.status) in _CANCELLABLE_STATES

    @property
    def product_ids(self) -> list[str]:
        return sorted({str(line.product_id) for line in self.lines})

    # -------------------------------------------------------------------
    # State transition helper
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status):
        current = OrderStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise TransitionNotAllowed(
                {"status": [f"Cannot transition from {current.value} to {target_status.value}"]}
            )

    def _with_payment(self, **changes):
        current = self.payment.to_dict() if self.payment else {}
        current.update(changes)
        self.payment = PaymentSummary(**current)

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def mark_paid(self, transaction_id, amount, receipt_id=None, provider=None):
        """Confirm payment. Only reconciliation calls this."""
        self._assert_can_transition(OrderStatus.PAID)
        if amount != self.totals.total:
            raise ValidationError({"amount": [f"Paid amount {amount} does not match order total {self.totals.total}"]})

        now = datetime.now(UTC)
        self._with_payment(
            status=PaymentStatus.PAID.value,
            transaction_id=str(transaction_id),
            receipt_id=receipt_id,
            provider=provider or (self.payment.provider if self.payment else None),
            amount=amount,
        )
        self.status = OrderStatus.PAID.value
        self.paid_at = now
        self.updated_at = now

        self.raise_(
            OrderPaid(
                order_id=str(self.id),
                transaction_id=str(transaction_id),
                receipt_id=receipt_id,
                amount=amount,
                paid_at=now,
            )
        )

    def cancel(self, reason, cancelled_by):
        """Cancel the order. The caller is responsible for restoring stock."""
        current = OrderStatus(self.status)
        if current not in _CANCELLABLE_STATES:
            raise TransitionNotAllowed(
                {
                    "status": [
                        f"Cannot cancel order in {current.value} state. "
                        f"Cancellation is only allowed from: "
                        f"{', '.join(sorted(s.value for s in _CANCELLABLE_STATES))}"
                    ]
                }
            )

        now = datetime.now(UTC)
        self.status = OrderStatus.CANCELLED.value
        self._with_payment(status=PaymentStatus.FAILED.value)
        self.cancellation_reason = reason
        self.cancelled_by = cancelled_by
        self.cancelled_at = now
        self.updated_at = now

        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                previous_status=current.value,
                reason=reason,
                cancelled_by=cancelled_by,
                cancelled_at=now,
            )
        )

    def change_status(self, target, changed_by):
        """Administrative status change with no stock effect.

        Cancellation must go through ``cancel`` so that stock is restored.
        """
        try:
            target_status = OrderStatus(target)
        except ValueError:
            raise ValidationError({"status": [f"Unknown status '{target}'"]}) from None
        if target_status not in ADMIN_STATUSES or target_status == OrderStatus.CANCELLED:
            raise ValidationError({"status": [f"Status {target_status.value} cannot be set directly"]})

        self._assert_can_transition(target_status)
        previous = self.status
        now = datetime.now(UTC)
        self.status = target_status.value
        if target_status == OrderStatus.REFUNDED:
            self._with_payment(status=PaymentStatus.REFUNDED.value)
        self.updated_at = now

        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=target_status.value,
                changed_by=changed_by,
                changed_at=now,
            )
        )
