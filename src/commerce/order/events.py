"""Domain events for the Order aggregate."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from commerce.domain import commerce


@commerce.event(part_of="Order")
class OrderPlaced:
    """Stock was reserved and the order recorded."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    user_id = Identifier(required=True)
    lines = Text(required=True)  # JSON: list of line snapshots
    total = Integer(required=True)
    currency = String(required=True)
    placed_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderPaid:
    """Reconciliation confirmed payment for the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    transaction_id = Identifier(required=True)
    receipt_id = String()
    amount = Integer(required=True)
    paid_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled and its stock returned."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    reason = String()
    cancelled_by = String()
    cancelled_at = DateTime(required=True)


@commerce.event(part_of="Order")
class OrderStatusChanged:
    """An administrative status change without stock effect."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    changed_by = String()
    changed_at = DateTime(required=True)
