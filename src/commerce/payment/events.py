"""Domain events for the PaymentTransaction aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from commerce.domain import commerce


@commerce.event(part_of="PaymentTransaction")
class TransactionOpened:
    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    provider = String(required=True)
    amount = Integer(required=True)
    currency = String(required=True)
    opened_at = DateTime(required=True)


@commerce.event(part_of="PaymentTransaction")
class TransactionAwaitingProvider:
    """The provider holds the charge; the outcome will arrive by callback."""

    __version__ = 1

    transaction_id = Identifier(required=True)
    correlation_id = String()
    note = String()
    recorded_at = DateTime(required=True)


@commerce.event(part_of="PaymentTransaction")
class TransactionSucceeded:
    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True)
    provider_tx_id = String()
    succeeded_at = DateTime(required=True)


@commerce.event(part_of="PaymentTransaction")
class TransactionFailed:
    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    error = String(required=True)
    failed_at = DateTime(required=True)
