"""Lookups over the payment ledger."""

from commerce.domain import commerce
from commerce.payment.transaction import PaymentTransaction


@commerce.repository(part_of=PaymentTransaction)
class PaymentTransactionRepository:
    def _first(self, **filters) -> PaymentTransaction | None:
        items = self._dao.query.filter(**filters).all().items
        return items[0] if items else None

    def find_by_idempotency_key(self, order_id, provider, idempotency_key) -> PaymentTransaction | None:
        return self._first(order_id=str(order_id), provider=provider, idempotency_key=idempotency_key)

    def find_by_correlation_id(self, provider, correlation_id) -> PaymentTransaction | None:
        return self._first(provider=provider, correlation_id=correlation_id)

    def for_order(self, order_id) -> list[PaymentTransaction]:
        return self._dao.query.filter(order_id=str(order_id)).order_by("created_at").all().items
