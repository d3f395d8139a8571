"""PaymentTransaction aggregate: one row per payment attempt.

State Machine:
    INITIATED → PENDING → SUCCEEDED | FAILED
    INITIATED → SUCCEEDED | FAILED   (synchronous settlement or explicit refusal)
    SUCCEEDED → REFUNDED

SUCCEEDED, FAILED and REFUNDED are terminal for reconciliation: callbacks for
a terminal transaction are acknowledged and ignored.  Transactions are never
deleted.  Every provider payload is appended to ``raw`` for audit.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String, Text

from commerce.domain import commerce
from commerce.errors import TransitionNotAllowed
from commerce.payment.events import (
    TransactionAwaitingProvider,
    TransactionFailed,
    TransactionOpened,
    TransactionSucceeded,
)


class TransactionStatus(Enum):
    INITIATED = "initiated"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


_VALID_TRANSITIONS = {
    TransactionStatus.INITIATED: {
        TransactionStatus.PENDING,
        TransactionStatus.SUCCEEDED,
        TransactionStatus.FAILED,
    },
    TransactionStatus.PENDING: {TransactionStatus.SUCCEEDED, TransactionStatus.FAILED},
    TransactionStatus.SUCCEEDED: {TransactionStatus.REFUNDED},
    TransactionStatus.FAILED: set(),
    TransactionStatus.REFUNDED: set(),
}

TERMINAL_STATUSES = {TransactionStatus.SUCCEEDED, TransactionStatus.FAILED, TransactionStatus.REFUNDED}


def idempotency_slot(order_id, provider, idempotency_key) -> str | None:
    """Storage-unique marker for a keyed payment attempt."""
    if not idempotency_key:
        return None
    return f"{order_id}:{provider}:{idempotency_key}"


@commerce.aggregate
class PaymentTransaction:
    order_id = Identifier(required=True)
    user_id = Identifier()
    provider = String(required=True, max_length=50)
    amount = Integer(required=True, min_value=0)
    currency = String(required=True, max_length=3)
    status = String(choices=TransactionStatus, default=TransactionStatus.INITIATED.value)
    idempotency_key = String(max_length=255)
    idempotency_slot = String(max_length=400, unique=True)  # order:provider:key, set only when keyed
    correlation_id = String(max_length=255)
    provider_tx_id = String(max_length=255)
    payer_ref = String(max_length=100)
    raw = Text()  # JSON: list of {stage, payload} entries
    error = String(max_length=1000)
    created_at = DateTime()
    updated_at = DateTime()
    settled_at = DateTime()

    @classmethod
    def open(cls, order_id, provider, amount, currency, idempotency_key=None, payer_ref=None, user_id=None):
        now = datetime.now(UTC)
        transaction = cls(
            order_id=order_id,
            user_id=user_id,
            provider=provider,
            amount=amount,
            currency=currency,
            idempotency_key=idempotency_key,
            idempotency_slot=idempotency_slot(order_id, provider, idempotency_key),
            payer_ref=payer_ref,
            created_at=now,
            updated_at=now,
        )
        transaction.raise_(
            TransactionOpened(
                transaction_id=str(transaction.id),
                order_id=str(order_id),
                provider=provider,
                amount=amount,
                currency=currency,
                opened_at=now,
            )
        )
        return transaction

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def is_terminal(self) -> bool:
        return TransactionStatus(self.status) in TERMINAL_STATUSES

    def raw_entries(self) -> list[dict]:
        return json.loads(self.raw) if self.raw else []

    def _append_raw(self, stage, payload):
        if payload is None:
            return
        entries = self.raw_entries()
        entries.append({"stage": stage, "payload": payload})
        self.raw = json.dumps(entries)

    def _transition(self, target):
        current = TransactionStatus(self.status)
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise TransitionNotAllowed(
                {"status": [f"Cannot transition from {current.value} to {target.value}"]}
            )
        self.status = target.value
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def await_provider(self, correlation_id=None, raw=None, note=None):
        """The provider holds the request, or its answer never arrived.

        Without a correlation id the outcome is unknown and the
        transaction stays open for reconciliation.
        """
        if TransactionStatus(self.status) != TransactionStatus.PENDING:
            self._transition(TransactionStatus.PENDING)
        if correlation_id:
            self.correlation_id = correlation_id
        self.error = note
        self._append_raw("initiation", raw)

        self.raise_(
            TransactionAwaitingProvider(
                transaction_id=str(self.id),
                correlation_id=correlation_id,
                note=note,
                recorded_at=self.updated_at,
            )
        )

    def succeed(self, provider_tx_id=None, raw=None, error=None):
        self._transition(TransactionStatus.SUCCEEDED)
        self.provider_tx_id = provider_tx_id
        self.error = error
        self.settled_at = self.updated_at
        self._append_raw("callback", raw)

        self.raise_(
            TransactionSucceeded(
                transaction_id=str(self.id),
                order_id=str(self.order_id),
                amount=self.amount,
                provider_tx_id=provider_tx_id,
                succeeded_at=self.settled_at,
            )
        )

    def fail(self, error, raw=None, stage="callback"):
        self._transition(TransactionStatus.FAILED)
        self.error = error
        self.settled_at = self.updated_at
        self._append_raw(stage, raw)

        self.raise_(
            TransactionFailed(
                transaction_id=str(self.id),
                order_id=str(self.order_id),
                error=error,
                failed_at=self.settled_at,
            )
        )
