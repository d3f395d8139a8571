"""Reconciliation of asynchronous provider callbacks.

Callbacks are matched to ledger rows by the provider's correlation id and
applied at most once per transaction:

    unknown correlation id   → acknowledged, stored as unmatched, no mutation
    transaction terminal     → acknowledged, no mutation (duplicate delivery)
    provider failure         → transaction failed, order untouched
    amount differs           → transaction failed, order untouched
    success                  → transaction succeeded and order paid together

Callbacks for one order are serialized with cancellation by the order lock,
so whichever of "cancel" and "confirm payment" commits first wins.  A success
that arrives after the order was cancelled is still recorded as captured
money, flagged for refund, and the order stays cancelled.
"""

import json
from dataclasses import dataclass
from datetime import UTC, datetime

from protean import handle
from protean.fields import Boolean, DateTime, Integer, String, Text
from protean.utils.globals import current_domain

from commerce.concurrency import callback_key, hold, order_key, process_exclusively, transaction_key
from commerce.domain import commerce, logger
from commerce.gateway import get_gateway
from commerce.gateway.port import ProviderCallback
from commerce.order.order import Order
from commerce.payment.transaction import PaymentTransaction

PAID = "paid"
FAILED = "failed"
AMOUNT_MISMATCH = "amount_mismatch"
DUPLICATE = "duplicate"
ORPHAN = "orphan"
CAPTURED_AFTER_CLOSE = "captured_after_close"


@dataclass(frozen=True)
class CallbackAck:
    ok: bool
    outcome: str
    transaction_id: str | None = None


@commerce.aggregate
class UnmatchedCallback:
    """A callback whose correlation id matched no transaction when it arrived.

    Kept for operators, and replayed if the correlation id is recorded later
    (the provider answered before the initiation outcome was committed).
    """

    provider = String(required=True, max_length=50)
    correlation_id = String(required=True, max_length=255)
    succeeded = Boolean(default=False)
    amount = Integer()
    receipt_id = String(max_length=255)
    result_code = String(max_length=50)
    result_description = String(max_length=1000)
    payload = Text()
    resolved = Boolean(default=False)
    received_at = DateTime()


@commerce.command(part_of="PaymentTransaction")
class ApplyProviderCallback:
    provider = String(required=True, max_length=50)
    correlation_id = String(required=True, max_length=255)
    succeeded = Boolean(required=True)
    amount = Integer()
    receipt_id = String(max_length=255)
    result_code = String(max_length=50)
    result_description = String(max_length=1000)
    raw = Text()  # JSON


@commerce.command_handler(part_of=PaymentTransaction)
class ProviderCallbackHandler:
    @handle(ApplyProviderCallback)
    def apply_callback(self, command):
        repo = current_domain.repository_for(PaymentTransaction)
        transaction = repo.find_by_correlation_id(command.provider, command.correlation_id)
        if transaction is None:
            return CallbackAck(ok=True, outcome=ORPHAN)
        if transaction.is_terminal:
            logger.info(
                "duplicate_payment_callback",
                transaction_id=str(transaction.id),
                status=transaction.status,
            )
            return CallbackAck(ok=True, outcome=DUPLICATE, transaction_id=str(transaction.id))

        raw = json.loads(command.raw) if command.raw else None
        ack = CallbackAck(ok=True, outcome=FAILED, transaction_id=str(transaction.id))

        if not command.succeeded:
            reason = command.result_description or f"Provider reported failure (code {command.result_code})"
            transaction.fail(reason, raw=raw)
            logger.info("payment_failed", transaction_id=str(transaction.id), result_code=command.result_code)
        elif command.amount != transaction.amount:
            transaction.fail(
                f"amount mismatch: expected {transaction.amount}, provider reported {command.amount}",
                raw=raw,
            )
            ack = CallbackAck(ok=True, outcome=AMOUNT_MISMATCH, transaction_id=str(transaction.id))
            logger.warning(
                "payment_amount_mismatch",
                transaction_id=str(transaction.id),
                expected=transaction.amount,
                reported=command.amount,
            )
        else:
            order_repo = current_domain.repository_for(Order)
            order = order_repo.get(transaction.order_id)
            if order.is_payable:
                transaction.succeed(provider_tx_id=command.receipt_id, raw=raw)
                order.mark_paid(
                    transaction_id=transaction.id,
                    amount=transaction.amount,
                    receipt_id=command.receipt_id,
                    provider=transaction.provider,
                )
                order_repo.add(order)
                ack = CallbackAck(ok=True, outcome=PAID, transaction_id=str(transaction.id))
                logger.info("order_paid", order_id=str(order.id), transaction_id=str(transaction.id))
            else:
                transaction.succeed(
                    provider_tx_id=command.receipt_id,
                    raw=raw,
                    error=f"order {order.status} before payment confirmation; refund required",
                )
                ack = CallbackAck(ok=True, outcome=CAPTURED_AFTER_CLOSE, transaction_id=str(transaction.id))
                logger.warning(
                    "payment_captured_for_closed_order",
                    order_id=str(order.id),
                    order_status=order.status,
                    transaction_id=str(transaction.id),
                )

        repo.add(transaction)
        return ack


class ReconciliationHandler:
    """Entry point for provider webhooks."""

    def handle_callback(self, provider: str, payload: dict, signature: str | None = None) -> CallbackAck:
        """Verify, decode and apply a webhook payload.

        Raises ``CallbackNotVerified`` or ``MalformedCallback`` before any
        lookup; every payload that decodes is acknowledged.
        """
        callback = get_gateway(provider).parse_callback(payload, signature)
        return self.apply(provider, callback)

    def apply(self, provider: str, callback: ProviderCallback) -> CallbackAck:
        repo = current_domain.repository_for(PaymentTransaction)
        with hold([callback_key(provider, callback.correlation_id)]):
            transaction = repo.find_by_correlation_id(provider, callback.correlation_id)
            if transaction is None:
                self._record_unmatched(provider, callback)
                return CallbackAck(ok=True, outcome=ORPHAN)

        command = ApplyProviderCallback(
            provider=provider,
            correlation_id=callback.correlation_id,
            succeeded=callback.succeeded,
            amount=callback.amount,
            receipt_id=callback.receipt_id,
            result_code=callback.result_code,
            result_description=callback.result_description,
            raw=json.dumps(callback.raw) if callback.raw else None,
        )
        keys = [order_key(transaction.order_id), transaction_key(transaction.id)]
        return process_exclusively(command, keys)

    def _record_unmatched(self, provider, callback):
        logger.warning(
            "orphan_payment_callback",
            provider=provider,
            correlation_id=callback.correlation_id,
            result_code=callback.result_code,
        )
        current_domain.repository_for(UnmatchedCallback).add(
            UnmatchedCallback(
                provider=provider,
                correlation_id=callback.correlation_id,
                succeeded=callback.succeeded,
                amount=callback.amount,
                receipt_id=callback.receipt_id,
                result_code=callback.result_code,
                result_description=callback.result_description,
                payload=json.dumps(callback.raw) if callback.raw else None,
                received_at=datetime.now(UTC),
            )
        )

    def replay_unmatched(self, provider: str, correlation_id: str) -> list[CallbackAck]:
        """Apply callbacks that arrived before ``correlation_id`` was recorded."""
        repo = current_domain.repository_for(UnmatchedCallback)
        waiting = repo._dao.query.filter(provider=provider, correlation_id=correlation_id, resolved=False).all().items

        acks = []
        for unmatched in sorted(waiting, key=lambda u: u.received_at):
            callback = ProviderCallback(
                correlation_id=unmatched.correlation_id,
                succeeded=unmatched.succeeded,
                amount=unmatched.amount,
                receipt_id=unmatched.receipt_id,
                result_code=unmatched.result_code,
                result_description=unmatched.result_description,
                raw=json.loads(unmatched.payload) if unmatched.payload else {},
            )
            acks.append(self.apply(provider, callback))
            unmatched.resolved = True
            repo.add(unmatched)
        return acks


def unmatched_callbacks(provider: str | None = None) -> list[UnmatchedCallback]:
    repo = current_domain.repository_for(UnmatchedCallback)
    filters = {"resolved": False}
    if provider:
        filters["provider"] = provider
    return repo._dao.query.filter(**filters).all().items
