"""Payment ledger: opening transactions and recording provider outcomes.

Initiating a payment is three separate commits:

1. ``OpenTransaction`` records an ``initiated`` row (or finds the existing
   row for the same idempotency key) under the idempotency lock.
2. The provider is called outside any unit of work, bounded by
   ``PAYMENT_INITIATION_TIMEOUT``.
3. The outcome is recorded: accepted → ``pending`` with the provider's
   correlation id, refused → ``failed``, unknown (timeout, outage) →
   ``pending`` with a note.  Synchronous settlement is confirmed through
   the same path as a provider callback.

The charged amount is always the order's stored total.
"""

import json
import os
from dataclasses import dataclass

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Identifier, String, Text
from protean.utils.globals import current_domain

from commerce.concurrency import callback_key, hold, order_key, process_exclusively, transaction_key
from commerce.domain import commerce, logger
from commerce.errors import AccessDenied, NotPayable
from commerce.gateway import get_gateway
from commerce.gateway.port import ChargeRequest, GatewayRejected, GatewayUnavailable, ProviderCallback
from commerce.order.order import Order
from commerce.payment.reconciliation import ReconciliationHandler
from commerce.payment.transaction import PaymentTransaction

ACCEPTED = "accepted"
SETTLED = "settled"
REJECTED = "rejected"
UNCONFIRMED = "unconfirmed"
EXISTING = "existing"


def initiation_timeout() -> float:
    return float(os.environ.get("PAYMENT_INITIATION_TIMEOUT", "10"))


def callback_url_for(provider: str) -> str | None:
    base = os.environ.get("PAYMENT_CALLBACK_BASE_URL")
    if not base:
        return None
    return f"{base.rstrip('/')}/payments/webhook/{provider}"


def idempotency_lock_key(order_id, provider, idempotency_key) -> str:
    return f"payment:{order_id}:{provider}:{idempotency_key or ''}"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@commerce.command(part_of="PaymentTransaction")
class OpenTransaction:
    order_id = Identifier(required=True)
    provider = String(required=True, max_length=50)
    idempotency_key = String(max_length=255)
    payer_ref = String(max_length=100)
    requested_by = Identifier(required=True)
    requested_by_admin = Boolean(default=False)


@commerce.command(part_of="PaymentTransaction")
class RecordProviderAcceptance:
    transaction_id = Identifier(required=True)
    correlation_id = String(max_length=255)
    raw = Text()  # JSON
    note = String(max_length=1000)


@commerce.command(part_of="PaymentTransaction")
class RecordProviderRejection:
    transaction_id = Identifier(required=True)
    error = String(required=True, max_length=1000)
    raw = Text()  # JSON


@commerce.command_handler(part_of=PaymentTransaction)
class PaymentLedgerHandler:
    @handle(OpenTransaction)
    def open_transaction(self, command):
        """Return ``{"transaction_id", "created"}``."""
        order = current_domain.repository_for(Order).get(command.order_id)
        if not command.requested_by_admin and str(order.user_id) != str(command.requested_by):
            raise AccessDenied("Order belongs to another user")

        repo = current_domain.repository_for(PaymentTransaction)
        if command.idempotency_key:
            existing = repo.find_by_idempotency_key(command.order_id, command.provider, command.idempotency_key)
            if existing is not None:
                logger.info(
                    "payment_idempotent_replay",
                    transaction_id=str(existing.id),
                    order_id=str(command.order_id),
                    provider=command.provider,
                )
                return {"transaction_id": str(existing.id), "created": False}

        if not order.is_payable:
            raise NotPayable({"order_id": [f"Order {order.order_number} is {order.status} and cannot be paid"]})

        transaction = PaymentTransaction.open(
            order_id=order.id,
            user_id=order.user_id,
            provider=command.provider,
            amount=order.totals.total,
            currency=order.currency,
            idempotency_key=command.idempotency_key,
            payer_ref=command.payer_ref,
        )
        repo.add(transaction)
        logger.info(
            "payment_transaction_opened",
            transaction_id=str(transaction.id),
            order_id=str(order.id),
            provider=command.provider,
            amount=transaction.amount,
        )
        return {"transaction_id": str(transaction.id), "created": True}

    @handle(RecordProviderAcceptance)
    def record_acceptance(self, command):
        repo = current_domain.repository_for(PaymentTransaction)
        transaction = repo.get(command.transaction_id)
        if transaction.is_terminal:
            return transaction.status
        transaction.await_provider(
            correlation_id=command.correlation_id,
            raw=_loads(command.raw),
            note=command.note,
        )
        repo.add(transaction)
        return transaction.status

    @handle(RecordProviderRejection)
    def record_rejection(self, command):
        repo = current_domain.repository_for(PaymentTransaction)
        transaction = repo.get(command.transaction_id)
        if transaction.is_terminal:
            return transaction.status
        transaction.fail(command.error, raw=_loads(command.raw), stage="initiation")
        repo.add(transaction)
        return transaction.status


def _loads(value):
    return json.loads(value) if value else None


def _dumps(value):
    return json.dumps(value) if value else None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class InitiationResult:
    transaction: PaymentTransaction
    created: bool
    outcome: str

    @property
    def awaiting_provider(self) -> bool:
        return self.outcome == UNCONFIRMED


class PaymentLedger:
    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout if timeout is not None else initiation_timeout()

    def initiate(
        self,
        order_id,
        provider,
        requested_by,
        idempotency_key=None,
        payer_ref=None,
        requested_by_admin=False,
        provider_meta=None,
    ) -> InitiationResult:
        gateway = get_gateway(provider)
        repo = current_domain.repository_for(PaymentTransaction)
        try:
            opened = process_exclusively(
                OpenTransaction(
                    order_id=order_id,
                    provider=provider,
                    idempotency_key=idempotency_key,
                    payer_ref=payer_ref,
                    requested_by=requested_by,
                    requested_by_admin=requested_by_admin,
                ),
                keys=[idempotency_lock_key(order_id, provider, idempotency_key), order_key(order_id)],
            )
        except ValidationError as exc:
            # Another process committed the same keyed attempt first
            existing = None
            if idempotency_key and "idempotency_slot" in exc.messages:
                existing = repo.find_by_idempotency_key(order_id, provider, idempotency_key)
            if existing is None:
                raise
            logger.info("payment_idempotent_replay", transaction_id=str(existing.id), order_id=str(order_id))
            return InitiationResult(transaction=existing, created=False, outcome=EXISTING)

        transaction = repo.get(opened["transaction_id"])
        if not opened["created"]:
            return InitiationResult(transaction=transaction, created=False, outcome=EXISTING)

        order = current_domain.repository_for(Order).get(order_id)
        request = ChargeRequest(
            amount=transaction.amount,
            currency=transaction.currency,
            reference=order.order_number,
            idempotency_key=str(transaction.id),
            payer_ref=payer_ref,
            callback_url=callback_url_for(provider),
            meta=provider_meta or {},
        )

        keys = [transaction_key(transaction.id)]
        try:
            initiation = gateway.initiate_charge(request, timeout=self.timeout)
        except GatewayRejected as exc:
            logger.warning("payment_rejected_by_provider", transaction_id=str(transaction.id), error=str(exc))
            process_exclusively(
                RecordProviderRejection(transaction_id=transaction.id, error=str(exc), raw=_dumps(exc.raw)),
                keys,
            )
            outcome = REJECTED
        except GatewayUnavailable as exc:
            logger.warning("payment_outcome_unknown", transaction_id=str(transaction.id), error=str(exc))
            process_exclusively(
                RecordProviderAcceptance(
                    transaction_id=transaction.id,
                    raw=_dumps(exc.raw),
                    note=f"Provider did not confirm the request: {exc}",
                ),
                keys,
            )
            outcome = UNCONFIRMED
        except Exception as exc:
            # The provider may still have the request; leave the row where a callback can match it
            logger.exception("payment_initiation_failed", transaction_id=str(transaction.id), error=str(exc))
            process_exclusively(
                RecordProviderAcceptance(
                    transaction_id=transaction.id,
                    note=f"Provider call failed: {exc}"[:1000],
                ),
                keys,
            )
            raise
        else:
            # Callbacks that beat this commit were parked as unmatched; replay them
            # while holding every lock the replay needs.
            reconciler = ReconciliationHandler()
            with hold([callback_key(provider, initiation.correlation_id), order_key(order_id), *keys]):
                process_exclusively(
                    RecordProviderAcceptance(
                        transaction_id=transaction.id,
                        correlation_id=initiation.correlation_id,
                        raw=_dumps(initiation.raw),
                    ),
                    keys,
                )
                reconciler.replay_unmatched(provider, initiation.correlation_id)
            outcome = ACCEPTED
            if initiation.settled:
                reconciler.apply(
                    provider,
                    ProviderCallback(
                        correlation_id=initiation.correlation_id,
                        succeeded=True,
                        amount=transaction.amount,
                        receipt_id=initiation.receipt_id,
                        result_code="0",
                        raw=initiation.raw,
                    ),
                )
                outcome = SETTLED

        return InitiationResult(transaction=repo.get(transaction.id), created=True, outcome=outcome)
