"""Configurable fake push-payment provider for development and testing.

Behaves like an asynchronous provider: an accepted charge returns a
correlation id, and the outcome arrives later as a callback built with
``callback_payload``.  It can be configured at runtime to reject requests,
time out, or settle synchronously.
"""

from uuid import uuid4

from commerce.gateway.port import (
    CallbackNotVerified,
    ChargeInitiation,
    ChargeRequest,
    GatewayRejected,
    GatewayUnavailable,
    PaymentGateway,
    ProviderCallback,
    malformed,
)

ACCEPT = "accept"
REJECT = "reject"
TIMEOUT = "timeout"
SETTLE = "settle"
_MODES = (ACCEPT, REJECT, TIMEOUT, SETTLE)

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    name = "fake"

    def __init__(self) -> None:
        self.mode: str = ACCEPT
        self.failure_reason: str = "Payer declined"
        self.calls: list[dict] = []

    def configure(self, mode: str = ACCEPT, failure_reason: str = "Payer declined") -> None:
        """Configure gateway behavior at runtime."""
        if mode not in _MODES:
            raise ValueError(f"Unknown fake gateway mode: {mode}")
        self.mode = mode
        self.failure_reason = failure_reason

    def initiate_charge(self, request: ChargeRequest, timeout: float) -> ChargeInitiation:
        self.calls.append(
            {
                "method": "initiate_charge",
                "amount": request.amount,
                "currency": request.currency,
                "payer_ref": request.payer_ref,
                "callback_url": request.callback_url,
                "idempotency_key": request.idempotency_key,
                "timeout": timeout,
            }
        )

        if self.mode == REJECT:
            raise GatewayRejected(self.failure_reason, raw={"status": "rejected", "reason": self.failure_reason})
        if self.mode == TIMEOUT:
            raise GatewayUnavailable(f"No response within {timeout}s")

        correlation_id = f"fake_req_{uuid4().hex[:12]}"
        if self.mode == SETTLE:
            return ChargeInitiation(
                correlation_id=correlation_id,
                raw={"status": "settled"},
                settled=True,
                receipt_id=f"fake_rcpt_{uuid4().hex[:8]}",
            )
        return ChargeInitiation(correlation_id=correlation_id, raw={"status": "accepted"})

    @staticmethod
    def callback_payload(correlation_id, amount, succeeded=True, receipt_id=None, result_code=None) -> dict:
        """Build the body the fake provider would post to the webhook."""
        return {
            "correlation_id": correlation_id,
            "result_code": result_code if result_code is not None else ("0" if succeeded else "1032"),
            "amount": amount,
            "receipt_id": receipt_id or (f"fake_rcpt_{uuid4().hex[:8]}" if succeeded else None),
        }

    def parse_callback(self, payload: dict, signature: str | None) -> ProviderCallback:
        if signature != TEST_SIGNATURE:
            raise CallbackNotVerified("Invalid webhook signature")
        if not isinstance(payload, dict) or not payload.get("correlation_id"):
            raise malformed("correlation_id is required")
        if "result_code" not in payload:
            raise malformed("result_code is required")

        amount = payload.get("amount")
        if amount is not None and (not isinstance(amount, int) or isinstance(amount, bool)):
            raise malformed("amount must be an integer in minor units")

        result_code = str(payload["result_code"])
        return ProviderCallback(
            correlation_id=str(payload["correlation_id"]),
            succeeded=result_code == "0",
            amount=amount,
            receipt_id=payload.get("receipt_id"),
            result_code=result_code,
            result_description=payload.get("result_description"),
            raw=payload,
        )
