"""The ``none`` provider: payment settled on the spot, for development and cash flows."""

from commerce.gateway.port import ChargeInitiation, ChargeRequest, PaymentGateway, ProviderCallback, malformed


class ManualGateway(PaymentGateway):
    name = "none"

    def initiate_charge(self, request: ChargeRequest, timeout: float) -> ChargeInitiation:  # noqa: ARG002
        reference = f"dev-{request.idempotency_key}"
        return ChargeInitiation(
            correlation_id=reference,
            raw={"provider": self.name, "amount": request.amount, "currency": request.currency},
            settled=True,
            receipt_id=reference,
        )

    def parse_callback(self, payload: dict, signature: str | None) -> ProviderCallback:  # noqa: ARG002
        raise malformed("The 'none' provider does not send callbacks")
