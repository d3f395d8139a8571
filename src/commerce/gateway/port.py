"""Payment gateway port (abstract interface).

Push-payment providers work in two halves: ``initiate_charge`` asks the
provider to collect money and returns the provider's correlation id, and the
provider later posts the outcome to our webhook, which ``parse_callback``
turns into a ``ProviderCallback``.  Amounts cross this boundary in minor
units; adapters convert to whatever unit their provider expects.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from protean.exceptions import ValidationError


@dataclass(frozen=True)
class ChargeRequest:
    amount: int
    currency: str
    reference: str
    idempotency_key: str
    payer_ref: str | None = None
    callback_url: str | None = None
    meta: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ChargeInitiation:
    """The provider accepted the request.

    ``settled`` is set by providers that complete synchronously; the charge
    is then already captured under ``receipt_id``.
    """

    correlation_id: str
    raw: dict = field(default_factory=dict)
    settled: bool = False
    receipt_id: str | None = None


@dataclass(frozen=True)
class ProviderCallback:
    """A provider-neutral view of an asynchronous payment outcome."""

    correlation_id: str
    succeeded: bool
    amount: int | None = None
    receipt_id: str | None = None
    result_code: str | None = None
    result_description: str | None = None
    raw: dict = field(default_factory=dict)


class GatewayError(Exception):
    def __init__(self, message: str, raw: dict | None = None) -> None:
        super().__init__(message)
        self.raw = raw or {}


class GatewayRejected(GatewayError):
    """The provider explicitly declined the charge request."""


class GatewayUnavailable(GatewayError):
    """The provider could not be reached or did not answer in time.

    The outcome of the request is unknown.
    """

    kind = "external"


class MalformedCallback(ValidationError):
    """A webhook payload that cannot be interpreted."""


class CallbackNotVerified(Exception):
    """A webhook payload whose origin could not be verified."""

    kind = "unauthorized"


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    name: str = "abstract"

    @abstractmethod
    def initiate_charge(self, request: ChargeRequest, timeout: float) -> ChargeInitiation:
        """Ask the provider to collect ``request.amount``.

        Raises ``GatewayRejected`` on an explicit refusal and
        ``GatewayUnavailable`` when the outcome is unknown.
        """
        ...

    @abstractmethod
    def parse_callback(self, payload: dict, signature: str | None) -> ProviderCallback:
        """Verify and decode a webhook payload.

        Raises ``CallbackNotVerified`` or ``MalformedCallback``.
        """
        ...


def malformed(message: str) -> MalformedCallback:
    return MalformedCallback({"payload": [message]})
