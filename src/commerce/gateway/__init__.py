"""Payment gateway registry, keyed by provider name.

Provides get_gateway() / set_gateway() to swap implementations:
- ManualGateway ("none") settles immediately, for development and cash
- FakeGateway ("fake") simulates an asynchronous provider in tests
- MpesaGateway ("mpesa") talks to Safaricom Daraja, configured from env
"""

from protean.exceptions import ValidationError

from commerce.gateway.fake_adapter import FakeGateway
from commerce.gateway.manual_adapter import ManualGateway
from commerce.gateway.mpesa_adapter import MpesaGateway
from commerce.gateway.port import PaymentGateway

_FACTORIES = {
    "none": ManualGateway,
    "fake": FakeGateway,
    "mpesa": MpesaGateway.from_env,
}

_gateways: dict[str, PaymentGateway] = {}


def supported_providers() -> list[str]:
    return sorted(set(_FACTORIES) | set(_gateways))


def get_gateway(provider: str) -> PaymentGateway:
    """Return the gateway for ``provider``, creating the default on first use."""
    if provider not in _gateways:
        factory = _FACTORIES.get(provider)
        if factory is None:
            raise ValidationError({"provider": [f"Unsupported payment provider: {provider}"]})
        _gateways[provider] = factory()
    return _gateways[provider]


def set_gateway(provider: str, gateway: PaymentGateway) -> None:
    """Override the gateway for ``provider`` (useful for tests)."""
    _gateways[provider] = gateway


def reset_gateways() -> None:
    """Drop every configured gateway; defaults are rebuilt on next use."""
    _gateways.clear()
