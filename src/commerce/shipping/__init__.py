"""Shipping-rate collaborator registry."""

from commerce.shipping.port import ShippingRates
from commerce.shipping.table_adapter import TableShippingRates

_current_rates: ShippingRates | None = None


def get_shipping_rates() -> ShippingRates:
    """Return the active shipping-rate lookup. Defaults to the built-in table."""
    global _current_rates
    if _current_rates is None:
        _current_rates = TableShippingRates()
    return _current_rates


def set_shipping_rates(rates: ShippingRates) -> None:
    global _current_rates
    _current_rates = rates


def reset_shipping_rates() -> None:
    global _current_rates
    _current_rates = None
