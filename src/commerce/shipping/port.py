"""Shipping-rate port: quotes a delivery fee for an address."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ShippingQuote:
    """A delivery fee in minor currency units."""

    fee: int
    currency: str
    rate_name: str | None = None


class ShippingRates(ABC):
    """Abstract shipping-rate lookup."""

    @abstractmethod
    def quote(self, address: dict) -> ShippingQuote:
        """Return the fee for delivering to ``address``."""
        ...
