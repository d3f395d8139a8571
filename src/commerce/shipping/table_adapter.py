"""Table-driven shipping rates.

Rates are matched most-specific first: city, then region (state/county),
then a country default.  Addresses in countries without a default pay the
international rate.
"""

from dataclasses import dataclass

from commerce.shipping.port import ShippingQuote, ShippingRates


@dataclass(frozen=True)
class ShippingRate:
    name: str
    fee: int
    country: str
    region: str | None = None
    city: str | None = None
    active: bool = True


def _norm(value) -> str:
    return (value or "").strip().lower()


# Kenyan shilling minor units (cents)
DEFAULT_RATES = (
    ShippingRate(name="kisumu-city", fee=10_000, country="kenya", city="kisumu"),
    ShippingRate(name="kenya-standard", fee=30_000, country="kenya"),
)
INTERNATIONAL = ShippingRate(name="international", fee=150_000, country="*")


class TableShippingRates(ShippingRates):
    def __init__(self, rates=DEFAULT_RATES, international=INTERNATIONAL, currency: str = "KES") -> None:
        self.rates = list(rates)
        self.international = international
        self.currency = currency

    def _match(self, address: dict) -> ShippingRate:
        country = _norm(address.get("country")) or "kenya"
        region = _norm(address.get("state"))
        city = _norm(address.get("city"))
        active = [r for r in self.rates if r.active and _norm(r.country) == country]

        for rate in active:
            if rate.city and _norm(rate.city) == city:
                return rate
        for rate in active:
            if rate.region and not rate.city and _norm(rate.region) == region:
                return rate
        for rate in active:
            if not rate.region and not rate.city:
                return rate
        return self.international

    def quote(self, address: dict) -> ShippingQuote:
        rate = self._match(address or {})
        return ShippingQuote(fee=rate.fee, currency=self.currency, rate_name=rate.name)
