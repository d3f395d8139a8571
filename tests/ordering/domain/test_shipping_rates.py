"""Tests for table-driven shipping quotes."""

from commerce.shipping import get_shipping_rates, reset_shipping_rates, set_shipping_rates
from commerce.shipping.port import ShippingQuote, ShippingRates
from commerce.shipping.table_adapter import ShippingRate, TableShippingRates


class _FlatRate(ShippingRates):
    def quote(self, address):
        return ShippingQuote(fee=0, currency="KES", rate_name="free")


class TestTableShippingRates:
    def test_city_rate(self):
        quote = TableShippingRates().quote({"city": "Kisumu", "country": "Kenya"})
        assert quote == ShippingQuote(fee=10_000, currency="KES", rate_name="kisumu-city")

    def test_matching_is_case_insensitive(self):
        assert TableShippingRates().quote({"city": "  KISUMU "}).rate_name == "kisumu-city"

    def test_country_default(self):
        assert TableShippingRates().quote({"city": "Nakuru", "country": "Kenya"}).fee == 30_000

    def test_country_defaults_to_kenya(self):
        assert TableShippingRates().quote({"city": "Eldoret"}).rate_name == "kenya-standard"

    def test_international_fallback(self):
        quote = TableShippingRates().quote({"city": "Kampala", "country": "Uganda"})
        assert quote.rate_name == "international"
        assert quote.fee == 150_000

    def test_region_rate_beats_country_default(self):
        rates = TableShippingRates(
            rates=[
                ShippingRate(name="coast", fee=20_000, country="kenya", region="mombasa"),
                ShippingRate(name="kenya-standard", fee=30_000, country="kenya"),
            ]
        )
        assert rates.quote({"state": "Mombasa", "city": "Nyali"}).rate_name == "coast"

    def test_inactive_rates_are_ignored(self):
        rates = TableShippingRates(
            rates=[
                ShippingRate(name="kisumu-city", fee=10_000, country="kenya", city="kisumu", active=False),
                ShippingRate(name="kenya-standard", fee=30_000, country="kenya"),
            ]
        )
        assert rates.quote({"city": "Kisumu"}).rate_name == "kenya-standard"


class TestRegistry:
    def test_default_is_table(self):
        assert isinstance(get_shipping_rates(), TableShippingRates)

    def test_override_and_reset(self):
        flat = _FlatRate()
        set_shipping_rates(flat)
        assert get_shipping_rates() is flat
        reset_shipping_rates()
        assert isinstance(get_shipping_rates(), TableShippingRates)
