import pytest
from commerce.gateway import set_gateway
from commerce.gateway.fake_adapter import FakeGateway


@pytest.fixture()
def fake_gateway():
    gateway = FakeGateway()
    set_gateway("fake", gateway)
    return gateway


@pytest.fixture()
def pending_order(add_product, place):
    """An unpaid order for two towels: 300 000 + 10 000 shipping."""
    product = add_product(stock=10, unit_price=150_000)
    return place([{"product_id": str(product.id), "quantity": 2}], user_id="user-001")
