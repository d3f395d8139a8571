import os
from pathlib import Path

import pytest
from protean.integrations.pytest import DomainFixture


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the config environment before the domain is imported."""
    os.environ["PROTEAN_ENV"] = session.config.option.env
    os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = str(Path(item.fspath))

        if "/domain/" in test_path:
            item.add_marker(pytest.mark.domain)
        elif "/application/" in test_path:
            item.add_marker(pytest.mark.application)
        elif "/integration/" in test_path or "/concurrency/" in test_path:
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)


@pytest.fixture(scope="session")
def commerce_bed():
    from commerce.domain import commerce

    bed = DomainFixture(commerce)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(commerce_bed):
    with commerce_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def run_around_tests(_ctx):
    """Reset storage and swappable collaborators after every test."""
    yield

    from commerce.gateway import reset_gateways
    from commerce.shipping import reset_shipping_rates
    from protean import current_domain

    for _, provider in current_domain.providers.items():
        provider._data_reset()

    for _, broker in current_domain.brokers.items():
        broker._data_reset()

    current_domain.event_store.store._data_reset()

    reset_gateways()
    reset_shipping_rates()


# ---------------------------------------------------------------------------
# Shared builders
# ---------------------------------------------------------------------------
KISUMU_ADDRESS = {
    "full_name": "Achieng Otieno",
    "phone": "0712345678",
    "line1": "Oginga Odinga Street",
    "city": "Kisumu",
    "country": "Kenya",
}


@pytest.fixture()
def address():
    return dict(KISUMU_ADDRESS)


@pytest.fixture()
def add_product():
    """Register a product directly through its repository."""

    def _add(**overrides):
        from commerce.inventory.product import Product
        from protean import current_domain

        defaults = {"name": "Kikoy Beach Towel", "unit_price": 150_000, "sku": "KIKOY-001", "stock": 10}
        defaults.update(overrides)
        product = Product.create(**defaults)
        current_domain.repository_for(Product).add(product)
        return current_domain.repository_for(Product).get(product.id)

    return _add


@pytest.fixture()
def place(address):
    """Place an order through the locked entry point and return it."""

    def _place(items, user_id="user-001", **overrides):
        from commerce.order.order import Order
        from commerce.order.placement import place_order
        from protean import current_domain

        kwargs = {"shipping_address": address}
        kwargs.update(overrides)
        order_id = place_order(user_id=user_id, items=items, **kwargs)
        return current_domain.repository_for(Order).get(order_id)

    return _place
