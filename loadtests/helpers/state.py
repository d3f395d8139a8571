"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state, with no cross-user sharing.
State tracks entity IDs returned by creation endpoints so follow-up
operations can reference them.
"""

from dataclasses import dataclass, field


@dataclass
class CatalogState:
    """Products an administrator seeded for this user."""

    product_ids: list[str] = field(default_factory=list)


@dataclass
class OrderState:
    """Tracks state for a single order lifecycle."""

    order_id: str | None = None
    order_number: str | None = None
    total: int = 0
    current_status: str = "pending"


@dataclass
class PaymentState:
    """Tracks state for a payment lifecycle."""

    transaction_id: str | None = None
    correlation_id: str | None = None
    order_id: str | None = None
    amount: int = 0
    current_status: str = "initiated"
