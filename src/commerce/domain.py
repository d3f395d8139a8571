"""Commerce domain: stock reservation, orders, payment ledger and reconciliation.

All aggregates live in one domain so that a single unit of work can span
product stock, the order that consumed it, and the payment ledger that
settles it.
"""

import structlog
from protean.domain import Domain

commerce = Domain(name="commerce")

logger = structlog.get_logger(__name__)
