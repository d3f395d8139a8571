"""StockMovement: append-only audit trail of every stock change."""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from commerce.domain import commerce


class MovementReason(Enum):
    ORDER = "order"
    CANCELLATION = "cancellation"
    RESTOCK = "restock"
    ADJUSTMENT = "adjustment"


@commerce.aggregate
class StockMovement:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    location = String(max_length=100)
    change = Integer(required=True)
    stock_after = Integer()
    reason = String(choices=MovementReason, required=True)
    reference_id = String(max_length=255)
    actor = String(max_length=255)
    occurred_at = DateTime()

    @classmethod
    def record(cls, product, change, reason, variant_id=None, location=None, reference_id=None, actor=None):
        return cls(
            product_id=str(product.id),
            variant_id=str(variant_id) if variant_id else None,
            location=location,
            change=change,
            stock_after=product.stock,
            reason=reason.value if isinstance(reason, MovementReason) else reason,
            reference_id=str(reference_id) if reference_id else None,
            actor=actor,
            occurred_at=datetime.now(UTC),
        )


def movements_for(product_id) -> list[StockMovement]:
    """Movements recorded for a product, oldest first."""
    repo = current_domain.repository_for(StockMovement)
    return repo._dao.query.filter(product_id=str(product_id)).order_by("occurred_at").all().items
