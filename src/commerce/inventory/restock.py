"""Restock and stock corrections: the only stock writers besides reservations."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from commerce.domain import commerce, logger
from commerce.inventory.movements import MovementReason, StockMovement
from commerce.inventory.product import Product


@commerce.command(part_of="Product")
class RestockProduct:
    product_id = Identifier(required=True)
    quantity = Integer(required=True, min_value=1)
    variant_id = Identifier()
    location = String(max_length=100)
    note = String(max_length=255)
    actor = String(max_length=255)


@commerce.command(part_of="Product")
class CorrectStock:
    """Signed correction after a stock count (shrinkage, miscount...)."""

    product_id = Identifier(required=True)
    change = Integer(required=True)
    variant_id = Identifier()
    location = String(max_length=100)
    note = String(max_length=255)
    actor = String(max_length=255)


@commerce.command_handler(part_of=Product)
class StockLevelHandler:
    def _apply(self, command, change, reason):
        repo = current_domain.repository_for(Product)
        product = repo.get(command.product_id)
        product.adjust_stock(change, variant_id=command.variant_id, location=command.location)
        repo.save(product)

        current_domain.repository_for(StockMovement).add(
            StockMovement.record(
                product,
                change,
                reason,
                variant_id=command.variant_id,
                location=command.location,
                reference_id=command.note,
                actor=command.actor,
            )
        )
        logger.info(
            "stock_level_changed",
            product_id=str(product.id),
            change=change,
            reason=reason.value,
            stock=product.stock,
        )
        return product.stock

    @handle(RestockProduct)
    def restock(self, command):
        return self._apply(command, command.quantity, MovementReason.RESTOCK)

    @handle(CorrectStock)
    def correct(self, command):
        if command.change == 0:
            raise ValidationError({"change": ["Correction must be non-zero"]})
        return self._apply(command, command.change, MovementReason.ADJUSTMENT)
