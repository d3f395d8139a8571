"""Order cancellation: status change and stock restoration commit together."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from commerce.concurrency import order_key, process_exclusively, product_key
from commerce.domain import commerce, logger
from commerce.inventory.engine import ReservationEngine
from commerce.order.order import Order


@commerce.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    reason = String(max_length=500)
    cancelled_by = String(required=True, max_length=255)


def cancel_and_restore(order, reason, cancelled_by):
    """Cancel ``order`` and return its stock within the current unit of work."""
    order.cancel(reason=reason, cancelled_by=cancelled_by)
    restored = ReservationEngine().restore(order.lines, reference=order.order_number, actor=cancelled_by)
    current_domain.repository_for(Order).add(order)
    logger.info(
        "order_cancelled",
        order_id=str(order.id),
        order_number=order.order_number,
        cancelled_by=cancelled_by,
        units_restored=restored,
    )


@commerce.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        order = current_domain.repository_for(Order).get(command.order_id)
        cancel_and_restore(order, command.reason, command.cancelled_by)
        return order.status


def lock_keys_for(order) -> list[str]:
    """Locks needed to change ``order`` and the stock it holds."""
    return [order_key(order.id)] + [product_key(pid) for pid in order.product_ids]


def cancel_order(order_id, cancelled_by, reason=None):
    order = current_domain.repository_for(Order).get(order_id)
    command = CancelOrder(order_id=order_id, reason=reason, cancelled_by=cancelled_by)
    return process_exclusively(command, lock_keys_for(order))
