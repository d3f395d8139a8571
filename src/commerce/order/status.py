"""Administrative status changes."""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from commerce.concurrency import process_exclusively
from commerce.domain import commerce, logger
from commerce.order.cancellation import cancel_and_restore, lock_keys_for
from commerce.order.order import Order, OrderStatus


@commerce.command(part_of="Order")
class ChangeOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=20)
    changed_by = String(required=True, max_length=255)
    reason = String(max_length=500)


@commerce.command_handler(part_of=Order)
class ChangeOrderStatusHandler:
    @handle(ChangeOrderStatus)
    def change_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if command.status == OrderStatus.CANCELLED.value:
            cancel_and_restore(order, command.reason or "cancelled by administrator", command.changed_by)
            return order.status

        previous = order.status
        order.change_status(command.status, changed_by=command.changed_by)
        repo.add(order)
        logger.info(
            "order_status_changed",
            order_id=str(order.id),
            previous_status=previous,
            new_status=order.status,
            changed_by=command.changed_by,
        )
        return order.status


def change_order_status(order_id, status, changed_by, reason=None):
    order = current_domain.repository_for(Order).get(order_id)
    command = ChangeOrderStatus(order_id=order_id, status=status, changed_by=changed_by, reason=reason)
    return process_exclusively(command, lock_keys_for(order))
