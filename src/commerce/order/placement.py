"""Order placement: reserve stock and record the order in one unit of work."""

import json

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from commerce.concurrency import process_exclusively, product_key
from commerce.domain import commerce, logger
from commerce.inventory.engine import ReservationEngine, ReservationLine
from commerce.order.numbering import counter_key, next_order_number
from commerce.order.order import Order
from commerce.shipping import get_shipping_rates


@commerce.command(part_of="Order")
class PlaceOrder:
    user_id = Identifier(required=True)
    items = Text(required=True)  # JSON: [{product_id, quantity, variant_id?, location?}]
    shipping_address = Text(required=True)  # JSON: address dict
    billing_address = Text()  # JSON: address dict, defaults to shipping
    payment_provider = String(max_length=50)
    currency = String(max_length=3)
    notes = Text()


def _loads(value):
    return json.loads(value) if isinstance(value, str) else value


@commerce.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        lines = [ReservationLine.from_dict(item) for item in _loads(command.items) or []]
        shipping_address = _loads(command.shipping_address)
        billing_address = _loads(command.billing_address) if command.billing_address else None

        quote = get_shipping_rates().quote(shipping_address)
        order_number = next_order_number()
        reservation = ReservationEngine().reserve(lines, reference=order_number, actor=str(command.user_id))

        currencies = {line.currency for line in reservation.lines} | {quote.currency}
        if command.currency:
            currencies.add(command.currency)
        if len(currencies) > 1:
            raise ValidationError({"currency": [f"Order mixes currencies: {', '.join(sorted(currencies))}"]})

        order = Order.place(
            order_number=order_number,
            user_id=command.user_id,
            reservation=reservation,
            shipping_address=shipping_address,
            billing_address=billing_address,
            shipping_fee=quote.fee,
            currency=currencies.pop(),
            payment_provider=command.payment_provider,
            notes=command.notes,
        )
        current_domain.repository_for(Order).add(order)

        logger.info(
            "order_placed",
            order_id=str(order.id),
            order_number=order_number,
            user_id=str(command.user_id),
            total=order.totals.total,
            shipping_rate=quote.rate_name,
        )
        return str(order.id)


def place_order(user_id, items, shipping_address, billing_address=None, payment_provider=None, currency=None, notes=None):
    """Place an order while holding the locks of every product it touches."""
    product_ids = sorted({str(item.get("product_id")) for item in items if item.get("product_id")})
    command = PlaceOrder(
        user_id=user_id,
        items=json.dumps(items),
        shipping_address=json.dumps(shipping_address),
        billing_address=json.dumps(billing_address) if billing_address else None,
        payment_provider=payment_provider,
        currency=currency,
        notes=notes,
    )
    keys = [product_key(pid) for pid in product_ids] + [counter_key()]
    return process_exclusively(command, keys)
