"""Product registration: command and handler."""

import json

from protean import handle
from protean.fields import Boolean, Integer, String, Text
from protean.utils.globals import current_domain

from commerce.domain import commerce
from commerce.inventory.product import Product


@commerce.command(part_of="Product")
class AddProduct:
    name = String(required=True, max_length=255)
    unit_price = Integer(required=True, min_value=0)
    sku = String(max_length=64)
    currency = String(max_length=3)
    stock = Integer(default=0)
    stock_by_location = Text()  # JSON: {location: quantity}
    allow_backorder = Boolean(default=False)
    variants = Text()  # JSON: list of variant dicts


@commerce.command_handler(part_of=Product)
class AddProductHandler:
    @handle(AddProduct)
    def add_product(self, command):
        variants = json.loads(command.variants) if command.variants else None
        product = Product.create(
            name=command.name,
            unit_price=command.unit_price,
            sku=command.sku,
            currency=command.currency,
            stock=command.stock,
            stock_by_location=command.stock_by_location,
            allow_backorder=command.allow_backorder,
            variants=variants,
        )
        current_domain.repository_for(Product).save(product)
        return str(product.id)
