"""Domain events for the Product aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from commerce.domain import commerce


@commerce.event(part_of="Product")
class ProductAdded:
    """A product was registered with its opening stock."""

    __version__ = 1

    product_id = Identifier(required=True)
    name = String(required=True)
    sku = String()
    unit_price = Integer(required=True)
    currency = String(max_length=3)
    stock = Integer(required=True)
    added_at = DateTime(required=True)


@commerce.event(part_of="Product")
class StockAdjusted:
    """Stock for a product, variant or location moved by ``change`` units."""

    __version__ = 1

    product_id = Identifier(required=True)
    variant_id = Identifier()
    location = String()
    change = Integer(required=True)
    stock_after = Integer(required=True)
    adjusted_at = DateTime(required=True)


@commerce.event(part_of="Product")
class StockDepleted:
    """The product no longer has sellable stock."""

    __version__ = 1

    product_id = Identifier(required=True)
    depleted_at = DateTime(required=True)
