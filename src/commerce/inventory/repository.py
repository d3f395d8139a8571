"""Product repository: the only surface through which stock is written."""

from dataclasses import dataclass

from protean.exceptions import ObjectNotFoundError

from commerce.domain import commerce
from commerce.inventory.product import Product


@dataclass(frozen=True)
class StockOp:
    """A signed stock change against one holder of a product."""

    product_id: str
    change: int
    variant_id: str | None = None
    location: str | None = None


@commerce.repository(part_of=Product)
class ProductRepository:
    def find_by_id(self, product_id) -> Product | None:
        try:
            return self.get(str(product_id))
        except ObjectNotFoundError:
            return None

    def find_many(self, product_ids) -> dict[str, Product]:
        """Load each distinct product once; missing ids are left out."""
        found = {}
        for product_id in dict.fromkeys(str(pid) for pid in product_ids):
            product = self.find_by_id(product_id)
            if product is not None:
                found[product_id] = product
        return found

    def bulk_adjust_stock(self, ops: list[StockOp], products: dict | None = None) -> dict[str, Product]:
        """Apply ``ops`` in order and persist every touched product.

        ``products`` may carry aggregates already loaded in the current unit
        of work so that they are not fetched twice.  Must run inside a unit
        of work for the batch to commit or roll back as a whole.
        """
        products = dict(products or {})
        touched = {}
        for op in ops:
            product = products.get(op.product_id)
            if product is None:
                product = self.get(op.product_id)
                products[op.product_id] = product
            product.adjust_stock(op.change, variant_id=op.variant_id, location=op.location)
            touched[op.product_id] = product

        for product in touched.values():
            self.add(product)
        return touched

    def save(self, product: Product) -> Product:
        self.add(product)
        return product
