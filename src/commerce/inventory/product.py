"""Product aggregate: the authoritative store of sellable stock.

Stock is held at the most specific level that is tracked:

    product           → ``stock`` (and optionally ``stock_by_location``)
    product + variant → ``variant.stock`` (and optionally its locations)

Whenever variants exist the product's ``stock`` is their sum; whenever
locations are tracked a holder's ``stock`` is the sum of its locations.
``in_stock`` is a derived cache and is recomputed by every mutation.
"""

import json
from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, HasMany, Integer, String, Text

from commerce.domain import commerce
from commerce.inventory.events import ProductAdded, StockAdjusted, StockDepleted

DEFAULT_CURRENCY = "KES"


def load_locations(raw) -> dict[str, int]:
    """Decode a ``stock_by_location`` JSON column into a dict."""
    if not raw:
        return {}
    data = json.loads(raw) if isinstance(raw, str) else dict(raw)
    return {str(location): int(quantity) for location, quantity in data.items()}


def dump_locations(locations: dict[str, int]) -> str | None:
    if not locations:
        return None
    return json.dumps(locations, sort_keys=True)


@commerce.entity(part_of="Product")
class Variant:
    """A sellable variation of a product (size, colour...) with its own stock."""

    title = String(required=True, max_length=255)
    sku = String(max_length=64)
    unit_price = Integer(min_value=0)  # overrides the product price when set
    stock = Integer(default=0)
    stock_by_location = Text()
    in_stock = Boolean(default=False)


@commerce.aggregate
class Product:
    name = String(required=True, max_length=255)
    sku = String(max_length=64)
    unit_price = Integer(required=True, min_value=0)
    currency = String(max_length=3, default=DEFAULT_CURRENCY)
    stock = Integer(default=0)
    stock_by_location = Text()
    in_stock = Boolean(default=False)
    allow_backorder = Boolean(default=False)
    variants = HasMany(Variant)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def stock_equals_sum_of_variants(self):
        if self.variants and self.stock != sum(v.stock for v in self.variants):
            raise ValidationError({"stock": ["Product stock must equal the sum of its variant stock"]})

    @invariant.post
    def stock_equals_sum_of_locations(self):
        holders = list(self.variants) or [self]
        for holder in holders:
            locations = load_locations(holder.stock_by_location)
            if locations and holder.stock != sum(locations.values()):
                raise ValidationError({"stock_by_location": ["Stock must equal the sum of its locations"]})

    @invariant.post
    def stock_cannot_go_negative_without_backorder(self):
        if self.allow_backorder:
            return
        holders = [self, *self.variants]
        for holder in holders:
            quantities = [holder.stock, *load_locations(holder.stock_by_location).values()]
            if any(quantity < 0 for quantity in quantities):
                raise ValidationError({"stock": ["Stock cannot go negative unless backorders are allowed"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        name,
        unit_price,
        sku=None,
        currency=None,
        stock=0,
        stock_by_location=None,
        allow_backorder=False,
        variants=None,
    ):
        """Register a product with its opening stock.

        ``variants`` is a list of dicts with ``title`` and optionally ``sku``,
        ``unit_price``, ``stock`` and ``stock_by_location``.  When variants or
        locations are given, ``stock`` is derived from them and the argument
        is ignored.
        """
        now = datetime.now(UTC)
        product = cls(
            name=name,
            sku=sku,
            unit_price=unit_price,
            currency=currency or DEFAULT_CURRENCY,
            stock=stock or 0,
            allow_backorder=allow_backorder,
            created_at=now,
            updated_at=now,
        )

        with atomic_change(product):
            root_locations = load_locations(stock_by_location)
            if root_locations and not variants:
                product.stock_by_location = dump_locations(root_locations)
            for data in variants or []:
                locations = load_locations(data.get("stock_by_location"))
                product.add_variants(
                    Variant(
                        title=data["title"],
                        sku=data.get("sku"),
                        unit_price=data.get("unit_price"),
                        stock=sum(locations.values()) if locations else data.get("stock", 0),
                        stock_by_location=dump_locations(locations),
                    )
                )
            product._recompute_derived()

        product.raise_(
            ProductAdded(
                product_id=str(product.id),
                name=name,
                sku=sku,
                unit_price=unit_price,
                currency=product.currency,
                stock=product.stock,
                added_at=now,
            )
        )
        return product

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def find_variant(self, variant_id):
        return next((v for v in self.variants if str(v.id) == str(variant_id)), None)

    def holder(self, variant_id=None):
        """Return the object that carries stock for ``variant_id``."""
        if variant_id is None:
            return self
        variant = self.find_variant(variant_id)
        if variant is None:
            raise ValidationError({"variant_id": [f"Variant {variant_id} not found"]})
        return variant

    def stock_levels(self, variant_id=None) -> dict:
        """Per-location stock for a holder, or ``{None: stock}`` when untracked."""
        holder = self.holder(variant_id)
        locations = load_locations(holder.stock_by_location)
        return dict(locations) if locations else {None: holder.stock}

    def available(self, variant_id=None, location=None) -> int:
        holder = self.holder(variant_id)
        if location is None:
            return holder.stock
        return load_locations(holder.stock_by_location).get(location, 0)

    def price_for(self, variant_id=None) -> int:
        if variant_id is not None:
            variant = self.holder(variant_id)
            if variant.unit_price is not None:
                return variant.unit_price
        return self.unit_price

    def sku_for(self, variant_id=None):
        if variant_id is not None:
            return self.holder(variant_id).sku or self.sku
        return self.sku

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def _recompute_derived(self):
        for variant in self.variants:
            locations = load_locations(variant.stock_by_location)
            if locations:
                variant.stock = sum(locations.values())
            variant.in_stock = variant.stock > 0

        if self.variants:
            self.stock = sum(v.stock for v in self.variants)
            self.in_stock = any(v.in_stock for v in self.variants)
        else:
            locations = load_locations(self.stock_by_location)
            if locations:
                self.stock = sum(locations.values())
            self.in_stock = self.stock > 0

    def adjust_stock(self, change, variant_id=None, location=None):
        """Move stock by ``change`` units (negative to decrement).

        Products with variants only accept variant-level changes.  Holders
        that track locations only accept location-scoped changes.
        """
        if variant_id is None and self.variants:
            raise ValidationError({"variant_id": ["A variant is required for products with variants"]})

        holder = self.holder(variant_id)
        was_in_stock = self.in_stock

        with atomic_change(self):
            locations = load_locations(holder.stock_by_location)
            if location is not None:
                if not locations and holder.stock:
                    raise ValidationError(
                        {"location": ["Stock is not tracked per location; omit the location or correct stock first"]}
                    )
                locations[location] = locations.get(location, 0) + change
                holder.stock_by_location = dump_locations(locations)
            elif locations:
                raise ValidationError({"location": ["Stock is tracked per location; a location is required"]})
            else:
                holder.stock = holder.stock + change
            self._recompute_derived()

        now = datetime.now(UTC)
        self.updated_at = now
        self.raise_(
            StockAdjusted(
                product_id=str(self.id),
                variant_id=str(variant_id) if variant_id else None,
                location=location,
                change=change,
                stock_after=self.stock,
                adjusted_at=now,
            )
        )
        if was_in_stock and not self.in_stock:
            self.raise_(StockDepleted(product_id=str(self.id), depleted_at=now))
