"""Reservation engine: all-or-nothing stock decrement and its inverse.

``reserve()`` validates every requested line against current stock before
touching anything.  If any line fails, ``ReservationFailed`` carries the
complete list of failures and nothing is written.  Otherwise every decrement
and its ``StockMovement`` row are added to the caller's unit of work, so they
commit (or roll back) together with whatever the caller writes next, such as
the order that consumed the stock.

The engine does not lock.  Callers run it inside a command processed with
``commerce.concurrency.process_exclusively`` keyed by the product ids
involved, which serializes competing reservations for the same product.
"""

import json
from collections import defaultdict
from dataclasses import dataclass, field

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from commerce.errors import ReservationFailed, ReservationFailure
from commerce.inventory.movements import MovementReason, StockMovement
from commerce.inventory.product import Product
from commerce.inventory.repository import StockOp

logger = structlog.get_logger(__name__)

NOT_FOUND = "not found"
INSUFFICIENT_STOCK = "insufficient stock"
VARIANT_REQUIRED = "variant required"


@dataclass(frozen=True)
class ReservationLine:
    product_id: str
    quantity: int
    variant_id: str | None = None
    location: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "ReservationLine":
        quantity = data.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise ValidationError({"quantity": [f"Quantity must be a positive integer, got {quantity!r}"]})
        if not data.get("product_id"):
            raise ValidationError({"product_id": ["is required"]})
        return cls(
            product_id=str(data["product_id"]),
            quantity=quantity,
            variant_id=str(data["variant_id"]) if data.get("variant_id") else None,
            location=data.get("location") or None,
        )

    @property
    def holder_key(self):
        return (self.product_id, self.variant_id)


@dataclass(frozen=True)
class ReservedLine:
    """A satisfied line, with the snapshot data an order needs."""

    product_id: str
    variant_id: str | None
    quantity: int
    name: str
    sku: str | None
    unit_price: int
    currency: str
    allocations: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Reservation:
    reference: str | None
    lines: list[ReservedLine]

    @property
    def product_ids(self) -> list[str]:
        return sorted({line.product_id for line in self.lines})


def _failure(line, reason, available=None, quantity=None):
    return ReservationFailure(
        product_id=line.product_id,
        variant_id=line.variant_id,
        location=line.location,
        requested=quantity if quantity is not None else line.quantity,
        available=available,
        reason=reason,
    )


def _structural_problem(product, line):
    if product is None:
        return NOT_FOUND
    if line.variant_id is not None:
        if product.find_variant(line.variant_id) is None:
            return NOT_FOUND
    elif product.variants:
        return VARIANT_REQUIRED
    # A location must already exist on the holder, even for backorders
    if line.location is not None and line.location not in product.stock_levels(line.variant_id):
        return NOT_FOUND
    return None


def _allocation_map(line) -> dict:
    """Decode the per-location allocation stored on an order line."""
    raw = getattr(line, "allocations", None)
    if isinstance(raw, str):
        raw = json.loads(raw) if raw else {}
    return {(location or None): int(quantity) for location, quantity in (raw or {}).items()}


def _take(levels: dict, quantity: int, location=None) -> dict:
    """Draw ``quantity`` from ``levels`` and return the allocation.

    ``levels`` is updated in place.  Location-less requests against tracked
    locations draw from the fullest locations first; anything left over
    (only possible with backorders) lands on the first location.
    """
    if location is not None:
        levels[location] -= quantity
        return {location: quantity}

    if None in levels:
        levels[None] -= quantity
        return {None: quantity}

    allocation = {}
    remaining = quantity
    ordered = sorted(levels, key=lambda loc: (-levels[loc], loc))
    for loc in ordered:
        if remaining == 0:
            break
        taken = min(remaining, max(levels[loc], 0))
        if taken:
            allocation[loc] = taken
            levels[loc] -= taken
            remaining -= taken
    if remaining and ordered:
        first = ordered[0]
        allocation[first] = allocation.get(first, 0) + remaining
        levels[first] -= remaining
    return allocation


class ReservationEngine:
    def __init__(self, repository=None) -> None:
        self.repository = repository or current_domain.repository_for(Product)

    # -------------------------------------------------------------------
    # Reserve
    # -------------------------------------------------------------------
    def check(self, lines: list[ReservationLine], products: dict) -> list[ReservationFailure]:
        """Return every line that cannot be satisfied, without side effects.

        Repeated lines for the same holder are checked against their
        combined quantity, per location and in total.
        """
        holder_demand = defaultdict(int)
        location_demand = defaultdict(int)
        first_line = {}
        for line in lines:
            holder_demand[line.holder_key] += line.quantity
            first_line.setdefault(line.holder_key, line)
            if line.location is not None:
                location_demand[(line.holder_key, line.location)] += line.quantity
                first_line.setdefault((line.holder_key, line.location), line)

        failures = []
        skipped = set()
        for line in lines:
            reason = _structural_problem(products.get(line.product_id), line)
            if reason:
                skipped.add(line.holder_key)
                failures.append(_failure(line, reason))

        for holder_key in holder_demand:
            if holder_key not in skipped and products[holder_key[0]].allow_backorder:
                skipped.add(holder_key)

        for (holder_key, location), wanted in location_demand.items():
            if holder_key in skipped:
                continue
            available = products[holder_key[0]].available(holder_key[1], location)
            if wanted > available:
                failures.append(
                    _failure(first_line[(holder_key, location)], INSUFFICIENT_STOCK, available, wanted)
                )
                skipped.add(holder_key)

        for holder_key, wanted in holder_demand.items():
            if holder_key in skipped:
                continue
            available = products[holder_key[0]].available(holder_key[1])
            if wanted > available:
                failures.append(_failure(first_line[holder_key], INSUFFICIENT_STOCK, available, wanted))
        return failures

    def reserve(self, lines, reference=None, actor=None) -> Reservation:
        """Decrement stock for every line, or for none of them.

        Raises ``ReservationFailed`` listing every failing line.
        """
        lines = [line if isinstance(line, ReservationLine) else ReservationLine.from_dict(line) for line in lines]
        if not lines:
            raise ValidationError({"items": ["At least one item is required"]})

        products = self.repository.find_many(line.product_id for line in lines)
        failures = self.check(lines, products)
        if failures:
            logger.info(
                "reservation_rejected",
                reference=reference,
                failures=[failure.describe() for failure in failures],
            )
            raise ReservationFailed(failures)

        # Location-scoped lines are planned first so that greedy allocation
        # of unscoped lines cannot starve them.
        levels = {}
        allocations = {}
        planned = sorted(enumerate(lines), key=lambda pair: pair[1].location is None)
        for index, line in planned:
            product = products[line.product_id]
            holder_levels = levels.setdefault(line.holder_key, product.stock_levels(line.variant_id))
            allocations[index] = _take(holder_levels, line.quantity, line.location)

        ops = [
            StockOp(line.product_id, -quantity, line.variant_id, location)
            for index, line in enumerate(lines)
            for location, quantity in allocations[index].items()
        ]
        self.repository.bulk_adjust_stock(ops, products)
        self._record_movements(ops, products, MovementReason.ORDER, reference, actor)

        reserved = [
            ReservedLine(
                product_id=line.product_id,
                variant_id=line.variant_id,
                quantity=line.quantity,
                name=products[line.product_id].name,
                sku=products[line.product_id].sku_for(line.variant_id),
                unit_price=products[line.product_id].price_for(line.variant_id),
                currency=products[line.product_id].currency,
                allocations={loc or "": qty for loc, qty in allocations[index].items()},
            )
            for index, line in enumerate(lines)
        ]
        logger.info("stock_reserved", reference=reference, lines=len(reserved))
        return Reservation(reference=reference, lines=reserved)

    # -------------------------------------------------------------------
    # Restore
    # -------------------------------------------------------------------
    def restore(self, lines, reference=None, actor=None, reason=MovementReason.CANCELLATION) -> int:
        """Return previously reserved stock, exactly where it was taken from.

        ``lines`` are order line snapshots exposing ``product_id``,
        ``variant_id``, ``quantity`` and ``allocations``.  Lines whose product
        or variant has since been removed are skipped.  Returns the number of
        units put back.
        """
        products = self.repository.find_many(line.product_id for line in lines)
        ops = []
        for line in lines:
            product = products.get(str(line.product_id))
            variant_id = str(line.variant_id) if line.variant_id else None
            if product is None or (variant_id and product.find_variant(variant_id) is None):
                logger.warning(
                    "restore_skipped_missing_product",
                    reference=reference,
                    product_id=str(line.product_id),
                    variant_id=variant_id,
                    quantity=line.quantity,
                )
                continue

            allocations = _allocation_map(line) or {None: line.quantity}
            tracked = [loc for loc in product.stock_levels(variant_id) if loc is not None]
            for location, quantity in allocations.items():
                if location is None and tracked:
                    location = sorted(tracked)[0]
                ops.append(StockOp(str(line.product_id), quantity, variant_id, location))

        if ops:
            self.repository.bulk_adjust_stock(ops, products)
            self._record_movements(ops, products, reason, reference, actor)
        restored = sum(op.change for op in ops)
        logger.info("stock_restored", reference=reference, units=restored)
        return restored

    def _record_movements(self, ops, products, reason, reference, actor):
        movement_repo = current_domain.repository_for(StockMovement)
        for op in ops:
            movement_repo.add(
                StockMovement.record(
                    products[op.product_id],
                    op.change,
                    reason,
                    variant_id=op.variant_id,
                    location=op.location,
                    reference_id=reference,
                    actor=actor,
                )
            )
