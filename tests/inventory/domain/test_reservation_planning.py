"""Tests for reservation checks that need no persistence."""

import json

import pytest
from commerce.errors import ReservationFailure
from commerce.inventory.engine import (
    INSUFFICIENT_STOCK,
    NOT_FOUND,
    VARIANT_REQUIRED,
    ReservationEngine,
    ReservationLine,
    _allocation_map,
    _take,
)
from commerce.inventory.product import Product
from protean.exceptions import ValidationError


def _product(**overrides):
    defaults = {"name": "Sisal Basket", "unit_price": 90_000, "stock": 5}
    defaults.update(overrides)
    return Product.create(**defaults)


class TestReservationLine:
    def test_from_dict(self):
        line = ReservationLine.from_dict({"product_id": "p1", "quantity": 2, "location": "kisumu"})
        assert line == ReservationLine(product_id="p1", quantity=2, location="kisumu")

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True, None])
    def test_rejects_non_positive_integer_quantity(self, quantity):
        with pytest.raises(ValidationError):
            ReservationLine.from_dict({"product_id": "p1", "quantity": quantity})

    def test_requires_product_id(self):
        with pytest.raises(ValidationError):
            ReservationLine.from_dict({"quantity": 1})


class TestCheck:
    def _check(self, lines, products):
        engine = ReservationEngine(repository=object())
        return engine.check(lines, products)

    def test_all_satisfiable(self):
        product = _product(stock=5)
        lines = [ReservationLine(str(product.id), 5)]
        assert self._check(lines, {str(product.id): product}) == []

    def test_reports_every_failure(self):
        short = _product(stock=1)
        lines = [
            ReservationLine(str(short.id), 2),
            ReservationLine("missing", 1),
        ]
        failures = self._check(lines, {str(short.id): short})
        reasons = {f.product_id: f.reason for f in failures}
        assert reasons == {str(short.id): INSUFFICIENT_STOCK, "missing": NOT_FOUND}

    def test_insufficient_failure_carries_available(self):
        product = _product(stock=4)
        (failure,) = self._check([ReservationLine(str(product.id), 10)], {str(product.id): product})
        assert failure == ReservationFailure(
            product_id=str(product.id),
            variant_id=None,
            location=None,
            requested=10,
            available=4,
            reason=INSUFFICIENT_STOCK,
        )

    def test_repeated_lines_are_checked_together(self):
        product = _product(stock=5)
        lines = [ReservationLine(str(product.id), 3), ReservationLine(str(product.id), 3)]
        (failure,) = self._check(lines, {str(product.id): product})
        assert failure.requested == 6

    def test_variant_required(self):
        product = _product(variants=[{"title": "Large", "stock": 3}])
        (failure,) = self._check([ReservationLine(str(product.id), 1)], {str(product.id): product})
        assert failure.reason == VARIANT_REQUIRED

    def test_unknown_variant_is_not_found(self):
        product = _product(variants=[{"title": "Large", "stock": 3}])
        (failure,) = self._check(
            [ReservationLine(str(product.id), 1, variant_id="nope")], {str(product.id): product}
        )
        assert failure.reason == NOT_FOUND

    def test_location_shortage(self):
        product = _product(stock_by_location={"kisumu": 1, "nairobi": 9})
        (failure,) = self._check(
            [ReservationLine(str(product.id), 2, location="kisumu")], {str(product.id): product}
        )
        assert failure.location == "kisumu"
        assert failure.available == 1

    def test_location_on_untracked_product_is_not_found(self):
        product = _product(stock=5)
        (failure,) = self._check(
            [ReservationLine(str(product.id), 1, location="nairobi")], {str(product.id): product}
        )
        assert failure.reason == NOT_FOUND
        assert failure.available is None

    def test_unknown_location_is_not_found_with_backorder(self):
        product = _product(stock_by_location={"kisumu": 1}, allow_backorder=True)
        (failure,) = self._check(
            [ReservationLine(str(product.id), 1, location="mombasa")], {str(product.id): product}
        )
        assert failure.reason == NOT_FOUND

    def test_backorder_skips_stock_check(self):
        product = _product(stock=0, allow_backorder=True)
        assert self._check([ReservationLine(str(product.id), 3)], {str(product.id): product}) == []


class TestAllocation:
    def test_untracked_stock(self):
        levels = {None: 5}
        assert _take(levels, 2) == {None: 2}
        assert levels == {None: 3}

    def test_explicit_location(self):
        levels = {"kisumu": 3, "nairobi": 1}
        assert _take(levels, 2, "kisumu") == {"kisumu": 2}

    def test_greedy_draws_from_fullest_location_first(self):
        levels = {"kisumu": 2, "nairobi": 5}
        assert _take(levels, 6) == {"nairobi": 5, "kisumu": 1}
        assert levels == {"kisumu": 1, "nairobi": 0}

    def test_allocation_map_decodes_json(self):
        class Line:
            allocations = json.dumps({"": 2, "kisumu": 1})

        assert _allocation_map(Line()) == {None: 2, "kisumu": 1}
