"""Application tests for order number allocation."""

from datetime import UTC, datetime

from commerce.order.numbering import OrderNumberSequence, counter_key, namespace_for, next_order_number
from protean import current_domain


class TestOrderNumbers:
    def test_first_number_of_the_year(self):
        moment = datetime(2026, 3, 1, tzinfo=UTC)
        assert next_order_number(moment) == "ORD-2026-000001"

    def test_numbers_increase(self):
        moment = datetime(2026, 3, 1, tzinfo=UTC)
        numbers = [next_order_number(moment) for _ in range(3)]
        assert numbers == ["ORD-2026-000001", "ORD-2026-000002", "ORD-2026-000003"]

    def test_each_year_has_its_own_sequence(self):
        next_order_number(datetime(2026, 12, 31, tzinfo=UTC))
        assert next_order_number(datetime(2027, 1, 1, tzinfo=UTC)) == "ORD-2027-000001"

    def test_sequence_is_persisted(self):
        moment = datetime(2026, 3, 1, tzinfo=UTC)
        next_order_number(moment)
        next_order_number(moment)
        sequence = current_domain.repository_for(OrderNumberSequence).get(namespace_for(moment))
        assert sequence.seq == 2

    def test_counter_key_is_per_namespace(self):
        assert counter_key(datetime(2026, 1, 1, tzinfo=UTC)) == "counter:order-2026"
