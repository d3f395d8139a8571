"""Lookups over orders."""

from commerce.domain import commerce
from commerce.order.order import Order


@commerce.repository(part_of=Order)
class OrderRepository:
    def for_user(self, user_id) -> list[Order]:
        """Orders placed by ``user_id``, newest first."""
        return self._dao.query.filter(user_id=str(user_id)).order_by("-created_at").all().items

    def find_by_number(self, order_number) -> Order | None:
        items = self._dao.query.filter(order_number=order_number).all().items
        return items[0] if items else None
