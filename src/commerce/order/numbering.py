"""Human-readable order numbers: ``ORD-<year>-<six digit sequence>``.

Each namespace (one per year) is a single counter row, incremented in the
same unit of work as the order that takes the number.  Callers hold the
counter's lock key while the unit of work commits.
"""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.fields import Integer, String
from protean.utils.globals import current_domain

from commerce.domain import commerce


@commerce.aggregate
class OrderNumberSequence:
    namespace = String(identifier=True, max_length=50)
    seq = Integer(default=0, min_value=0)

    def advance(self) -> int:
        self.seq += 1
        return self.seq


def namespace_for(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(UTC)
    return f"order-{moment.year}"


def counter_key(moment: datetime | None = None) -> str:
    return f"counter:{namespace_for(moment)}"


def next_order_number(moment: datetime | None = None) -> str:
    """Find-and-increment the sequence for ``moment``'s year."""
    moment = moment or datetime.now(UTC)
    namespace = namespace_for(moment)
    repo = current_domain.repository_for(OrderNumberSequence)
    try:
        sequence = repo.get(namespace)
    except ObjectNotFoundError:
        sequence = OrderNumberSequence(namespace=namespace)

    seq = sequence.advance()
    repo.add(sequence)
    return f"ORD-{moment.year}-{seq:06d}"
