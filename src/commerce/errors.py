"""Error taxonomy for the commerce core.

Input problems surface as ``protean.exceptions.ValidationError`` and missing
records as ``ObjectNotFoundError``.  The classes below add the two kinds
Protean does not model: state conflicts and authorization failures.  The API
layer maps each class to a ``{message, kind}`` response.
"""

from dataclasses import dataclass

from protean.exceptions import ValidationError


class ConflictError(ValidationError):
    """The request is well formed but the current state does not allow it."""

    kind = "conflict"


class TransitionNotAllowed(ConflictError):
    """A status change that the state machine does not permit."""


class NotPayable(ConflictError):
    """A payment was requested for an order that cannot take one."""


@dataclass(frozen=True)
class ReservationFailure:
    """One line of a reservation request that could not be satisfied."""

    product_id: str
    variant_id: str | None
    location: str | None
    requested: int
    available: int | None
    reason: str

    def describe(self) -> str:
        target = self.product_id
        if self.variant_id:
            target = f"{target}/{self.variant_id}"
        if self.location:
            target = f"{target}@{self.location}"
        return f"{target}: {self.reason}"

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "location": self.location,
            "requested": self.requested,
            "available": self.available,
            "reason": self.reason,
        }


class ReservationFailed(ConflictError):
    """Raised when any line of a reservation cannot be satisfied.

    Carries every failing line so the caller can report them together.
    Nothing has been written when this is raised.
    """

    def __init__(self, failures: list[ReservationFailure]) -> None:
        self.failures = list(failures)
        super().__init__({"items": [failure.describe() for failure in self.failures]})


class AccessDenied(Exception):
    """The authenticated principal may not act on the resource."""

    kind = "forbidden"


class NotAuthenticated(Exception):
    """No valid identity accompanied the request."""

    kind = "unauthorized"
