"""Exception types raised by the ordering services.

API handlers map these onto HTTP status codes; the message of each exception
is safe to show to a customer or staff member.
"""


class OrderingError(Exception):
    """Base class for expected ordering failures."""


class InvalidAmountError(OrderingError):
    """A monetary input was negative or not a number."""


class ValidationError(OrderingError):
    """Required input was missing or malformed."""


class EmptyCartError(OrderingError):
    """An action that needs cart contents was attempted on an empty cart."""


class IllegalTransitionError(OrderingError):
    """A conversation action is not allowed from the current step."""

    def __init__(self, step: str, action: str) -> None:
        super().__init__(f"Action '{action}' is not allowed at step '{step}'")
        self.step = step
        self.action = action


class NotFoundError(OrderingError):
    """A referenced order, table or menu item does not exist."""


class PersistenceError(OrderingError):
    """A write to the backing store failed."""
