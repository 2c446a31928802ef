"""
Error taxonomy for the scheduler and the services around it.

The three scheduling errors are local validation failures: they are raised
before any new record is built, so a caller never sees a half-applied
transition.
"""


class NomosError(Exception):
    """Base class for every error raised by nomos."""


class SchedulingError(NomosError):
    """A grading call was rejected."""


class InvalidRatingError(SchedulingError):
    """The rating is not one of again, hard, good, easy."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid rating {value!r}; expected one of again, hard, good, easy")


class InvalidConfigurationError(SchedulingError):
    """The deck configuration cannot serve the card's current state."""


class InvalidStateTransitionError(SchedulingError):
    """The card's state does not allow the requested operation."""


class CardNotFoundError(NomosError):
    """No card with the given id exists in the collection."""

    def __init__(self, card_id: str):
        self.card_id = card_id
        super().__init__(f"Card not found: {card_id}")


class StorageError(NomosError):
    """The collection file is unreadable or holds malformed records."""
