from typing import Iterable


class StorageError(OSError):
    """The key-value substrate refused a read or write (e.g. quota exceeded)."""


class InvalidTargetAgeError(ValueError):
    """Apparel target age outside the accepted age groups."""

    def __init__(self, received: object, valid: Iterable[int]):
        self.received = received
        self.valid = tuple(valid)
        super().__init__(
            "target_age must be one of "
            + ", ".join(str(a) for a in self.valid)
            + f". Received: {received}"
        )


class AuthorizationError(PermissionError):
    """Administrative call made without an administrator session."""


class AuthenticationError(ValueError):
    """Registration or login could not be completed."""
