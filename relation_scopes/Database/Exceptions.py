from __future__ import annotations

from typing import Iterable


class RelationException(Exception):
    """Base exception for relation errors."""
    pass


class UnknownFinderOptionException(RelationException, ValueError):
    """Exception raised when a finder-options mapping holds an unknown key."""

    def __init__(self, unknown_keys: Iterable[str], valid_keys: Iterable[str]) -> None:
        self.unknown_keys = sorted(str(key) for key in unknown_keys)
        self.valid_keys = sorted(valid_keys)

        super().__init__(
            f"Unknown finder option(s) `{', '.join(self.unknown_keys)}`. "
            f"Valid options are `{', '.join(self.valid_keys)}`."
        )


class InvalidJoinException(RelationException):
    """Exception raised when a join target cannot be resolved."""
    pass


class RelationshipNotFoundException(RelationException):
    """Exception for missing relationships."""
    pass


class MissingSessionException(RelationException):
    """Exception raised when a relation is executed without a session."""
    pass
