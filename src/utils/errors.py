"""Custom exception types for consistent error handling."""


class MatchingError(Exception):
    """Base class for errors raised by the matching service."""


class ProfileNotFoundError(MatchingError):
    """Raised when the viewer profile or its preferences do not exist."""

    def __init__(self, profile_id: str, what: str = "profile"):
        self.profile_id = profile_id
        self.what = what
        super().__init__(f"{what.capitalize()} not found: {profile_id}")


class StoreUnavailableError(MatchingError):
    """Raised when the profile/swipe store fails or times out.

    Callers may retry with backoff. The service never retries writes itself.
    """


class InvalidCursorError(MatchingError):
    """Raised when a pagination cursor cannot be decoded."""


class InvalidInputError(MatchingError):
    """Raised when request input validation fails."""
