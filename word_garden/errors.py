"""Error types raised by the word_garden core.

Every error carries the HTTP status the API layer should answer with, so the
Flask app can translate them in a single handler.
"""


class WordGardenError(Exception):
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(WordGardenError):
    """A required field is missing or malformed. Nothing was written."""
    status_code = 400


class AuthenticationError(WordGardenError):
    status_code = 401


class NotFoundError(WordGardenError):
    status_code = 404


class ConflictError(WordGardenError):
    """A unique key already exists. Nothing was written."""
    status_code = 409


class StorageError(WordGardenError):
    status_code = 500


class ExternalServiceError(WordGardenError):
    """The dictionary or AI tutor service failed or timed out."""
    status_code = 502
