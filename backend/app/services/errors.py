"""
Error types raised by the service layer.
"""


class NotFoundError(LookupError):
    """A user, category, transaction, budget or goal does not exist (or is not visible)."""


class ValidationError(ValueError):
    """Input that could not be interpreted, e.g. LLM output without a number in it."""


class ExternalServiceError(RuntimeError):
    """The text-generation service failed, timed out or returned an unusable payload."""


class PersistenceError(RuntimeError):
    """The database rejected a write. Not recoverable within the request."""
