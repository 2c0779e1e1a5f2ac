"""
Error taxonomy for the value profile engine.
"""

from typing import Optional


class ValueProfileError(Exception):
    """Base class for engine errors."""
    pass


class ConfigurationError(ValueProfileError):
    """Engine configuration is invalid."""
    pass


class DimensionMismatch(ValueProfileError):
    """A vector's length disagrees with the expected dimensionality."""

    def __init__(self, expected: int, actual: int, context: str = ""):
        self.expected = expected
        self.actual = actual
        self.context = context
        message = f"Vector dimension {actual} does not match expected dimension {expected}"
        if context:
            message += f" ({context})"
        super().__init__(message)


class MalformedVector(ValueProfileError):
    """A stored embedding could not be parsed into a numeric vector."""
    pass


class ReconciliationPartialFailure(ValueProfileError):
    """Re-attaching anonymous posts failed; nothing was committed."""

    def __init__(self, temporary_token: str, user_id: str, cause: Optional[BaseException] = None):
        self.temporary_token = temporary_token
        self.user_id = user_id
        self.cause = cause
        message = f"Reconciliation of temporary contributions into '{user_id}' failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class UpstreamUnavailable(ValueProfileError):
    """The embedding service or similarity search could not be reached."""

    def __init__(self, service: str, cause: Optional[BaseException] = None):
        self.service = service
        self.cause = cause
        message = f"Upstream service '{service}' unavailable"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
