"""Planner error taxonomy. Every one of these ends in a fallback step."""


class PlannerError(Exception):
    """Base class. `retryable` decides whether another attempt is made."""

    retryable = True

    def __init__(self, message: str, cause: Exception = None):
        super().__init__(message)
        self.cause = cause

    @property
    def kind(self) -> str:
        return type(self).__name__


class NetworkError(PlannerError):
    """Endpoint unreachable or returned a non-2xx status."""
    pass


class PlannerTimeoutError(PlannerError):
    """Endpoint did not answer within the configured deadline."""
    pass


class ParseError(PlannerError):
    """No JSON object could be recovered from the response text."""
    pass


class ValidationError(PlannerError):
    """JSON parsed but does not have the AgentStep shape. Not retried."""

    retryable = False


class ModelError(PlannerError):
    """Endpoint answered but the payload is unusable (missing `response`, error field)."""
    pass
