"""Domain exceptions raised by the urban planning pipeline.

Only `ValidationError`, `GenerationFailure` and `TransportError` end a
request. Parse degradation, skipped steps and cleanup errors are logged
and never raised.
"""


class PlannerError(Exception):
    """Base class for errors surfaced by the planning pipeline."""


class ValidationError(PlannerError, ValueError):
    """Upload rejected before any model call is made.

    Attributes:
        status_code: HTTP status the API layer should answer with.
    """

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


class GenerationFailure(PlannerError, RuntimeError):
    """The single-shot visualization returned no image."""


class TransportError(PlannerError, RuntimeError):
    """The remote model could not be reached or returned an API error."""


class InvalidTransition(PlannerError, RuntimeError):
    """A view-state action was requested from a phase that does not allow it."""
