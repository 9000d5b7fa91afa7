"""Error taxonomy for the orchestration pipeline.

Only conditions that abort a request are raised.  Tool-level problems
(bad arguments, missing tabs, booking rejections) travel back as
``FunctionResult(success=False, ...)`` so templates and the responder can
turn them into user-facing copy.
"""

from __future__ import annotations


class StoreChatError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(StoreChatError):
    """Tool arguments failed schema validation."""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = errors or []
        super().__init__(message)


class ExternalServiceError(StoreChatError):
    """A completion, tab, calendar or database call failed."""

    def __init__(
        self,
        message: str,
        *,
        service: str = "unknown",
        status_code: int | None = None,
    ):
        self.service = service
        self.status_code = status_code
        super().__init__(message)


class ClassificationFailed(ExternalServiceError):
    """The classifier call timed out or returned a non-2xx status."""


class MalformedModelOutput(StoreChatError):
    """A model reply could not be parsed into the expected JSON."""

    def __init__(self, message: str, raw: str | None = None):
        self.raw = raw
        super().__init__(message)


class MalformedClassification(MalformedModelOutput):
    """Classifier JSON is missing ``function_to_call`` or ``extracted_params``."""


class ResourceUnavailable(StoreChatError):
    """Store, tab or calendar is not found or not configured."""


class BudgetExceeded(StoreChatError):
    """The native tool-calling loop hit its iteration cap."""

    def __init__(self, iterations: int):
        self.iterations = iterations
        super().__init__(
            f"Tool-calling loop exceeded its budget of {iterations} iterations"
        )
