"""Failure kinds of the generation cache and resilience layer.

Generation-quality failures (timeout, validation) are absorbed into fallback
content by the orchestrator. Persistence failures are logged and swallowed by
callers that already hold usable content. Only exhausted upstream retries on a
wizard step reach the user.
"""


class ContentEngineError(Exception):
    """Base class for all errors raised by this package."""


class GenerationTimeoutError(ContentEngineError, TimeoutError):
    """The upstream call did not finish within its time budget."""

    def __init__(self, budget_seconds: float):
        self.budget_seconds = budget_seconds
        super().__init__(f"Generation timed out after {budget_seconds:g}s")


class ContentValidationError(ContentEngineError):
    """Generated content failed structural or length checks."""


class UpstreamError(ContentEngineError):
    """The generative service returned an explicit failure."""

    def __init__(self, message: str, status_code: int | None = None, retryable: bool = True):
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


class PersistenceError(ContentEngineError):
    """A cache or draft read/write against the relational store failed."""


class ExhaustedRetriesError(ContentEngineError):
    """Every retry attempt of an operation failed."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed after {attempts} attempts: {str(last_error)[:200]}")


class DraftNotFoundError(ContentEngineError):
    """No draft checkpoint exists with the given id."""


class DraftStateError(ContentEngineError):
    """The draft is not in a state that allows the requested change."""


class DraftIncompleteError(ContentEngineError):
    """A draft cannot be finalized before every required step is present."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Draft is missing required steps: {', '.join(missing)}")


class WizardStepError(ContentEngineError):
    """A wizard step could not be generated; earlier progress stays saved."""

    def __init__(self, step: str, draft_id: str | None, cause: BaseException):
        self.step = step
        self.draft_id = draft_id
        self.cause = cause
        if draft_id:
            guidance = "Your progress was saved as a draft; retry this step later."
        else:
            guidance = "Nothing was saved yet; retry this step later."
        super().__init__(f"Step '{step}' failed. {guidance}")
