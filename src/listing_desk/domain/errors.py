"""Error taxonomy for the submission and inbox engines.

Every exception renders a plain-language message via ``str()`` so callers can
show it directly; structured attributes carry the detail.
"""

from __future__ import annotations


class StepValidationError(Exception):
    """Raised when a step's validation predicate reports field errors."""

    def __init__(self, step_id: int, errors: dict[str, str]):
        self.step_id = step_id
        self.errors = dict(errors)
        first = next(iter(self.errors.values()), "Please fix the highlighted fields")
        super().__init__(first)


class InvalidStepTransitionError(Exception):
    """Raised when a workflow navigation target is not reachable."""

    def __init__(self, current_step: int, target_step: int, reason: str):
        self.current_step = current_step
        self.target_step = target_step
        self.reason = reason
        super().__init__(
            f"Cannot move from step {current_step} to step {target_step}: {reason}"
        )


class RestrictedFieldError(Exception):
    """Raised when an edit touches a field locked by the edit window."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(
            f"'{field}' can no longer be edited. Only the title and price fields "
            "can be changed on listings older than 24 hours."
        )


class MediaLimitError(Exception):
    """Raised when adding files would exceed a collection's bound."""

    def __init__(self, limit: int, current: int, adding: int):
        self.limit = limit
        self.current = current
        self.adding = adding
        super().__init__(
            f"Maximum {limit} files allowed. You have {current} and trying to add {adding}"
        )


class MediaFileError(Exception):
    """Raised when a file fails the local type/size checks."""


class ModerationRejection(Exception):
    """A moderation verdict against a single media item."""

    def __init__(self, reason: str, full_message: str | None = None, error_code: str | None = None):
        self.reason = reason
        self.full_message = full_message or reason
        self.error_code = error_code
        super().__init__(reason)


class TransportError(Exception):
    """Network, HTTP or parse failure on an external call, with a friendly message."""

    def __init__(
        self,
        status: int,
        message: str,
        errors: dict | list | None = None,
        payload: dict | None = None,
    ):
        self.status = status
        self.message = message
        self.errors = errors
        self.payload = payload
        super().__init__(message)


class TerminalCreationFailure(Exception):
    """The parent listing could not be created; nothing was uploaded."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class SubmissionError(Exception):
    """An update of an existing listing failed."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class PartialFailure(Exception):
    """Some, but not all, parallel operations failed."""

    def __init__(self, succeeded: int, failed: int, errors: list[str]):
        self.succeeded = succeeded
        self.failed = failed
        self.total = succeeded + failed
        self.errors = list(errors)
        super().__init__(f"{failed} of {self.total} operations failed")


class ReadStateSyncError(Exception):
    """The authoritative read-status write failed; the local flip was reverted."""

    def __init__(self, conversation_id: str, target_status: str, cause: Exception | None = None):
        self.conversation_id = conversation_id
        self.target_status = target_status
        self.cause = cause
        super().__init__(
            f"Could not mark the conversation as {target_status}. Please try again."
        )
