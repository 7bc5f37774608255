"""Domain exceptions for the quest pipeline.

Services raise these; ``questline.middleware.error_handler`` renders them as
``{"error", "code", "retryable"}`` JSON with the class's HTTP status.
"""

from __future__ import annotations

from typing import Any


class QuestlineError(Exception):
    """Base class for all expected, client-facing failures."""

    status_code: int = 500
    code: str = "error"
    retryable: bool = False

    def __init__(self, message: str, **details: Any) -> None:  # noqa: ANN401
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize for a JSON error body."""
        body: dict[str, Any] = {
            "error": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(QuestlineError):
    """Missing or malformed input."""

    status_code = 400
    code = "validation_error"


class NotFoundError(QuestlineError):
    status_code = 404
    code = "not_found"


class UserNotFoundError(NotFoundError):
    code = "user_not_found"

    def __init__(self, wallet_address: str) -> None:
        super().__init__("User not found", wallet_address=wallet_address)


class ProgressNotFoundError(NotFoundError):
    code = "progress_not_found"

    def __init__(self, quest_id: int) -> None:
        super().__init__("Progress not found. Please start the quest first.", quest_id=quest_id)


class StepNotFoundError(NotFoundError):
    code = "step_not_found"

    def __init__(self, quest_id: int, step_id: str) -> None:
        super().__init__("Step not found", quest_id=quest_id, step_id=step_id)


class UnknownQuestError(NotFoundError):
    code = "unknown_quest"

    def __init__(self, quest_id: int) -> None:
        super().__init__("Quest not found", quest_id=quest_id)


class AlreadyCompletedError(QuestlineError):
    """The quest is already recorded as completed for this user.

    Callers should treat this as a successful retry of an earlier completion,
    even though it is delivered as a 400.
    """

    status_code = 400
    code = "already_completed"

    def __init__(self, quest_id: int) -> None:
        super().__init__("Quest already completed", quest_id=quest_id)


class ConflictError(QuestlineError):
    """A uniqueness race was lost; re-fetching usually resolves it."""

    status_code = 409
    code = "conflict"
    retryable = True


class TransientStorageError(QuestlineError):
    """Database unavailable or timed out."""

    status_code = 503
    code = "storage_unavailable"
    retryable = True


class TransientConflictError(TransientStorageError):
    """Concurrent writes kept winning until the retry budget ran out."""

    code = "transient_conflict"
