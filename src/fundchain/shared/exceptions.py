"""
Custom exceptions for the application.
"""

from enum import Enum
from typing import Any


class AppError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, code: str = "APP_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(AppError):
    """Local input rejected before anything reaches the ledger."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, "VALIDATION_ERROR")
        self.details = details or {}


class CampaignNotFoundError(AppError):
    """Campaign id outside ``1..campaignCount``."""

    def __init__(self, campaign_id: int) -> None:
        super().__init__(
            f"Campaign with ID {campaign_id} not found",
            "CAMPAIGN_NOT_FOUND",
        )
        self.campaign_id = campaign_id


class FailureKind(str, Enum):
    """Where in the read/submit/settle pipeline an action failed."""

    PRECONDITION = "precondition"
    SUBMISSION = "submission"
    CONFIRMATION = "confirmation"
    READ = "read"


class ActionFailure(AppError):
    """Base for failures reported by the action orchestrator."""

    kind: FailureKind

    def __init__(
        self,
        message: str,
        code: str,
        campaign_id: int | None = None,
        action: str | None = None,
        tx_hash: str | None = None,
    ) -> None:
        super().__init__(message, code)
        self.campaign_id = campaign_id
        self.action = action
        self.tx_hash = tx_hash

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "campaign_id": self.campaign_id,
            "action": self.action,
            "tx_hash": self.tx_hash,
        }


class PreconditionFailure(ActionFailure):
    """Eligibility re-check failed right before submission; the ledger was not contacted."""

    kind = FailureKind.PRECONDITION

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, "PRECONDITION_FAILED", **kwargs)


class SubmissionFailure(ActionFailure):
    """The ledger refused the write before accepting it."""

    kind = FailureKind.SUBMISSION

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, "SUBMISSION_FAILED", **kwargs)


class ConfirmationFailure(ActionFailure):
    """The write was accepted but reverted during settlement; state did not change."""

    kind = FailureKind.CONFIRMATION

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, "CONFIRMATION_FAILED", **kwargs)


class ReadFailure(ActionFailure):
    """The ledger could not be read."""

    kind = FailureKind.READ

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, "READ_FAILED", **kwargs)
