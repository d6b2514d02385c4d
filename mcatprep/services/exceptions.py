"""
Domain errors raised by the test and entitlement services.

Routers never catch these individually; main.py maps each class to an HTTP
response with a single exception handler.
"""

from typing import Any, Dict, List, Optional


class DomainError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message}


class NotFoundError(DomainError):
    """
    Raised when a test, test question or user does not exist, or belongs to
    somebody else. Both cases produce the same response so other users' ids
    cannot be probed.
    """

    status_code = 404


class InsufficientQuestionsError(DomainError):
    """The bank cannot satisfy the requested size; the caller may retry smaller."""

    status_code = 409

    def __init__(
        self,
        message: str,
        available_questions: int,
        passage_groups: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.available_questions = available_questions
        self.passage_groups = passage_groups or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "availableQuestions": self.available_questions,
            "passageGroups": self.passage_groups,
        }


class InvalidStateError(DomainError):
    """Operation not allowed in the test's current state (e.g. after completion)."""

    status_code = 409


class EntitlementDeniedError(DomainError):
    """The user's membership does not allow creating tests."""

    status_code = 403

    def __init__(self, message: str, membership: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.membership = membership or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "membership": self.membership}


class PaymentError(DomainError):
    """The payment processor declined or failed a charge."""

    status_code = 402

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "reason": self.reason}
