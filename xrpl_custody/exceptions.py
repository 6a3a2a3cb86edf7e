"""Error taxonomy for the signing policy and approval workflow."""

from __future__ import annotations

from typing import Any, Optional


class CustodyError(Exception):
    """Base exception for policy and approval errors.

    ``reason`` is a stable machine-readable code; callers translate it into
    user-facing text.
    """

    status_code: int = 400
    default_reason: str = "CUSTODY_ERROR"

    def __init__(self, message: str, reason: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.reason = reason or self.default_reason
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ValidationError(CustodyError):
    """Malformed input to a create/upsert operation."""

    status_code = 422
    default_reason = "VALIDATION_ERROR"


class NotFoundError(CustodyError):
    """Referenced record does not exist."""

    status_code = 404
    default_reason = "NOT_FOUND"


class PolicyNotFoundError(NotFoundError):
    """Signing policy does not exist."""

    default_reason = "POLICY_NOT_FOUND"


class RequestNotFoundError(NotFoundError):
    """Approval request does not exist."""

    default_reason = "REQUEST_NOT_FOUND"


class InvalidStateError(CustodyError):
    """Operation attempted against a request not in the required state."""

    status_code = 409
    default_reason = "INVALID_STATE"

    def __init__(
        self,
        message: str,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        details = None
        if from_status or to_status:
            details = {"from": from_status, "to": to_status}
        super().__init__(message, reason=reason, details=details)
        self.from_status = from_status
        self.to_status = to_status


class RequestNotPendingError(InvalidStateError):
    """Signature submitted after expiry or a terminal transition."""

    default_reason = "REQUEST_NOT_PENDING"


class DuplicateSignatureError(CustodyError):
    """Approver already signed this request."""

    status_code = 409
    default_reason = "DUPLICATE_SIGNATURE"


class SelfApprovalError(CustodyError):
    """Requestor attempted to sign their own request."""

    status_code = 403
    default_reason = "SELF_APPROVAL"


class NotAuthorizedError(CustodyError):
    """Caller is not allowed to perform this action on the request."""

    status_code = 403
    default_reason = "NOT_AUTHORIZED"


class UserExistsError(CustodyError):
    """Username or email already taken."""

    status_code = 409
    default_reason = "USER_EXISTS"
