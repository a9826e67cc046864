"""Custom exception hierarchy for DocVault.

Every error the API returns is one of these. The kinds are deliberately few:
callers branch on ``error_code``, and only ``COMMUNICATION_FAILURE`` is worth
retrying. Permission errors carry generic messages so that a denial never
reveals whether the target exists.
"""

from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    EXPIRED = "EXPIRED"
    ALREADY_ACCEPTED = "ALREADY_ACCEPTED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    COMMUNICATION_FAILURE = "COMMUNICATION_FAILURE"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DocVaultException(Exception):
    """
    Base exception for all DocVault errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        body = {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details,
        }
        if self.retryable:
            body["retryable"] = True
        return body


class AuthenticationError(DocVaultException):
    """Request lacks a valid identity."""

    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__(message, ErrorCode.UNAUTHORIZED, status_code=401)


class ForbiddenError(DocVaultException):
    """Valid identity, insufficient role or visibility."""

    def __init__(self, message: str = "You are not authorized to perform this action"):
        super().__init__(message, ErrorCode.FORBIDDEN, status_code=403)


class NotFoundError(DocVaultException):
    """Entity absent — or present but hidden from the caller."""

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        details = {"resource": resource}
        if resource_id is not None:
            details["id"] = resource_id
        super().__init__(
            f"{resource.capitalize()} not found",
            ErrorCode.NOT_FOUND,
            status_code=404,
            details=details,
        )


class FolderNotFoundError(NotFoundError):
    def __init__(self, folder_id: str):
        super().__init__("folder", folder_id)


class DocumentNotFoundError(NotFoundError):
    def __init__(self, document_id: str):
        super().__init__("document", document_id)


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: str):
        super().__init__("user", user_id)


class InvitationNotFoundError(NotFoundError):
    """Unknown invitation id or token. The token itself is never echoed back."""

    def __init__(self, invitation_id: Optional[str] = None):
        super().__init__("invitation", invitation_id)


class ValidationError(DocVaultException):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class ConflictError(DocVaultException):
    """Request conflicts with existing state."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.CONFLICT, status_code=409, details=details)


class DuplicateAccountError(ConflictError):
    def __init__(self, email: str):
        super().__init__(
            "An account already exists for this email",
            details={"email": email, "reason": "duplicate_account"},
        )


class DuplicatePendingInviteError(ConflictError):
    def __init__(self, email: str):
        super().__init__(
            "A pending invitation already exists for this email",
            details={"email": email, "reason": "duplicate_pending_invite"},
        )


class InvitationExpiredError(DocVaultException):
    def __init__(self):
        super().__init__("This invitation has expired", ErrorCode.EXPIRED, status_code=410)


class InvitationAlreadyAcceptedError(DocVaultException):
    def __init__(self):
        super().__init__(
            "This invitation has already been used",
            ErrorCode.ALREADY_ACCEPTED,
            status_code=409,
        )


class CommunicationError(DocVaultException):
    """The store or an external collaborator could not be reached in time.

    Distinct from ForbiddenError: it means "could not determine", not "denied".
    """

    retryable = True

    def __init__(self, message: str = "Service temporarily unavailable", target: Optional[str] = None):
        details = {"target": target} if target else {}
        super().__init__(
            message,
            ErrorCode.COMMUNICATION_FAILURE,
            status_code=503,
            details=details,
        )


class InternalError(DocVaultException):
    """Unexpected internal failure (e.g. exhausted token-collision retries)."""

    def __init__(self, message: str = "Internal error"):
        super().__init__(message, ErrorCode.INTERNAL_ERROR, status_code=500)
