"""
core/errors.py
--------------
Domain exception hierarchy.

Services raise these; they never build HTTP responses themselves. The
global handler in main.py renders every NotesError as:

    {"error": <message>, "code": <CODE>, ...meta}

Clients key on `code`, which is stable. `message` is human-readable and
deliberately generic for authentication failures (no account enumeration).
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from fastapi import status


class ErrorCode(str, Enum):
    # authentication (401 / 423)
    NO_TOKEN = "NO_TOKEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_TOKEN_TYPE = "INVALID_TOKEN_TYPE"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    USER_INACTIVE = "USER_INACTIVE"
    TENANT_INACTIVE = "TENANT_INACTIVE"
    TENANT_MISMATCH = "TENANT_MISMATCH"
    INVALID_RESET_TOKEN = "INVALID_RESET_TOKEN"
    INVALID_VERIFICATION_TOKEN = "INVALID_VERIFICATION_TOKEN"
    # authorization (403)
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    # tenant state
    NOTE_LIMIT_REACHED = "NOTE_LIMIT_REACHED"
    USER_LIMIT_REACHED = "USER_LIMIT_REACHED"
    ALREADY_PRO = "ALREADY_PRO"
    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"
    NOTE_NOT_FOUND = "NOTE_NOT_FOUND"
    # conflicts (409)
    USER_EXISTS = "USER_EXISTS"
    TENANT_EXISTS = "TENANT_EXISTS"
    # request validation (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    # infrastructure
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class NotesError(Exception):
    """Base class. Subclasses pin `code`, `status_code` and a default message."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.message
        if status_code is not None:
            self.status_code = status_code
        self.meta: Dict[str, Any] = meta or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code.value}
        for key, value in self.meta.items():
            body[key] = value.isoformat() if isinstance(value, datetime) else value
        return body


# ── Authentication ────────────────────────────────────────────────────────────

class AuthenticationError(NotesError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication failed"


class NoTokenError(AuthenticationError):
    code = ErrorCode.NO_TOKEN
    message = "Access denied. No token provided."


class InvalidTokenError(AuthenticationError):
    code = ErrorCode.INVALID_TOKEN
    message = "Invalid or expired token."


class InvalidTokenTypeError(AuthenticationError):
    code = ErrorCode.INVALID_TOKEN_TYPE
    message = "Invalid token type."


class InvalidRefreshTokenError(AuthenticationError):
    code = ErrorCode.INVALID_REFRESH_TOKEN
    message = "Invalid refresh token"


class InvalidCredentialsError(AuthenticationError):
    code = ErrorCode.INVALID_CREDENTIALS
    message = "Invalid email or password"


class AccountLockedError(AuthenticationError):
    code = ErrorCode.ACCOUNT_LOCKED
    status_code = status.HTTP_423_LOCKED
    message = "Account is temporarily locked due to too many failed login attempts"

    def __init__(self, lock_until: datetime) -> None:
        super().__init__(meta={"lockUntil": lock_until})
        self.lock_until = lock_until


class UserNotFoundError(AuthenticationError):
    code = ErrorCode.USER_NOT_FOUND
    message = "User not found."


class UserInactiveError(AuthenticationError):
    code = ErrorCode.USER_INACTIVE
    message = "User account is deactivated."


class TenantInactiveError(AuthenticationError):
    """401 when raised by the request resolver, 403 at login."""

    code = ErrorCode.TENANT_INACTIVE
    message = "Tenant account is inactive."


class TenantMismatchError(AuthenticationError):
    code = ErrorCode.TENANT_MISMATCH
    message = "Token tenant mismatch."


class InvalidResetTokenError(AuthenticationError):
    code = ErrorCode.INVALID_RESET_TOKEN
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Password reset token is invalid or has expired"


class InvalidVerificationTokenError(AuthenticationError):
    code = ErrorCode.INVALID_VERIFICATION_TOKEN
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Email verification token is invalid"


# ── Authorization ─────────────────────────────────────────────────────────────

class AuthorizationError(NotesError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Insufficient permissions."


class InsufficientRoleError(AuthorizationError):
    code = ErrorCode.INSUFFICIENT_PERMISSIONS

    def __init__(self, required: Sequence[str], current: str) -> None:
        super().__init__(meta={"required": list(required), "current": current})


class PermissionDeniedError(AuthorizationError):
    code = ErrorCode.PERMISSION_DENIED

    def __init__(self, permission: str) -> None:
        super().__init__(
            f"Permission '{permission}' required.",
            meta={"required": permission},
        )


# ── Tenant state ──────────────────────────────────────────────────────────────

class QuotaExceededError(NotesError):
    code = ErrorCode.NOTE_LIMIT_REACHED
    status_code = status.HTTP_403_FORBIDDEN
    message = "Note creation limit reached for your current plan."

    def __init__(self, message: str, *, current_count: int, limit: int, plan: str) -> None:
        super().__init__(
            message,
            meta={"currentCount": current_count, "limit": limit, "plan": plan},
        )
        self.current_count = current_count
        self.limit = limit
        self.plan = plan


class UserLimitReachedError(NotesError):
    code = ErrorCode.USER_LIMIT_REACHED
    status_code = status.HTTP_403_FORBIDDEN
    message = "User limit reached for this organization."

    def __init__(self, *, current_count: int, limit: int, plan: str) -> None:
        super().__init__(
            meta={"currentCount": current_count, "limit": limit, "plan": plan},
        )


class AlreadyProError(NotesError):
    code = ErrorCode.ALREADY_PRO
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Tenant is already on Pro plan"


class TenantNotFoundError(NotesError):
    code = ErrorCode.TENANT_NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND
    message = "Tenant not found or access denied"


class NoteNotFoundError(NotesError):
    code = ErrorCode.NOTE_NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND
    message = "Note not found or access denied"


# ── Conflicts ─────────────────────────────────────────────────────────────────

class UserExistsError(NotesError):
    code = ErrorCode.USER_EXISTS
    status_code = status.HTTP_409_CONFLICT
    message = "User with this email already exists"


class TenantExistsError(NotesError):
    code = ErrorCode.TENANT_EXISTS
    status_code = status.HTTP_409_CONFLICT
    message = "Organization name already taken"


# ── Infrastructure ────────────────────────────────────────────────────────────

class StoreUnavailableError(NotesError):
    """Retryable. The message stays generic; the cause is logged, not returned."""

    code = ErrorCode.STORE_UNAVAILABLE
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Service temporarily unavailable, please retry"
    retryable = True
