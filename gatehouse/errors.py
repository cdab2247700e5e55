"""
errors.py — AppError base class, typed auth/RBAC errors and the error code registry.

Every error returned by the Gatehouse API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized). See AUTH section below.
  - Callers map errors by class or by code, never by message.
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_REFERENCE          = "INVALID_REFERENCE"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"
    DUPLICATE_ROLE_NAME        = "DUPLICATE_ROLE_NAME"
    DUPLICATE_FEATURE_NAME     = "DUPLICATE_FEATURE_NAME"
    ROLE_IN_USE                = "ROLE_IN_USE"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    ROLE_NOT_FOUND             = "ROLE_NOT_FOUND"
    FEATURE_NOT_FOUND          = "FEATURE_NOT_FOUND"

    # ── Routing Errors (raised by werkzeug, not by services) ───────────────
    NOT_FOUND                  = "NOT_FOUND"             # 404
    METHOD_NOT_ALLOWED         = "METHOD_NOT_ALLOWED"    # 405

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are, or the credential is dead
    # 403 = we know who you are, but you are not allowed
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"     # 401
    TOKEN_MISSING              = "TOKEN_MISSING"           # 401
    TOKEN_INVALID              = "TOKEN_INVALID"           # 401
    TOKEN_VERSION_MISMATCH     = "TOKEN_VERSION_MISMATCH"  # 401
    UNAUTHORIZED               = "UNAUTHORIZED"            # 401
    ACCOUNT_DISABLED           = "ACCOUNT_DISABLED"        # 403
    PERMISSION_DENIED          = "PERMISSION_DENIED"       # 403
    PROTECTED_ENTITY           = "PROTECTED_ENTITY"        # 403
    CANNOT_DELETE_SELF         = "CANNOT_DELETE_SELF"      # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Typed errors ───────────────────────────────────────────────────────────
#
# Each subclass pins a code and an HTTP status so service code raises
# `InvalidToken()` instead of repeating the triple at every call site.
# They are still AppErrors: the global handler in gatehouse/__init__.py
# renders them like any other.
# ──────────────────────────────────────────────────────────────────────────

class _TypedError(AppError):
    code: str = ErrorCode.INTERNAL_ERROR
    http_status: int = 500
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, field: str | None = None) -> None:
        super().__init__(
            type(self).code,
            message or type(self).default_message,
            type(self).http_status,
            field=field,
        )


class InvalidCredentials(_TypedError):
    """Email/password did not match. Never says which of the two was wrong."""
    code = ErrorCode.INVALID_CREDENTIALS
    http_status = 401
    default_message = "The email or password is incorrect."


class AccountDisabled(_TypedError):
    """The account was identified but has been deactivated."""
    code = ErrorCode.ACCOUNT_DISABLED
    http_status = 403
    default_message = "Your account has been disabled."


class InvalidToken(_TypedError):
    """Malformed, tampered, expired, unknown or revoked token."""
    code = ErrorCode.TOKEN_INVALID
    http_status = 401
    default_message = "The token is invalid, expired, or has been revoked."


class Unauthorized(_TypedError):
    """Generic identity/ownership failure."""
    code = ErrorCode.UNAUTHORIZED
    http_status = 401
    default_message = "Unauthorized."


class TokenVersionMismatch(Unauthorized):
    """
    The token's `tv` claim is stale relative to the live user record.
    Always means "re-authenticate". Subclasses Unauthorized because it is one.
    """
    code = ErrorCode.TOKEN_VERSION_MISMATCH
    http_status = 401
    default_message = "Session expired, please login again."


class PermissionDenied(_TypedError):
    code = ErrorCode.PERMISSION_DENIED
    http_status = 403
    default_message = "You do not have permission to perform this action."


class ProtectedEntity(_TypedError):
    code = ErrorCode.PROTECTED_ENTITY
    http_status = 403
    default_message = "This is a protected system entity and cannot be modified."


class InvalidReference(_TypedError):
    code = ErrorCode.INVALID_REFERENCE
    http_status = 400
    default_message = "A referenced id does not exist."
