"""Error Hierarchy — typed, categorized exceptions for all targeting failure modes.

Invariants:
    - Every error has a code (TargetingErrorCode), category, severity and HTTP status
    - Every code maps to exactly one human-readable message (no technical snippets)
    - Business-rule errors (400/409) are recoverable; infrastructure errors (5xx) are critical
    - to_response() produces the {success, error} half of the REST envelope

Design Decisions:
    - Single hierarchy with SwapTargetingError base: FastAPI global handler catches all
    - Closed code enum instead of ad hoc strings: the UI switches on code, never on message
    - ErrorContext as dataclass: rich observability without coupling to logging framework
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    AUTHORIZATION = "authorization"
    RATE_LIMIT = "rate_limit"
    DATABASE = "database"
    INTERNAL = "internal"


class TargetingErrorCode(str, Enum):
    """Closed set of error codes returned to callers."""
    CANNOT_TARGET_OWN_SWAP = "CANNOT_TARGET_OWN_SWAP"
    CIRCULAR_TARGETING = "CIRCULAR_TARGETING"
    AUCTION_ENDED = "AUCTION_ENDED"
    PROPOSAL_PENDING = "PROPOSAL_PENDING"
    SWAP_UNAVAILABLE = "SWAP_UNAVAILABLE"
    ALREADY_TARGETING = "ALREADY_TARGETING"
    EDGE_NOT_ACTIVE = "EDGE_NOT_ACTIVE"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


USER_MESSAGES: dict[TargetingErrorCode, str] = {
    TargetingErrorCode.CANNOT_TARGET_OWN_SWAP: "You cannot propose an exchange with your own swap.",
    TargetingErrorCode.CIRCULAR_TARGETING: (
        "This proposal would create a circular chain of proposals. "
        "Choose a different swap."
    ),
    TargetingErrorCode.AUCTION_ENDED: "This auction has ended and no longer accepts proposals.",
    TargetingErrorCode.PROPOSAL_PENDING: (
        "This swap already has a pending proposal. "
        "Try again once the owner has responded."
    ),
    TargetingErrorCode.SWAP_UNAVAILABLE: "This swap is not available for exchange right now.",
    TargetingErrorCode.ALREADY_TARGETING: (
        "Your swap is already proposing an exchange. "
        "Change its target instead of creating a new one."
    ),
    TargetingErrorCode.EDGE_NOT_ACTIVE: "This proposal has already been resolved or withdrawn.",
    TargetingErrorCode.NOT_FOUND: "The requested item could not be found.",
    TargetingErrorCode.VALIDATION_ERROR: "The request contains invalid data.",
    TargetingErrorCode.FORBIDDEN: "You are not allowed to act on this swap.",
    TargetingErrorCode.UNAUTHENTICATED: "You need to sign in to do this.",
    TargetingErrorCode.RATE_LIMIT_EXCEEDED: "Too many requests. Please wait a moment and try again.",
    TargetingErrorCode.DATABASE_ERROR: "The service is temporarily unavailable. Please retry.",
    TargetingErrorCode.INTERNAL_ERROR: "An unexpected error occurred.",
}

# Deny reasons from the eligibility checker: (category, http status)
_RULE_STATUS: dict[TargetingErrorCode, int] = {
    TargetingErrorCode.CANNOT_TARGET_OWN_SWAP: 400,
    TargetingErrorCode.CIRCULAR_TARGETING: 409,
    TargetingErrorCode.AUCTION_ENDED: 409,
    TargetingErrorCode.PROPOSAL_PENDING: 409,
    TargetingErrorCode.SWAP_UNAVAILABLE: 409,
    TargetingErrorCode.ALREADY_TARGETING: 409,
}


def user_message(code: TargetingErrorCode) -> str:
    return USER_MESSAGES[code]


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    user_id: str | None = None
    swap_id: str | None = None
    edge_id: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class SwapTargetingError(Exception):
    """Base exception for all swap targeting errors."""

    def __init__(
        self,
        message: str,
        code: TargetingErrorCode,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to the error half of the REST envelope."""
        error = {
            "code": self.code.value,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.context.timestamp.isoformat(),
        }
        if self.context.retry_after_ms is not None:
            error["retryAfterMs"] = self.context.retry_after_ms
        return {"success": False, "error": error}


# ─── Domain Errors (400-level) ──────────────────────────────────

class TargetingRuleViolation(SwapTargetingError):
    """A targeting business rule denied the operation."""
    def __init__(self, code: TargetingErrorCode, context: ErrorContext | None = None):
        super().__init__(
            user_message(code), code, ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, _RULE_STATUS.get(code, 409),
        )


class EdgeNotActiveError(SwapTargetingError):
    """Edge was resolved by someone else before this operation ran."""
    def __init__(self, status: str, context: ErrorContext | None = None):
        super().__init__(
            user_message(TargetingErrorCode.EDGE_NOT_ACTIVE),
            TargetingErrorCode.EDGE_NOT_ACTIVE, ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 409,
        )
        self.status = status


class RequestValidationFailed(SwapTargetingError):
    """Payload or identifier is malformed."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, TargetingErrorCode.VALIDATION_ERROR, ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class ResourceNotFoundError(SwapTargetingError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} not found",
            TargetingErrorCode.NOT_FOUND, ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class ForbiddenError(SwapTargetingError):
    """Caller does not own the swap they are acting on."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            user_message(TargetingErrorCode.FORBIDDEN),
            TargetingErrorCode.FORBIDDEN, ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 403,
        )


class UnauthenticatedError(SwapTargetingError):
    """No user identity was injected by the auth layer."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            user_message(TargetingErrorCode.UNAUTHENTICATED),
            TargetingErrorCode.UNAUTHENTICATED, ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 401,
        )


class RateLimitExceededError(SwapTargetingError):
    """Per-user request quota exhausted for a bucket."""
    def __init__(
        self, bucket: str, retry_after_ms: int, context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            user_message(TargetingErrorCode.RATE_LIMIT_EXCEEDED),
            TargetingErrorCode.RATE_LIMIT_EXCEEDED, ErrorCategory.RATE_LIMIT,
            ErrorSeverity.WARNING, ctx, 429,
        )
        self.bucket = bucket


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(SwapTargetingError):
    """Database operation failed. Retryable by the caller."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            TargetingErrorCode.DATABASE_ERROR, ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation

    def to_response(self) -> dict:
        # Never leak driver details to clients
        response = super().to_response()
        response["error"]["message"] = user_message(TargetingErrorCode.DATABASE_ERROR)
        return response
