from __future__ import annotations

from typing import Any, Dict


class ServiceError(Exception):
    """Base exception for service layer failures."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause

    def extra(self) -> Dict[str, Any]:
        """Additional fields merged into the JSON error body."""

        return {}


class DownstreamServiceError(ServiceError):
    """Raised when the database platform returns an error response."""

    status_code = 502
    code = "DOWNSTREAM_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        *,
        error_code: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause=cause)
        self.upstream_status = status_code
        self.error_code = error_code


class AuthenticationError(ServiceError):
    status_code = 401
    code = "UNAUTHORIZED"


class PermissionDeniedError(ServiceError):
    status_code = 403
    code = "INSUFFICIENT_PERMISSIONS"


class RateLimitExceededError(ServiceError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"


class PlanLimitExceededError(ServiceError):
    status_code = 403
    code = "PLAN_LIMIT_EXCEEDED"

    def __init__(self, message: str, *, metric: str, used: int, limit: int):
        super().__init__(message)
        self.metric = metric
        self.used = used
        self.limit = limit

    def extra(self) -> Dict[str, Any]:
        return {"metric": self.metric, "used": self.used, "limit": self.limit}


class DuplicateInvoiceNumberError(ServiceError):
    status_code = 409
    code = "DUPLICATE_INVOICE_NUMBER"


class CreateInvoiceFailedError(ServiceError):
    status_code = 500
    code = "CREATE_INVOICE_FAILED"


class LoyaltyBalanceConflictError(ServiceError):
    """Raised when the loyalty balance kept changing underneath an update."""

    code = "LOYALTY_BALANCE_CONFLICT"


class InvalidLoyaltySettingsError(ServiceError):
    """Raised when merged loyalty settings are not usable for earning points."""

    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        super().__init__("Validation failed")
        self.field = field
        self.reason = reason

    def extra(self) -> Dict[str, Any]:
        return {"fields": {self.field: [self.reason]}}
