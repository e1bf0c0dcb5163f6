from __future__ import annotations


class ServiceError(Exception):
    """Base class for failures the service layer reports to its callers."""

    code = "SERVICE_ERROR"


class ValidationError(ServiceError):
    """Raised when a user id or score is not a non-negative integer."""

    code = "VALIDATION_ERROR"


class NotFound(ServiceError):
    """Raised when a referenced user has no profile."""

    code = "NOT_FOUND"


class InvalidCode(ServiceError):
    """Raised when a referral code matches no profile or refers to its own user."""

    code = "INVALID_CODE"


class AlreadyAttributed(ServiceError):
    """Raised when the invited user already has a referrer."""

    code = "ALREADY_ATTRIBUTED"


class StoreUnavailable(ServiceError):
    code = "STORE_UNAVAILABLE"


class NotificationFailure(ServiceError):
    code = "NOTIFICATION_FAILURE"
