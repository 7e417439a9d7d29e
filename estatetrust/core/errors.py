"""
Error kinds raised by the verification and disclosure core.

Every failure a caller can observe maps to one of these classes so API
clients (and tests) can branch on ``code`` rather than on message text.
The HTTP layer renders them as ``ErrorResponse`` bodies.
"""
from __future__ import annotations

from typing import Any


class TrustError(Exception):
    code = "error"
    status_code = 400

    def __init__(self, message: str, *, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []


class ValidationFailed(TrustError):
    code = "validation_failed"
    status_code = 422

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid {field}: {reason}", details=[{"field": field, "reason": reason}])
        self.field = field
        self.reason = reason


class ListingNotFound(TrustError):
    code = "listing_not_found"
    status_code = 404

    def __init__(self, listing_id: str):
        super().__init__("Listing not found", details=[{"listing_id": listing_id}])
        self.listing_id = listing_id


class NotificationNotFound(TrustError):
    code = "notification_not_found"
    status_code = 404

    def __init__(self, notification_id: str):
        super().__init__("Notification not found", details=[{"notification_id": notification_id}])
        self.notification_id = notification_id


class AccessDenied(TrustError):
    code = "access_denied"
    status_code = 403


class OtpRejected(TrustError):
    """The supplied one-time code was not accepted.

    ``reason`` is one of ``invalid``, ``expired``, ``exhausted``, ``consumed``.
    Expired and exhausted challenges can only be recovered by requesting a new
    code; an invalid code may simply be retyped.
    """

    code = "otp_rejected"
    status_code = 400

    _messages = {
        "invalid": "Invalid code",
        "expired": "Code has expired. Please request a new one.",
        "exhausted": "Maximum attempts exceeded. Please request a new code.",
        "consumed": "Code has already been used",
    }

    def __init__(self, reason: str):
        self.reason = reason
        self.resend_suggested = reason in ("expired", "exhausted", "consumed")
        super().__init__(
            self._messages.get(reason, "Code rejected"),
            details=[{"reason": reason, "resend_suggested": self.resend_suggested}],
        )


class DeliveryFailed(TrustError):
    code = "delivery_failed"
    status_code = 503

    def __init__(self, message: str = "Failed to send code. Please try again."):
        super().__init__(message, details=[{"retryable": True}])


class RateLimited(TrustError):
    code = "rate_limited"
    status_code = 429

    def __init__(self, retry_after: int):
        super().__init__("Too many code requests. Please wait before trying again.", details=[{"retry_after": retry_after}])
        self.retry_after = retry_after
