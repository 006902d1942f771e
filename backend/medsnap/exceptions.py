"""
MedSnap Backend — Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions for the error taxonomy of the service.
Why:   Each class maps to one HTTP status in the global handlers (main.py),
       so services raise meaningfully and routes stay thin.
How:   Each exception carries a user-facing message and an optional context
       dict. Context is logged; only selected keys reach the client.

Exception Hierarchy:
    MedSnapError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── WebhookSignatureError    → 400 Bad Request (payload not from Stripe)
    ├── AuthenticationError      → 401 Unauthorized
    ├── UploadLimitError         → 403 Forbidden (free quota used up)
    ├── NotFoundError            → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── ConfigurationError       → 500 (secret or URL missing)
    ├── FileStorageError         → 500 (blob backend failed)
    ├── PaymentProviderError     → 500 (Stripe API failed)
    └── DatabaseError            → 500

Best-effort steps (blob cleanup after a failed insert, old-blob removal after
a replacement, blob removal before a row delete) do NOT raise these; they are
reported through the result objects in services/document_service.py.
"""

from typing import Any, Dict, Optional


class MedSnapError(Exception):
    """
    Base exception for all MedSnap application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged, selectively returned)
    """

    code = "server_error"
    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(MedSnapError):
    """
    Raised when client input fails a business rule.

    When:    Missing required field, invalid source URL, disallowed MIME type,
             oversized file, over-long category.
    HTTP:    400 Bad Request. No state has been mutated when this is raised.
    """

    code = "validation_error"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class WebhookSignatureError(MedSnapError):
    """The Stripe-Signature header did not verify against the webhook secret."""

    code = "invalid_signature"
    status_code = 400

    def __init__(self, message: str = "Invalid signature", context: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, context=context)


class AuthenticationError(MedSnapError):
    """No caller identity reached the service."""

    code = "unauthenticated"
    status_code = 401

    def __init__(self, message: str = "Authentication required", context: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, context=context)


class UploadLimitError(MedSnapError):
    """
    Raised when the upload quota gate refuses a new upload.

    HTTP:    403 Forbidden
    Details: current document count and the free limit, so the frontend can
             render "10 of 10 used" and open the pricing dialog.
    """

    code = "upload_limit_reached"
    status_code = 403

    def __init__(self, document_count: int, limit: int, context: Optional[Dict[str, Any]] = None):
        message = (
            "You've reached your upload limit. "
            "Please upgrade to Pro for unlimited uploads."
        )
        ctx = context or {}
        ctx.update({"document_count": document_count, "limit": limit})
        super().__init__(message=message, context=ctx)
        self.document_count = document_count
        self.limit = limit


class NotFoundError(MedSnapError):
    """
    Raised when a requested resource does not exist (or is not the caller's).

    Documents owned by another user are reported as not found rather than
    forbidden, so document IDs cannot be probed across accounts.
    """

    code = "not_found"
    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class RateLimitExceededError(MedSnapError):
    """Raised when a client exceeds the per-IP request rate limit."""

    code = "rate_limit_exceeded"
    status_code = 429

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class ConfigurationError(MedSnapError):
    """
    A secret or URL the endpoint needs is missing.

    HTTP:    500 with the descriptive message ("Stripe not configured").
    Never retried; the operator has to set the variable.
    """

    code = "configuration_error"
    status_code = 500

    def __init__(self, message: str = "Server not configured", context: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, context=context)


class FileStorageError(MedSnapError):
    """
    Raised when a blob operation fails.

    When:    Disk write failed, storage API returned an error, bucket missing.
    HTTP:    500 with the upstream message where one is available.
    """

    code = "storage_error"
    status_code = 500

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PaymentProviderError(MedSnapError):
    """Stripe rejected or failed a call. The upstream message is kept."""

    code = "payment_error"
    status_code = 500

    def __init__(
        self,
        message: str = "Payment provider request failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(MedSnapError):
    """
    Raised when database operations fail unexpectedly.

    Security Note:
        The message returned to the client is always generic. SQL and
        constraint names are logged server-side only.
    """

    code = "server_error"
    status_code = 500

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
