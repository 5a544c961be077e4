"""
ServiceMatch Backend - Custom Exception Hierarchy
==================================================

What:  Application-specific exceptions for the matching core.
Why:   Targeted error handling with appropriate HTTP status codes and
       user-friendly messages, without leaking internal details.
How:   Each exception carries a message and an optional context dict.
       Global exception handlers (registered in main.py) turn them into
       structured JSON error responses.
Who:   Raised by services; caught by global handlers, by the entity
       create/update paths (embedding failures) and by the fan-out.

Exception Hierarchy:
    ServiceMatchError (base)
    ├── ValidationError               → 400 Bad Request
    │   └── MalformedVectorError      → 400 (vector of the wrong length)
    ├── ForbiddenError                → 403 Forbidden (not the owner)
    ├── NotFoundError                 → 404 Not Found
    ├── VectorMissingError            → 409 Conflict (entity not embedded yet)
    ├── EmbeddingGenerationError      → 503 Service Unavailable
    │   ├── RateLimitExceededError    → 429 Too Many Requests (transient)
    │   ├── DailyQuotaExceededError   → 503 (not recoverable today)
    │   └── CircuitBreakerOpenError   → 503 (provider failing repeatedly)
    ├── NotificationDispatchError     → never rendered; fan-out only
    └── DatabaseError                 → 500 Internal Server Error

Recovery rules:
    - Entity create/update catches EmbeddingGenerationError and saves the
      entity without vectors.
    - The backfill job stops on DailyQuotaExceededError and sleeps then
      retries on RateLimitExceededError.
    - The fan-out logs NotificationDispatchError per recipient and moves on.
"""

from typing import Any, Dict, Optional


class ServiceMatchError(Exception):
    """
    Base exception for all ServiceMatch application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client
                  unless a handler explicitly exposes it)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(ServiceMatchError):
    """
    Raised when client input fails a business rule.

    HTTP: 400 Bad Request. Schema-level problems are still reported by
    FastAPI itself with 422.
    """

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


class MalformedVectorError(ValidationError):
    """
    Raised when a vector does not have the configured dimension.

    Checked both when the provider answers and right before a vector is
    written, so a malformed vector never reaches the database.
    """

    def __init__(
        self,
        expected: int,
        actual: int,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx.update({"expected_dimensions": expected, "actual_dimensions": actual})
        super().__init__(
            message=f"Embedding has {actual} dimensions, expected {expected}",
            field=field,
            context=ctx,
        )
        self.expected = expected
        self.actual = actual


class ForbiddenError(ServiceMatchError):
    """Raised when the caller does not own the resource it tries to change."""

    def __init__(
        self,
        message: str = "You are not allowed to modify this resource",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(ServiceMatchError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing records; services convert that
    into NotFoundError so the handler can answer 404.
    """

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


class VectorMissingError(ServiceMatchError):
    """
    Raised when an entity used as a similarity key has no combined vector.

    Search targets without vectors are simply excluded from results; this
    error is only raised when the *source* of a similarity query (for
    example the service in "find similar services") is not embedded yet.
    """

    def __init__(
        self,
        resource: str = "entity",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(
            message=(
                f"The {resource} has not been indexed for semantic matching yet. "
                "Please try again in a few minutes."
            ),
            context=ctx,
        )


class EmbeddingGenerationError(ServiceMatchError):
    """
    Raised when the embedding provider could not produce a vector.

    HTTP: 503 Service Unavailable on read paths. On create/update paths
    it is caught and the entity is saved without vectors; the lazy
    regeneration path and the backfill job fill them in later.
    """

    def __init__(
        self,
        message: str = "The semantic matching service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class RateLimitExceededError(EmbeddingGenerationError):
    """
    Raised when the embedding provider throttles us (per-minute limit).

    Transient: callers may sleep `retry_after` seconds and try again.
    HTTP: 429 Too Many Requests with a Retry-After header.
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=(
                f"Embedding rate limit exceeded. Please wait {retry_after} seconds "
                "before making more requests."
            ),
            retry_after=retry_after,
            context=context,
        )


class DailyQuotaExceededError(EmbeddingGenerationError):
    """
    Raised when the daily embedding quota is used up.

    Not recoverable within the current operation. Batch jobs must stop and
    resume later; single operations continue without embeddings.
    """

    def __init__(
        self,
        quota: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        message = "Daily embedding quota reached. Try again tomorrow."
        if quota:
            ctx["daily_quota"] = quota
            message = f"Daily embedding quota reached ({quota} requests). Try again tomorrow."
        super().__init__(message=message, context=ctx)
        self.quota = quota


class CircuitBreakerOpenError(EmbeddingGenerationError):
    """
    Raised when the circuit breaker around the embedding provider is OPEN.

    How the circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all calls for M seconds)
        → After M seconds → HALF-OPEN (allow one test call)
        → Test succeeds → CLOSED; test fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(
            message=(
                "Semantic matching is temporarily unavailable due to repeated failures. "
                f"The service will automatically retry in approximately {recovery_time} seconds."
            ),
            retry_after=recovery_time,
            context=ctx,
        )
        self.recovery_time = recovery_time


class NotificationDispatchError(ServiceMatchError):
    """
    Raised by a notification publisher when one message could not be handed
    to the transport. The fan-out logs it and continues with the next
    recipient; it never reaches an HTTP response.
    """

    def __init__(
        self,
        message: str = "Failed to publish notification",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(ServiceMatchError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic. Detailed error
    info is logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
