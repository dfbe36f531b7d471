"""Booking error taxonomy.

Backends raise these instead of raw ``httpx`` errors so that the
orchestrator can decide per call whether a failure degrades (reads),
falls back to local-only (writes) or is surfaced to the caller.
"""

import httpx


class BookingError(Exception):
    """Base class for every error raised by the booking core."""

    code = "booking_error"

    def __init__(self, message: str = "", *, backend: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.backend = backend


class NotConfigured(BookingError):
    """Backend credentials are missing or the operation is unsupported."""

    code = "not_configured"


class AuthFailure(BookingError):
    code = "auth_failure"


class RateLimited(BookingError):
    code = "rate_limited"


class ValidationError(BookingError):
    """Request rejected as invalid, either locally or by a backend."""

    code = "validation_error"


class SlotConflict(BookingError):
    """A non-cancelled appointment already occupies the slot."""

    code = "slot_conflict"


class RemoteUnavailable(BookingError):
    """Network error, timeout or 5xx from a remote backend."""

    code = "remote_unavailable"


class NotFound(BookingError):
    code = "not_found"


# Errors that a retry of a side-effect free call may cure
RETRYABLE_ERRORS = (RemoteUnavailable, RateLimited)


def raise_for_backend(exc: Exception, backend: str) -> None:
    """Translate an httpx exception into the booking taxonomy.

    Always raises; exceptions that are not httpx errors are re-raised as-is.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        detail = f"{backend} returned HTTP {status}: {exc.response.text[:200]}"
        if status in (401, 403):
            raise AuthFailure(detail, backend=backend) from exc
        if status == 429:
            raise RateLimited(detail, backend=backend) from exc
        if status >= 500:
            raise RemoteUnavailable(detail, backend=backend) from exc
        raise ValidationError(detail, backend=backend) from exc
    if isinstance(exc, httpx.TimeoutException):
        raise RemoteUnavailable(f"{backend} timed out", backend=backend) from exc
    if isinstance(exc, httpx.TransportError):
        raise RemoteUnavailable(f"{backend} unreachable: {exc}", backend=backend) from exc
    raise exc

