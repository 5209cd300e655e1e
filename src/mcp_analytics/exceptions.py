"""Custom exceptions for the MCP Analytics SDK."""

from typing import Optional


class AnalyticsError(Exception):
    """Base class for every error raised by the SDK."""


class ConfigurationError(AnalyticsError):
    """Raised when the SDK is set up in a way that can never work.

    Registration-time problems (a paid tool without a price) surface as
    this error before any invocation happens.
    """


class BatchSizeError(AnalyticsError, ValueError):
    """Raised when a batch handed to the ingest API is empty or too large."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        if size == 0:
            message = "No events to send"
        else:
            message = f"Too many events: {size} (max: {limit})"
        super().__init__(message)


class APIError(AnalyticsError):
    """Raised when the ingest API cannot be reached or rejects a batch.

    ``status_code`` is the HTTP status returned by the API, or None when
    the request never got a response.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class PaymentGatewayError(AnalyticsError):
    """Raised when a call to the payment platform fails.

    ``operation`` names the gateway call that failed (for example
    ``"customer_lookup"`` or ``"usage_record"``) so callers can tell the
    failure domains apart. The original Stripe error is chained as
    ``__cause__``.
    """

    def __init__(
        self,
        operation: str,
        message: str,
        status_code: Optional[int] = None,
    ):
        self.operation = operation
        self.status_code = status_code
        super().__init__(message)
