"""Service exception hierarchy.

Handlers in main.py map these onto HTTP responses, so raising code never
builds status codes itself.
"""

from typing import Optional


class ServiceError(Exception):
    """Base exception for all service errors."""

    status_code = 500
    public_message = "Internal server error"


class StoreUnavailable(ServiceError):
    """Key-value store could not be reached or timed out."""

    status_code = 503
    public_message = "Service temporarily unavailable"


class LockUnavailable(ServiceError):
    """Lock is currently held by another holder."""

    status_code = 409
    public_message = "Operation already in progress"

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"Lock unavailable: {resource}")


class TooManyAttempts(ServiceError):
    """Attempt budget exhausted for a subject."""

    status_code = 429
    public_message = "Too many attempts. Please try again later."

    def __init__(self, retry_after: Optional[int] = None, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(message or self.public_message)


class InvalidToken(ServiceError):
    """Token is unknown, revoked or already consumed."""

    status_code = 401
    public_message = "Invalid token"


class TokenExpired(ServiceError):
    """Token was valid but has expired."""

    status_code = 401
    public_message = "Token expired"


class DeliveryFailed(ServiceError):
    """Outbound SMS or email could not be delivered."""

    status_code = 502
    public_message = "Failed to deliver message"

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(f"[{channel}] {message}")


class ProviderError(ServiceError):
    """Error from an upstream data provider."""

    status_code = 502
    public_message = "Upstream provider error"

    def __init__(self, provider_name: str, message: str):
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class NotFound(ServiceError):
    """Requested record does not exist."""

    status_code = 404
    public_message = "Not found"


class Conflict(ServiceError):
    """Write conflicts with an existing record."""

    status_code = 409
    public_message = "Conflict"


class InvalidPhoneNumber(ServiceError):
    """Phone number cannot be normalized to E.164."""

    status_code = 400
    public_message = "Invalid phone number"


class InvalidAddress(ServiceError):
    """Address could not be parsed from provider data."""

    status_code = 422
    public_message = "Unrecognized address format"
