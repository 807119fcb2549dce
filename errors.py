"""
Error types for the PaySSD gateway service.

Every error carries a stable machine-readable code that the HTTP layer
returns in the response body.
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for errors surfaced to API callers."""

    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(message or code)
        self.code = code
        self.message = message or code


class ValidationError(GatewayError):
    """Missing or malformed input, rejected before any write."""


class DomainError(GatewayError):
    """Input was well formed but the referenced state forbids the action."""


class ProviderUnreachable(GatewayError):
    """The payment processor could not be reached or answered garbage."""

    def __init__(self, message: Optional[str] = None):
        super().__init__('provider_unreachable', message)


class UnknownEventError(GatewayError):
    """Notification event has no template."""

    def __init__(self, event: str):
        super().__init__('unknown_event', f"Unknown notification event: {event!r}")
        self.event = event


class ConfigurationError(GatewayError):
    """The service is missing something it needs to run."""

    def __init__(self, message: Optional[str] = None):
        super().__init__('server_misconfigured', message)
