"""
Error taxonomy for the data-access layer.

Transient fetch failures (FetchError and subclasses) are absorbed by the
resilient fetch orchestrator; validation errors are surfaced to the caller
with a suggestion the UI can show directly.
"""
from enum import Enum
from typing import List, Optional


class FailureKind(Enum):
    """Kinds of failure recorded by the failure tracker."""
    NETWORK = "network"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    INCOMPATIBLE_RESPONSE = "incompatible_response"


USER_MESSAGES = {
    "invalid_url": "Invalid URL format. Please check the URL and try again.",
    "duplicate_entry": "This entry has already been added.",
    "relay_blocked": "Unable to access the source due to access restrictions.",
    "incompatible_response": "The source did not return the expected content.",
    "network_error": "Network error. Please check your connection and try again.",
    "timeout": "Request timed out. The server may be slow to respond.",
    "server_error": "Server error. The source may be temporarily unavailable.",
    "cancelled": "Request cancelled.",
    "invalid_configuration": "This widget is not configured yet.",
    "store_unavailable": "Cloud storage is not reachable.",
}


class DashboardDataError(Exception):
    """Base class for every error raised by the data-access layer."""

    code = "error"

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.suggestion = suggestion

    @property
    def user_message(self) -> str:
        """Short message suitable for display in the UI."""
        return USER_MESSAGES.get(self.code, self.message)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "suggestion": self.suggestion,
            "userMessage": self.user_message,
        }

    def __str__(self) -> str:
        text = f"{type(self).__name__}({self.code}): {self.message}"
        if self.details:
            text += f" [{self.details}]"
        return text


# =============================================================================
# Transient fetch failures
# =============================================================================

class FetchError(DashboardDataError):
    """A network fetch failed in a way that may resolve by itself."""

    code = "network_error"
    kind = FailureKind.NETWORK
    can_retry_with_relay = False


class NetworkError(FetchError):
    """Connection-level failure (DNS, refused, reset)."""

    code = "network_error"
    kind = FailureKind.NETWORK
    can_retry_with_relay = True

    def __init__(self, url: str, details: Optional[str] = None):
        super().__init__(
            f"Network error while accessing {url}",
            details=details,
            suggestion="Please check your internet connection and try again.",
        )
        self.url = url


class FetchTimeout(FetchError):
    """The request did not complete within its timeout."""

    code = "timeout"
    kind = FailureKind.TIMEOUT
    can_retry_with_relay = True

    def __init__(self, url: str, timeout: Optional[float] = None):
        super().__init__(
            f"Request timed out while accessing {url}",
            details=f"timeout={timeout}s" if timeout is not None else None,
            suggestion="The server is taking too long to respond. Please try again later.",
        )
        self.url = url
        self.timeout = timeout


class ServerError(FetchError):
    """The server answered with an error status."""

    code = "server_error"
    kind = FailureKind.SERVER_ERROR

    def __init__(self, url: str, status_code: int, reason: Optional[str] = None):
        if 400 <= status_code < 500:
            suggestion = "The URL may be incorrect or the resource may have moved."
        else:
            suggestion = "The server is experiencing issues. Please try again later."
        super().__init__(
            f"Server error {status_code} while accessing {url}",
            details=f"status={status_code} {reason or ''}".strip(),
            suggestion=suggestion,
        )
        self.url = url
        self.status_code = status_code

    @property
    def can_retry_with_relay(self) -> bool:
        return self.status_code in (403, 405)


class IncompatibleResponse(FetchError):
    """The payload does not match what the caller expected."""

    code = "incompatible_response"
    kind = FailureKind.INCOMPATIBLE_RESPONSE
    can_retry_with_relay = False

    def __init__(self, url: str, details: Optional[str] = None, suggestion: Optional[str] = None):
        super().__init__(
            f"Unexpected content returned by {url}",
            details=details,
            suggestion=suggestion or "Please verify the URL points to the expected resource.",
        )
        self.url = url


class RelayBlocked(FetchError):
    """Direct access was refused; most likely a sandbox / cross-origin restriction."""

    code = "relay_blocked"
    kind = FailureKind.NETWORK
    can_retry_with_relay = True

    def __init__(self, url: str, status_code: Optional[int] = None):
        super().__init__(
            f"Direct access to {url} was blocked",
            details=f"status={status_code}" if status_code is not None else None,
            suggestion="This is an access restriction. The request can be routed through a relay.",
        )
        self.url = url
        self.status_code = status_code


# =============================================================================
# Non-transient errors
# =============================================================================

class FetchCancelled(DashboardDataError):
    """The consumer abandoned the request. Never counted as a failure."""

    code = "cancelled"

    def __init__(self, details: Optional[str] = None):
        super().__init__("Request cancelled", details=details)


class InvalidConfiguration(DashboardDataError):
    """A required setting is missing."""

    code = "invalid_configuration"

    def __init__(self, setting: str, suggestion: Optional[str] = None):
        super().__init__(
            f"Setting '{setting}' is not configured",
            suggestion=suggestion or f"Set {setting.upper()} in the environment or .env file.",
        )
        self.setting = setting


class StoreUnavailable(DashboardDataError):
    """The document store could not be reached or no user is signed in."""

    code = "store_unavailable"


class FeedValidationError(DashboardDataError):
    """Domain-level validation failure; actionable by the end user."""


class InvalidUrl(FeedValidationError):
    code = "invalid_url"

    def __init__(
        self,
        url: str,
        error: Optional[str] = None,
        suggestion: Optional[str] = None,
        corrections: Optional[List[str]] = None,
    ):
        super().__init__(
            f"The provided URL is not valid: {url}",
            details=error,
            suggestion=suggestion
            or "Please check the URL format and ensure it starts with http:// or https://",
        )
        self.url = url
        self.corrections = list(corrections or [])

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["corrections"] = self.corrections
        return data


class DuplicateEntry(FeedValidationError):
    code = "duplicate_entry"

    def __init__(self, value: str, suggestion: Optional[str] = None):
        super().__init__(
            f"Entry already exists: {value}",
            suggestion=suggestion or "This entry has already been added to your collection.",
        )
        self.value = value
