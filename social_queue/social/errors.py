"""
Exception hierarchy for social platform integrations.

Every error raised by the cipher, the adapters, the token lifecycle
coordinator and the service layer inherits from SocialError so callers can
handle the whole family in one place.

Exception Hierarchy:
    SocialError (base)
    ├── ConfigurationError          fatal at construction
    ├── IntegrityError              decryption/authentication failure, never retried
    ├── OAuthExchangeError          token endpoint refused the exchange
    ├── OAuthStateError             unknown, expired or mismatched anti-CSRF state
    ├── DecodeError                 malformed platform response body
    ├── ValidationError             content exceeds platform limits, no I/O performed
    ├── RateLimitedError            platform answered 429
    ├── RefreshUnsupportedError     re-authentication required
    ├── TransientNetworkError       timeout or connection failure
    ├── AuthenticationError         platform rejected the access token
    ├── PlatformError               any other non-success platform answer
    ├── AttemptsExhaustedError      publish retries used up
    ├── TokenNotFoundError
    ├── InvalidTokenError           write to an invalidated token
    └── AdapterNotFoundError
"""

from enum import Enum
from typing import Any, Dict, Optional

from social_queue.types.social import SocialPlatform


class ErrorCode(str, Enum):
    """Machine-readable error codes for the web boundary."""

    # Configuration and cryptography
    CONFIGURATION_ERROR = "SOCIAL_4900"
    INTEGRITY_ERROR = "SOCIAL_4903"

    # Token lookups
    TOKEN_NOT_FOUND = "SOCIAL_4001"
    TOKEN_INVALID = "SOCIAL_4006"

    # Platform
    PLATFORM_NOT_SUPPORTED = "PLATFORM_4102"
    PLATFORM_ERROR = "PLATFORM_4105"

    # OAuth
    INVALID_STATE = "OAUTH_4200"
    TOKEN_EXCHANGE_FAILED = "OAUTH_4203"
    TOKEN_REFRESH_UNSUPPORTED = "OAUTH_4204"
    AUTHENTICATION_FAILED = "OAUTH_4206"

    # Publishing
    PUBLISH_FAILED = "PUBLISH_4301"
    INVALID_CONTENT = "PUBLISH_4303"
    DECODE_FAILED = "PUBLISH_4306"

    # Rate limiting
    RATE_LIMIT_EXCEEDED = "RATE_4401"

    # Network
    NETWORK_ERROR = "NETWORK_4501"


class SocialError(Exception):
    """
    Base exception for social integration errors.

    Attributes:
        message: Human-readable error message.
        error_code: Machine-readable error code.
        platform: The platform involved, if any.
        details: Extra context that is safe to show to clients.
    """

    default_error_code: ErrorCode = ErrorCode.PLATFORM_ERROR
    requires_reauth: bool = False

    def __init__(
        self,
        message: str,
        platform: Optional[SocialPlatform] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.platform = platform
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the error to a response payload.

        Raw platform bodies are never included.
        """
        response: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code.value,
            "requires_reauth": self.requires_reauth,
        }
        if self.platform is not None:
            response["platform"] = self.platform.value
        if self.details:
            response["details"] = self.details
        return response

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code.value!r})"
        )


# =============================================================================
# Configuration and Cryptography
# =============================================================================


class ConfigurationError(SocialError):
    """Raised when a component is constructed with unusable settings."""

    default_error_code = ErrorCode.CONFIGURATION_ERROR


class IntegrityError(SocialError):
    """Raised when a ciphertext is truncated, undecodable or fails authentication."""

    default_error_code = ErrorCode.INTEGRITY_ERROR


# =============================================================================
# OAuth
# =============================================================================


class OAuthExchangeError(SocialError):
    """Raised when a token endpoint answers with a non-success status."""

    default_error_code = ErrorCode.TOKEN_EXCHANGE_FAILED
    requires_reauth = True

    def __init__(
        self,
        message: str,
        status_code: int,
        body: str = "",
        platform: Optional[SocialPlatform] = None,
    ) -> None:
        super().__init__(message, platform=platform)
        self.status_code = status_code
        self.body = body


class OAuthStateError(SocialError):
    """Raised when an OAuth callback carries an unknown or expired state."""

    default_error_code = ErrorCode.INVALID_STATE
    requires_reauth = True


class RefreshUnsupportedError(SocialError):
    """Raised when a token cannot be refreshed and the user must reconnect."""

    default_error_code = ErrorCode.TOKEN_REFRESH_UNSUPPORTED
    requires_reauth = True


class AuthenticationError(SocialError):
    """Raised when the platform rejects an access token."""

    default_error_code = ErrorCode.AUTHENTICATION_FAILED
    requires_reauth = True


# =============================================================================
# Platform Responses
# =============================================================================


class DecodeError(SocialError):
    """Raised when a platform response body cannot be parsed."""

    default_error_code = ErrorCode.DECODE_FAILED


class PlatformError(SocialError):
    """Raised when a platform answers with an unexpected status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
        platform: Optional[SocialPlatform] = None,
        error_code: Optional[ErrorCode] = None,
    ) -> None:
        details = {"status_code": status_code} if status_code is not None else None
        super().__init__(message, platform=platform, error_code=error_code, details=details)
        self.status_code = status_code
        self.body = body


class RateLimitedError(PlatformError):
    """Raised when a platform answers 429."""

    default_error_code = ErrorCode.RATE_LIMIT_EXCEEDED

    def __init__(
        self,
        message: str,
        body: str = "",
        retry_after: Optional[int] = None,
        platform: Optional[SocialPlatform] = None,
    ) -> None:
        super().__init__(message, status_code=429, body=body, platform=platform)
        self.retry_after = retry_after


class TransientNetworkError(SocialError):
    """Raised on timeouts and connection failures."""

    default_error_code = ErrorCode.NETWORK_ERROR

    def __init__(
        self,
        message: str,
        platform: Optional[SocialPlatform] = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message, platform=platform)
        self.timed_out = timed_out


class AttemptsExhaustedError(SocialError):
    """Raised when every publish attempt failed with a retryable error."""

    default_error_code = ErrorCode.PUBLISH_FAILED

    def __init__(
        self,
        attempts: int,
        last_error: SocialError,
        platform: Optional[SocialPlatform] = None,
    ) -> None:
        super().__init__(
            f"Failed after {attempts} attempts: {last_error.message}",
            platform=platform,
            details={"attempts": attempts},
        )
        self.attempts = attempts
        self.last_error = last_error


class ValidationError(SocialError):
    """Raised when content violates platform capabilities."""

    default_error_code = ErrorCode.INVALID_CONTENT


# =============================================================================
# Lookups
# =============================================================================


class TokenNotFoundError(SocialError):
    """Raised when no valid token exists for the given id."""

    default_error_code = ErrorCode.TOKEN_NOT_FOUND


class InvalidTokenError(SocialError):
    """Raised on any write to a token that has been invalidated."""

    default_error_code = ErrorCode.TOKEN_INVALID
    requires_reauth = True


class AdapterNotFoundError(SocialError):
    """Raised when no adapter is registered for a platform."""

    default_error_code = ErrorCode.PLATFORM_NOT_SUPPORTED
