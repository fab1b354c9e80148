"""Error taxonomy shared by the vault, the OAuth flow and the sync services.

Every error carries a stable ``kind`` which is what ends up in structured
sync results and HTTP error bodies.
"""
from typing import Optional


class SocialSyncError(Exception):
    kind = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ConfigurationError(SocialSyncError):
    """Missing or malformed key material or app credentials. Never retried."""
    kind = "configuration_error"


class ConfigurationMissing(ConfigurationError):
    kind = "configuration_missing"

    def __init__(self, platform: str, message: Optional[str] = None):
        super().__init__(
            message
            or f"{platform} is not configured. Add OAuth credentials in Settings > Integrations."
        )
        self.platform = platform


class AuthenticationError(SocialSyncError):
    """Invalid state token, or a platform token that was revoked or expired."""
    kind = "authentication_error"


class TokenRevoked(AuthenticationError):
    """The platform says the user withdrew access; the account is marked revoked."""
    kind = "token_revoked"


class StateInvalid(AuthenticationError):
    kind = "state_invalid"


class StateExpired(AuthenticationError):
    kind = "state_expired"


class TransientPlatformError(SocialSyncError):
    """Timeout or rate limiting; left for an external retry policy."""
    kind = "transient_platform_error"

    def __init__(self, message: str = "", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class DataIntegrityError(SocialSyncError):
    kind = "data_integrity_error"


class DecryptionError(DataIntegrityError):
    kind = "decryption_error"


class AlreadyInProgress(SocialSyncError):
    kind = "already_in_progress"

    def __init__(self, key: str):
        super().__init__(f"A sync is already running for {key}")
        self.key = key


class NotFound(SocialSyncError):
    kind = "not_found"


class DeadlineExceeded(SocialSyncError):
    kind = "deadline_exceeded"


class PlatformRequestError(SocialSyncError):
    """A platform answered with a non-retryable client error."""
    kind = "platform_error"

    def __init__(self, message: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
