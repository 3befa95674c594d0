"""
ReplyMate error taxonomy. Every error carries the HTTP status it is surfaced as;
app.main renders them as {"error": message}.
"""
from typing import Optional


class ReplyMateError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ConfigurationError(ReplyMateError):
    """A required credential or API key is missing. Operator must fix it."""
    status_code = 500


class ReauthRequired(ReplyMateError):
    """Refresh token is absent or revoked; the user must reconnect Google."""
    status_code = 401

    def __init__(self, message: str = "Google connection expired, please reconnect your Google account."):
        super().__init__(message)


class ProviderError(ReplyMateError):
    """Non-2xx, malformed or timed-out response from an external API."""
    status_code = 500

    def __init__(self, message: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFoundError(ReplyMateError):
    status_code = 404


class ValidationError(ReplyMateError):
    status_code = 400


class AuthenticationError(ReplyMateError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class ConnectionRequired(ReplyMateError):
    status_code = 403

    def __init__(self, message: str = "Google Business account not connected. Please connect your Google account first."):
        super().__init__(message)
