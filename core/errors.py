"""
core/errors.py -- Error taxonomy shared by the auth core and its consumers.

Every outcome the core can decide is a distinct exception class, so callers
branch on type rather than on message text. error_code is the machine-readable
code the HTTP boundary puts in the response envelope; the mapping to status
codes lives in api/main.py, not here.

Hierarchy:
  NexusError
    AuthenticationError
      InvalidCredentials
      AccountDisabled
      TokenError
        TokenMalformed
        TokenSignatureInvalid
        TokenExpired
    Forbidden
    NotFound
    Conflict
    InvalidOperation

Messages must never contain passwords, password hashes, or token material.
"""


class NexusError(Exception):
    """Base exception for Nexus."""

    error_code: str = "nexus_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuthenticationError(NexusError):
    """The caller could not be authenticated."""

    error_code = "unauthenticated"


class InvalidCredentials(AuthenticationError):
    """Unknown username or wrong password. Deliberately the same error for both."""

    error_code = "bad_credentials"

    def __init__(self, message: str = "Invalid username or password.") -> None:
        super().__init__(message)


class AccountDisabled(AuthenticationError):
    """Credentials matched an account that has been disabled."""

    error_code = "account_disabled"

    def __init__(self, message: str = "Account is disabled.") -> None:
        super().__init__(message)


class TokenError(AuthenticationError):
    error_code = "invalid_token"


class TokenMalformed(TokenError):
    """The token cannot be decoded or is missing required claims."""

    def __init__(self, message: str = "Token is malformed.") -> None:
        super().__init__(message)


class TokenSignatureInvalid(TokenError):
    def __init__(self, message: str = "Token signature is invalid.") -> None:
        super().__init__(message)


class TokenExpired(TokenError):
    """The token was valid but its expiry has passed. Re-authentication is required."""

    error_code = "token_expired"

    def __init__(self, message: str = "Token has expired.") -> None:
        super().__init__(message)


class Forbidden(NexusError):
    """The caller is authenticated but the access evaluator denied the action."""

    error_code = "forbidden"


class NotFound(NexusError):
    error_code = "not_found"


class Conflict(NexusError):
    error_code = "conflict"


class InvalidOperation(NexusError):
    """The request is well-formed but violates a business rule."""

    error_code = "invalid_operation"
