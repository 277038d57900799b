"""
Error taxonomy for session-affecting operations.

Operations on the AuthManager never let these escape to the caller. They are
raised inside an operation, caught at its boundary and turned into an
AuthResult carrying a human-readable message. Keeping them as real exception
classes still lets tests and the API layer branch on the kind of failure.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for every failure an AuthManager operation can report."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(AuthError):
    """Bad input shape or length (missing fields, short password)."""


class AuthenticationError(AuthError):
    """The identity provider rejected the credentials."""


class AuthorizationError(AuthError):
    """The current session's role does not allow the operation."""


class ConflictError(AuthError):
    """A unique key (normalized email) is already taken."""


class NotFoundError(AuthError):
    """A record the operation depends on does not exist."""


class AccountDisabledError(AuthError):
    """The student account was deactivated by its trainer."""


class DataIntegrityError(AuthError):
    """An authenticated identity has no profile record."""


class IdentityProviderError(Exception):
    """
    Raised by identity provider clients.

    `code` uses the provider's namespaced codes (``auth/...``) so the
    translation table below can map them to user-facing messages.
    """

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message or code


# Identity provider codes
EMAIL_IN_USE = "auth/email-already-in-use"
INVALID_EMAIL = "auth/invalid-email"
WEAK_PASSWORD = "auth/weak-password"
USER_NOT_FOUND = "auth/user-not-found"
WRONG_PASSWORD = "auth/wrong-password"
INVALID_CREDENTIAL = "auth/invalid-credential"
TOO_MANY_REQUESTS = "auth/too-many-requests"
USER_DISABLED = "auth/user-disabled"


ERROR_MESSAGES: dict[str, str] = {
    EMAIL_IN_USE: "This e-mail is already registered",
    INVALID_EMAIL: "Invalid e-mail",
    WEAK_PASSWORD: "Password is too weak",
    USER_NOT_FOUND: "User not found",
    WRONG_PASSWORD: "Wrong password",
    INVALID_CREDENTIAL: "Wrong e-mail or password",
    TOO_MANY_REQUESTS: "Too many attempts. Try again later",
    USER_DISABLED: "User disabled",
}


def translate_error(error: BaseException) -> str:
    """
    Turn any failure into the message shown to the user.

    Provider codes go through the static table; everything else falls
    back to the raw message.
    """
    code = getattr(error, "code", None)
    if code and code in ERROR_MESSAGES:
        return ERROR_MESSAGES[code]
    message = getattr(error, "message", None) or str(error)
    return message or "Unknown error"
