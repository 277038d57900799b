"""
Authentication session lifecycle.

Contains the AuthManager service, the session models and the error
taxonomy its operations report.
"""

from .auth import AuthManager, DocumentStore, IdentityProvider
from .errors import (
    AccountDisabledError,
    AuthenticationError,
    AuthError,
    AuthorizationError,
    ConflictError,
    DataIntegrityError,
    IdentityProviderError,
    NotFoundError,
    ValidationError,
    translate_error,
)
from .models import (
    AccountStatus,
    AuthResult,
    Identity,
    PendingStudentCheck,
    Role,
    SessionPhase,
    SessionState,
    email_index_key,
)
from .reconciliation import ReconciliationEntry, ReconciliationLog

__all__ = [
    "AuthManager",
    "DocumentStore",
    "IdentityProvider",
    "AccountDisabledError",
    "AuthenticationError",
    "AuthError",
    "AuthorizationError",
    "ConflictError",
    "DataIntegrityError",
    "IdentityProviderError",
    "NotFoundError",
    "ValidationError",
    "translate_error",
    "AccountStatus",
    "AuthResult",
    "Identity",
    "PendingStudentCheck",
    "Role",
    "SessionPhase",
    "SessionState",
    "email_index_key",
    "ReconciliationEntry",
    "ReconciliationLog",
]
