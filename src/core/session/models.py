"""
Domain models for the authentication session.

The session is the one piece of shared state in the application: the
AuthManager writes it, the Router and page controllers only read it.
Profile records themselves stay plain documents (dicts) because they are
owned by the document store and mirrored verbatim during activation.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .errors import AuthError, translate_error


class Role(str, Enum):
    """Who the user is in the training relationship."""
    PERSONAL = "personal"  # trainer
    STUDENT = "student"


class AccountStatus(str, Enum):
    """Lifecycle of a profile record."""
    PENDING = "pending"    # created by a trainer, no identity yet
    ACTIVE = "active"
    INACTIVE = "inactive"  # disabled by the trainer


class SessionPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


# Collections in the document store
USERS = "users"
PENDING_ACTIVATIONS = "pendingActivations"


@dataclass(frozen=True)
class Identity:
    """
    Handle to an authenticated principal issued by the identity provider.

    Only `uid` matters to the core. Tokens ride along for clients that
    need them to call the provider again.
    """
    uid: str
    email: str = ""
    id_token: Optional[str] = field(default=None, repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)


@dataclass
class SessionState:
    """Snapshot of the current session."""
    identity: Optional[Identity] = None
    role: Optional[Role] = None
    phase: SessionPhase = SessionPhase.UNINITIALIZED

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None


@dataclass
class AuthResult:
    """
    Outcome of a session-affecting operation.

    These operations never raise: failures are reported through
    `failure` (the taxonomy exception) and `error` (the message).
    """
    success: bool
    identity: Optional[Identity] = None
    role: Optional[Role] = None
    failure: Optional[AuthError] = None
    error: Optional[str] = None
    student_doc_id: Optional[str] = None

    @classmethod
    def ok(
        cls,
        identity: Optional[Identity] = None,
        role: Optional[Role] = None,
        student_doc_id: Optional[str] = None,
    ) -> "AuthResult":
        return cls(success=True, identity=identity, role=role, student_doc_id=student_doc_id)

    @classmethod
    def failed(cls, error: BaseException) -> "AuthResult":
        failure = error if isinstance(error, AuthError) else None
        return cls(success=False, failure=failure, error=translate_error(error))


@dataclass
class PendingStudentCheck:
    """Answer to "does this e-mail have an account waiting for activation?"."""
    exists: bool = False
    already_active: bool = False
    no_index: bool = False
    student_doc_id: Optional[str] = None
    name: Optional[str] = None
    personal_id: Optional[str] = None
    error: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        """Render the shape the activation page consumes."""
        if self.exists:
            return {
                "exists": True,
                "studentDocId": self.student_doc_id,
                "name": self.name,
                "personalId": self.personal_id,
            }
        result: dict[str, Any] = {"exists": False}
        if self.already_active:
            result["alreadyActive"] = True
        if self.no_index:
            result["noIndex"] = True
        if self.error:
            result["error"] = self.error
        return result


_NON_KEY_CHARS = re.compile(r"[^a-z0-9]")


def normalize_email(email: str) -> str:
    return email.lower().strip()


def email_index_key(email: str) -> str:
    """
    Key of the pending-activation index entry for an e-mail.

    Lowercased, trimmed, and every character outside [a-z0-9] replaced
    with an underscore, so the key is a valid document id.
    """
    return _NON_KEY_CHARS.sub("_", normalize_email(email))


def parse_role(value: Any) -> Optional[Role]:
    """Read a role from a profile record; unknown values become None."""
    try:
        return Role(value)
    except ValueError:
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
