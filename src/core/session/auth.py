"""
Authentication session lifecycle.

The AuthManager owns the current session (identity + role) and every
operation that changes it: signup, login, logout, student account
creation and activation. It doesn't know about HTTP, pages or any
particular identity provider or database; both collaborators are
injected and described by the protocols below.

Session-affecting operations never raise. They return an AuthResult so
a page (or an API route) can show the message and move on.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from .errors import (
    EMAIL_IN_USE,
    INVALID_EMAIL,
    USER_DISABLED,
    WEAK_PASSWORD,
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
    PENDING_ACTIVATIONS,
    USERS,
    AccountStatus,
    AuthResult,
    Identity,
    PendingStudentCheck,
    Role,
    SessionPhase,
    SessionState,
    email_index_key,
    normalize_email,
    parse_role,
    utcnow,
)
from .reconciliation import ReconciliationLog

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

IdentityCallback = Callable[[Optional[Identity]], Awaitable[None]]
SessionListener = Callable[[Optional[Identity], Optional[Role]], None]


class IdentityProvider(Protocol):
    """
    Interface for the hosted identity provider.

    Failures raise IdentityProviderError with an ``auth/...`` code.
    Identity changes (sign-in, sign-out, token refresh) are delivered
    asynchronously to subscribers; the first delivery after subscribing
    carries the provider's current identity.
    """

    @property
    def current_identity(self) -> Optional[Identity]:
        ...

    async def create_account(self, email: str, password: str) -> Identity:
        ...

    async def sign_in(self, email: str, password: str) -> Identity:
        ...

    async def sign_out(self) -> None:
        ...

    def subscribe(self, callback: IdentityCallback) -> Callable[[], None]:
        """Register for identity changes. Returns the unsubscribe handle."""
        ...


class DocumentStore(Protocol):
    """
    Interface for the hosted document database.

    Documents are plain dicts addressed by (collection, key). `update`
    fails with DocumentNotFoundError when the document is absent.
    """

    async def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        ...

    async def set(self, collection: str, key: str, document: dict[str, Any]) -> None:
        ...

    async def update(self, collection: str, key: str, fields: dict[str, Any]) -> None:
        ...

    async def delete(self, collection: str, key: str) -> None:
        ...

    async def query(self, collection: str, **equals: Any) -> dict[str, dict[str, Any]]:
        """Documents whose fields equal every given value, keyed by document key."""
        ...

    async def array_union(self, collection: str, key: str, field: str, values: list[Any]) -> None:
        ...

    async def array_remove(self, collection: str, key: str, field: str, values: list[Any]) -> None:
        ...

    def new_key(self, collection: str) -> str:
        ...


# ---------------------------------------------------------------------------
# AuthManager
# ---------------------------------------------------------------------------

def _classify_provider_error(error: IdentityProviderError) -> AuthError:
    """Map a provider failure onto the session error taxonomy."""
    message = translate_error(error)
    if error.code in (WEAK_PASSWORD, INVALID_EMAIL):
        return ValidationError(message, code=error.code)
    if error.code == EMAIL_IN_USE:
        return ConflictError(message, code=error.code)
    if error.code == USER_DISABLED:
        return AccountDisabledError(message, code=error.code)
    return AuthenticationError(message, code=error.code)


class AuthManager:
    """
    Session lifecycle service.

    States: uninitialized -> initializing -> ready (authenticated or not).
    `initialize` subscribes to the identity provider; every identity
    change re-derives the role from the profile store, then notifies
    listeners. Role is never carried over from a previous identity.
    """

    def __init__(
        self,
        identity_provider: IdentityProvider,
        store: DocumentStore,
        *,
        min_password_length: int = 6,
        reinitialize_settle_seconds: float = 0.1,
        logout_settle_seconds: float = 0.2,
        reconciliation: Optional[ReconciliationLog] = None,
    ) -> None:
        self._provider = identity_provider
        self._store = store
        self._min_password_length = min_password_length
        self._reinitialize_settle = reinitialize_settle_seconds
        self._logout_settle = logout_settle_seconds
        self._reconciliation = reconciliation or ReconciliationLog()

        self._identity: Optional[Identity] = None
        self._role: Optional[Role] = None
        self._phase = SessionPhase.UNINITIALIZED
        self._listeners: list[SessionListener] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._init_future: Optional[asyncio.Future] = None
        self._ready = asyncio.Event()
        # Bumped on every identity notification so a slow profile fetch
        # can't overwrite a newer one.
        self._generation = 0
        # Bumped by every operation that adopts an identity and role itself.
        self._adoptions = 0

    # -- Initialization -----------------------------------------------------

    async def initialize(self) -> None:
        """
        Subscribe to identity changes and wait for the first one.

        Idempotent: concurrent callers share the same in-flight future
        and all resolve on the provider's first callback.
        """
        if self._init_future is not None:
            await self._init_future
            return
        if self._phase is SessionPhase.READY:
            return

        loop = asyncio.get_running_loop()
        self._init_future = loop.create_future()
        self._phase = SessionPhase.INITIALIZING
        logger.debug("Subscribing to identity changes")
        self._unsubscribe = self._provider.subscribe(self._on_identity_changed)
        await self._init_future

    async def reinitialize(self) -> None:
        """
        Tear down and rebuild the identity subscription.

        Waits a little before resubscribing so the provider's own state
        can settle after an explicit sign-out.
        """
        self._detach()
        self._phase = SessionPhase.UNINITIALIZED
        self._init_future = None
        self._ready.clear()
        await asyncio.sleep(self._reinitialize_settle)
        await self.initialize()

    async def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait for the first definitive session state. False on timeout."""
        if self._ready.is_set():
            return True
        try:
            await asyncio.wait_for(self._ready.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def close(self) -> None:
        """Drop the provider subscription and all listeners."""
        self._detach()
        self._listeners = []

    def _detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _on_identity_changed(self, identity: Optional[Identity]) -> None:
        self._generation += 1
        generation = self._generation
        adoptions = self._adoptions

        current = self._provider.current_identity
        if identity is not None and (current is None or current.uid != identity.uid):
            # The provider has already moved on (e.g. signed out again).
            logger.debug("Ignoring stale identity notification", extra={"uid": identity.uid})
            identity = current

        if identity is None:
            self._identity = None
            self._role = None
        else:
            if self._identity is None or self._identity.uid != identity.uid:
                self._role = None
            self._identity = identity
            role = await self._fetch_role(identity.uid)
            if generation != self._generation:
                return
            if (
                role is None
                and self._adoptions != adoptions
                and self._identity is not None
                and self._identity.uid == identity.uid
            ):
                # An operation adopted this uid while the fetch ran (signup
                # writing the profile); its role is newer than the read.
                role = self._role
            self._role = role

        self._notify_listeners()
        self._mark_ready()

    async def _fetch_role(self, uid: str) -> Optional[Role]:
        try:
            profile = await self._store.get(USERS, uid)
        except Exception as e:
            logger.warning("Failed to fetch profile for role", extra={"uid": uid, "error": str(e)})
            return None
        if profile is None:
            return None
        return parse_role(profile.get("userType"))

    def _mark_ready(self) -> None:
        self._phase = SessionPhase.READY
        self._ready.set()
        if self._init_future is not None and not self._init_future.done():
            self._init_future.set_result(None)

    # -- Listeners ------------------------------------------------------------

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register a session listener.

        Listeners get (identity, role) after every session change. When
        the session is already ready the listener is called right away.
        """
        self._listeners.append(listener)
        if self.is_initialized:
            self._call_listener(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify_listeners(self) -> None:
        for listener in list(self._listeners):
            self._call_listener(listener)

    def _call_listener(self, listener: SessionListener) -> None:
        try:
            listener(self._identity, self._role)
        except Exception:
            logger.exception(
                "Session listener failed",
                extra={
                    "listener": getattr(listener, "__qualname__", repr(listener)),
                    "uid": self._identity.uid if self._identity else None,
                },
            )

    def _adopt(self, identity: Optional[Identity], role: Optional[Role]) -> None:
        self._adoptions += 1
        self._identity = identity
        self._role = role

    # -- Trainer signup -------------------------------------------------------

    async def signup_personal(self, email: str, password: str, name: str) -> AuthResult:
        """Create a trainer account and its active profile record."""
        try:
            if not email or not password or not name:
                raise ValidationError("All fields are required")
            self._check_password(password)

            identity = await self._create_account(email, password)
            try:
                await self._store.set(USERS, identity.uid, {
                    "uid": identity.uid,
                    "name": name,
                    "email": email,
                    "userType": Role.PERSONAL.value,
                    "status": AccountStatus.ACTIVE.value,
                    "students": [],
                    "createdAt": utcnow(),
                })
            except Exception as e:
                # The identity exists without a profile; login will report it.
                self._reconciliation.record(
                    "signup_personal", "write_profile", identity.uid, error=str(e)
                )
                raise

            self._adopt(identity, Role.PERSONAL)
            logger.info("Trainer signed up", extra={"uid": identity.uid})
            return AuthResult.ok(identity, Role.PERSONAL)

        except Exception as e:
            logger.warning("Trainer signup failed", extra={"error": str(e)})
            return AuthResult.failed(e)

    # -- Student management by the trainer ------------------------------------

    async def create_student_account(self, name: str, email: str) -> AuthResult:
        """
        Pre-register a student (no password yet).

        Writes a pending profile record under a fresh document id, links it
        to the trainer, then writes the public activation index entry. The
        index write is best-effort: the record already exists if it fails.
        """
        try:
            trainer = self._require_personal("Only trainers can create students")
            if not name or not name.strip() or not email or not email.strip():
                raise ValidationError("Name and e-mail are required")

            normalized = normalize_email(email)
            existing = await self._store.query(USERS, email=normalized)
            if existing:
                raise ConflictError("This e-mail is already registered")

            student_doc_id = self._store.new_key(USERS)
            await self._store.set(USERS, student_doc_id, {
                "uid": student_doc_id,
                "name": name.strip(),
                "email": normalized,
                "userType": Role.STUDENT.value,
                "status": AccountStatus.PENDING.value,
                "personalId": trainer.uid,
                "authUid": None,
                "assignedWorkouts": [],
                "createdAt": utcnow(),
                "createdBy": trainer.uid,
            })
            await self._store.array_union(USERS, trainer.uid, "students", [student_doc_id])

            index_key = email_index_key(normalized)
            await self._reconciliation.run_step(
                "create_student_account",
                "write_activation_index",
                index_key,
                lambda: self._store.set(PENDING_ACTIVATIONS, index_key, {
                    "studentDocId": student_doc_id,
                    "status": AccountStatus.PENDING.value,
                    "createdAt": utcnow(),
                }),
            )

            logger.info(
                "Student pre-registered",
                extra={"student_doc_id": student_doc_id, "personal_id": trainer.uid},
            )
            return AuthResult.ok(student_doc_id=student_doc_id)

        except Exception as e:
            logger.warning("Student creation failed", extra={"error": str(e)})
            return AuthResult.failed(e)

    async def deactivate_student(self, student_doc_id: str) -> AuthResult:
        return await self._set_student_status(student_doc_id, AccountStatus.INACTIVE)

    async def reactivate_student(self, student_doc_id: str) -> AuthResult:
        return await self._set_student_status(student_doc_id, AccountStatus.ACTIVE)

    async def _set_student_status(self, student_doc_id: str, status: AccountStatus) -> AuthResult:
        try:
            self._require_personal("Only trainers can change student status")
            await self._store.update(USERS, student_doc_id, {"status": status.value})
            logger.info(
                "Student status changed",
                extra={"student_doc_id": student_doc_id, "status": status.value},
            )
            return AuthResult.ok(student_doc_id=student_doc_id)
        except Exception as e:
            logger.warning(
                "Student status change failed",
                extra={"student_doc_id": student_doc_id, "error": str(e)},
            )
            return AuthResult.failed(e)

    async def delete_student(self, student_doc_id: str) -> AuthResult:
        """
        Delete a student record and unlink it from the trainer.

        A still-pending student also has an activation index entry; its
        removal is best-effort.
        """
        try:
            trainer = self._require_personal("Only trainers can delete students")

            student = await self._store.get(USERS, student_doc_id)
            if student is not None and student.get("email"):
                index_key = email_index_key(student["email"])
                await self._reconciliation.run_step(
                    "delete_student",
                    "delete_activation_index",
                    index_key,
                    lambda: self._store.delete(PENDING_ACTIVATIONS, index_key),
                )

            await self._store.array_remove(USERS, trainer.uid, "students", [student_doc_id])
            await self._store.delete(USERS, student_doc_id)

            logger.info("Student deleted", extra={"student_doc_id": student_doc_id})
            return AuthResult.ok(student_doc_id=student_doc_id)

        except Exception as e:
            logger.warning(
                "Student deletion failed",
                extra={"student_doc_id": student_doc_id, "error": str(e)},
            )
            return AuthResult.failed(e)

    # -- Student first access -------------------------------------------------

    async def check_pending_student(self, email: str) -> PendingStudentCheck:
        """
        Look up an account waiting for activation, without authentication.

        Only the public index and the referenced pending record are read;
        the profile collection is never queried. A missing index entry is
        ambiguous (never registered, or registered before the index
        existed) and is reported as such.
        """
        try:
            index_key = email_index_key(email)
            entry = await self._store.get(PENDING_ACTIVATIONS, index_key)
            if entry is None:
                return PendingStudentCheck(no_index=True)

            if entry.get("status") != AccountStatus.PENDING.value:
                return PendingStudentCheck(already_active=True)

            student_doc_id = entry.get("studentDocId")
            student = await self._store.get(USERS, student_doc_id) if student_doc_id else None
            # The record is the source of truth when the two disagree.
            if student is None or student.get("status") != AccountStatus.PENDING.value:
                return PendingStudentCheck(already_active=True)

            return PendingStudentCheck(
                exists=True,
                student_doc_id=student_doc_id,
                name=student.get("name"),
                personal_id=student.get("personalId"),
            )
        except Exception as e:
            logger.warning("Pending student lookup failed", extra={"error": str(e)})
            return PendingStudentCheck(error=translate_error(e))

    async def activate_student_account(
        self,
        email: str,
        password: str,
        provisional_id: str,
    ) -> AuthResult:
        """
        Student sets a password and activates the pre-registered account.

        Safe to call again after a crash at any step:
        1. read the provisional record
        2. create the identity, or sign in when a previous attempt did
        3. stop here if the final record is already active
        4. write the final record keyed by the identity's uid
        5-7. best-effort cleanup: provisional record, trainer's student
           list, activation index
        """
        try:
            self._check_password(password or "")
            normalized = normalize_email(email)

            provisional = await self._store.get(USERS, provisional_id)
            if provisional is None:
                return await self._resume_completed_activation(normalized, password)

            identity = await self._create_or_sign_in(normalized, password)

            existing = await self._store.get(USERS, identity.uid)
            if existing is not None and existing.get("status") == AccountStatus.ACTIVE.value:
                logger.info("Activation already complete", extra={"uid": identity.uid})
                self._adopt(identity, Role.STUDENT)
                return AuthResult.ok(identity, Role.STUDENT)

            await self._store.set(USERS, identity.uid, {
                **provisional,
                "uid": identity.uid,
                "authUid": identity.uid,
                "status": AccountStatus.ACTIVE.value,
                "activatedAt": utcnow(),
            })

            await self._finish_activation(identity.uid, provisional_id, provisional, normalized)

            self._adopt(identity, Role.STUDENT)
            logger.info(
                "Student account activated",
                extra={"uid": identity.uid, "provisional_id": provisional_id},
            )
            return AuthResult.ok(identity, Role.STUDENT)

        except Exception as e:
            logger.warning(
                "Student activation failed",
                extra={"provisional_id": provisional_id, "error": str(e)},
            )
            return AuthResult.failed(e)

    async def _resume_completed_activation(self, email: str, password: str) -> AuthResult:
        """
        The provisional record is gone: either a previous attempt finished
        (and deleted it) or the trainer deleted the student. Signing in
        tells the two apart.
        """
        not_found = NotFoundError(
            "Student data not found. Contact your personal trainer."
        )
        try:
            identity = await self._provider.sign_in(email, password)
        except IdentityProviderError:
            raise not_found

        profile = await self._store.get(USERS, identity.uid)
        if (
            profile is None
            or profile.get("status") != AccountStatus.ACTIVE.value
            or parse_role(profile.get("userType")) is not Role.STUDENT
            or normalize_email(profile.get("email") or "") != email
        ):
            await self._sign_out_quietly()
            raise not_found

        logger.info("Activation already complete", extra={"uid": identity.uid})
        self._adopt(identity, Role.STUDENT)
        return AuthResult.ok(identity, Role.STUDENT)

    async def _create_or_sign_in(self, email: str, password: str) -> Identity:
        try:
            return await self._provider.create_account(email, password)
        except IdentityProviderError as e:
            if e.code != EMAIL_IN_USE:
                raise _classify_provider_error(e) from e

        # A previous attempt created the identity but didn't finish.
        try:
            return await self._provider.sign_in(email, password)
        except IdentityProviderError as e:
            raise AuthenticationError(translate_error(e), code=e.code) from e

    async def _finish_activation(
        self,
        uid: str,
        provisional_id: str,
        provisional: dict[str, Any],
        email: str,
    ) -> None:
        log = self._reconciliation
        operation = "activate_student_account"

        await log.run_step(
            operation, "delete_provisional_record", provisional_id,
            lambda: self._store.delete(USERS, provisional_id),
        )

        personal_id = provisional.get("personalId")
        if personal_id:
            await log.run_step(
                operation, "unlink_provisional_id", personal_id,
                lambda: self._store.array_remove(USERS, personal_id, "students", [provisional_id]),
            )
            await log.run_step(
                operation, "link_student_uid", personal_id,
                lambda: self._store.array_union(USERS, personal_id, "students", [uid]),
            )

        # The entry stays as an "active" marker so a later lookup reports the
        # account as activated instead of never indexed.
        index_key = email_index_key(email)
        await log.run_step(
            operation, "retire_activation_index", index_key,
            lambda: self._store.set(PENDING_ACTIVATIONS, index_key, {
                "status": AccountStatus.ACTIVE.value,
                "activatedAt": utcnow(),
            }),
        )

    # -- Login / logout -------------------------------------------------------

    async def login(self, email: str, password: str) -> AuthResult:
        """Sign in and load the profile. Disabled students are signed out again."""
        try:
            try:
                identity = await self._provider.sign_in(email, password)
            except IdentityProviderError as e:
                raise _classify_provider_error(e) from e

            profile = await self._store.get(USERS, identity.uid)
            if profile is None:
                raise DataIntegrityError("User data not found")

            role = parse_role(profile.get("userType"))
            if role is Role.STUDENT and profile.get("status") == AccountStatus.INACTIVE.value:
                self._adopt(None, None)
                await self._sign_out_quietly()
                raise AccountDisabledError(
                    "Your account has been disabled. Contact your personal trainer."
                )

            self._adopt(identity, role)
            logger.info("User logged in", extra={"uid": identity.uid, "role": role})
            return AuthResult.ok(identity, role)

        except Exception as e:
            logger.warning("Login failed", extra={"error": str(e)})
            return AuthResult.failed(e)

    async def logout(self) -> AuthResult:
        """
        Clear the session and resynchronize with the provider.

        Always reports success: the local session is gone either way.
        """
        uid = self._identity.uid if self._identity else None
        self._adopt(None, None)
        try:
            await self._provider.sign_out()
            await asyncio.sleep(self._logout_settle)
            await self.reinitialize()
        except Exception as e:
            logger.warning("Sign-out did not complete cleanly", extra={"uid": uid, "error": str(e)})

        logger.info("User logged out", extra={"uid": uid})
        return AuthResult.ok()

    async def _sign_out_quietly(self) -> None:
        try:
            await self._provider.sign_out()
        except Exception as e:
            logger.warning("Sign-out failed", extra={"error": str(e)})

    # -- Getters --------------------------------------------------------------

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def current_role(self) -> Optional[Role]:
        return self._role

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    @property
    def is_personal(self) -> bool:
        return self._role is Role.PERSONAL

    @property
    def is_student(self) -> bool:
        return self._role is Role.STUDENT

    @property
    def is_initialized(self) -> bool:
        return self._phase is SessionPhase.READY

    @property
    def state(self) -> SessionState:
        return SessionState(identity=self._identity, role=self._role, phase=self._phase)

    @property
    def reconciliation(self) -> ReconciliationLog:
        return self._reconciliation

    # -- Helpers --------------------------------------------------------------

    def _check_password(self, password: str) -> None:
        if len(password) < self._min_password_length:
            raise ValidationError(
                f"Password must be at least {self._min_password_length} characters"
            )

    def _require_personal(self, message: str) -> Identity:
        if self._identity is None:
            raise AuthorizationError("Not authenticated")
        if self._role is not Role.PERSONAL:
            raise AuthorizationError(message)
        return self._identity

    async def _create_account(self, email: str, password: str) -> Identity:
        try:
            return await self._provider.create_account(email, password)
        except IdentityProviderError as e:
            raise _classify_provider_error(e) from e
