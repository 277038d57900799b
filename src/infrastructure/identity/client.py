"""
Identity provider clients.

Implements the IdentityProvider protocol from core.session.auth against
an identity-toolkit style REST API (email/password accounts), with a mock
mode that keeps accounts in memory for local development and tests.

Neither client pushes identity changes over the network: the provider
holds the signed-in identity locally and tells subscribers whenever it
changes, the way browser SDKs do.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import uuid4

import httpx

from src.core.session.auth import IdentityCallback
from src.core.session.errors import (
    EMAIL_IN_USE,
    INVALID_CREDENTIAL,
    INVALID_EMAIL,
    TOO_MANY_REQUESTS,
    USER_DISABLED,
    USER_NOT_FOUND,
    WEAK_PASSWORD,
    WRONG_PASSWORD,
    IdentityProviderError,
)
from src.core.session.models import Identity

logger = logging.getLogger(__name__)


@dataclass
class IdentityConfig:
    """Configuration for the identity-toolkit REST API."""
    api_key: str
    base_url: str = "https://identitytoolkit.googleapis.com/v1"
    timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValueError("API key is required")


# REST error messages -> provider codes
REST_ERROR_CODES: dict[str, str] = {
    "EMAIL_EXISTS": EMAIL_IN_USE,
    "INVALID_EMAIL": INVALID_EMAIL,
    "MISSING_EMAIL": INVALID_EMAIL,
    "WEAK_PASSWORD": WEAK_PASSWORD,
    "EMAIL_NOT_FOUND": USER_NOT_FOUND,
    "INVALID_PASSWORD": WRONG_PASSWORD,
    "MISSING_PASSWORD": WRONG_PASSWORD,
    "INVALID_LOGIN_CREDENTIALS": INVALID_CREDENTIAL,
    "TOO_MANY_ATTEMPTS_TRY_LATER": TOO_MANY_REQUESTS,
    "USER_DISABLED": USER_DISABLED,
}


# ---------------------------------------------------------------------------
# Subscription handling shared by both clients
# ---------------------------------------------------------------------------

class IdentityChangeNotifier:
    """
    Keeps the signed-in identity and delivers changes to subscribers.

    Deliveries run as tasks on the event loop, never inline, so a
    subscriber always sees the change after the call that caused it
    has returned.
    """

    def __init__(self) -> None:
        self._current: Optional[Identity] = None
        self._subscribers: list[IdentityCallback] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._current

    def subscribe(self, callback: IdentityCallback) -> Callable[[], None]:
        self._subscribers.append(callback)
        self._deliver(callback, self._current)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _set_identity(self, identity: Optional[Identity]) -> None:
        self._current = identity
        for callback in list(self._subscribers):
            self._deliver(callback, identity)

    def _deliver(self, callback: IdentityCallback, identity: Optional[Identity]) -> None:
        task = asyncio.get_running_loop().create_task(callback(identity))
        self._tasks.add(task)
        task.add_done_callback(self._delivery_done)

    def _delivery_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Identity change subscriber failed",
                extra={"error": str(task.exception())},
            )

    async def wait_idle(self) -> None:
        """Wait until every pending delivery has run."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# ---------------------------------------------------------------------------
# REST client
# ---------------------------------------------------------------------------

class HttpIdentityProvider(IdentityChangeNotifier):
    """
    Email/password accounts over the identity-toolkit REST API.

    Sign-out is local: the tokens are dropped and subscribers notified.
    Credentials are never logged.
    """

    def __init__(self, config: IdentityConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__()
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)

        logger.info("Initialized identity provider client", extra={"base_url": config.base_url})

    async def create_account(self, email: str, password: str) -> Identity:
        identity = await self._post("accounts:signUp", email, password)
        logger.info("Created identity", extra={"uid": identity.uid})
        self._set_identity(identity)
        return identity

    async def sign_in(self, email: str, password: str) -> Identity:
        identity = await self._post("accounts:signInWithPassword", email, password)
        logger.info("Signed in", extra={"uid": identity.uid})
        self._set_identity(identity)
        return identity

    async def sign_out(self) -> None:
        if self._current is not None:
            logger.info("Signed out", extra={"uid": self._current.uid})
        self._set_identity(None)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, endpoint: str, email: str, password: str) -> Identity:
        url = f"{self._config.base_url}/{endpoint}"
        try:
            response = await self._client.post(
                url,
                params={"key": self._config.api_key},
                json={"email": email, "password": password, "returnSecureToken": True},
            )
        except httpx.HTTPError as e:
            logger.error("Identity provider unreachable", extra={"endpoint": endpoint, "error": str(e)})
            raise IdentityProviderError("auth/network-request-failed", f"Network error: {e}")

        body = response.json() if response.content else {}
        if response.status_code != 200:
            raise self._error_from_body(body)

        return Identity(
            uid=body["localId"],
            email=body.get("email", email),
            id_token=body.get("idToken"),
            refresh_token=body.get("refreshToken"),
        )

    @staticmethod
    def _error_from_body(body: dict) -> IdentityProviderError:
        """
        Decode an error response.

        Messages look like ``WEAK_PASSWORD : Password should be at least
        6 characters``; the part before the colon is the code.
        """
        raw = str((body.get("error") or {}).get("message", "UNKNOWN"))
        reason = raw.split(" : ", 1)[0].strip()
        code = REST_ERROR_CODES.get(reason, f"auth/{reason.lower().replace('_', '-')}")
        logger.warning("Identity provider rejected request", extra={"code": code})
        return IdentityProviderError(code, raw)


# ---------------------------------------------------------------------------
# Mock provider for local development
# ---------------------------------------------------------------------------

@dataclass
class _MockAccount:
    uid: str
    email: str
    password: str
    disabled: bool = False


class MockIdentityProvider(IdentityChangeNotifier):
    """
    In-memory identity provider.

    Enforces the same rules the hosted provider does (unique e-mail,
    six-character passwords, disabled accounts) so flows behave the same
    locally. Test helpers let a test seed accounts or make the next call
    fail.
    """

    def __init__(self, min_password_length: int = 6) -> None:
        super().__init__()
        self._accounts: dict[str, _MockAccount] = {}
        self._min_password_length = min_password_length
        self._failures: dict[str, IdentityProviderError] = {}
        logger.info("Initialized mock identity provider (in-memory)")

    async def create_account(self, email: str, password: str) -> Identity:
        self._raise_injected("create_account")
        email = email.strip().lower()
        if "@" not in email:
            raise IdentityProviderError(INVALID_EMAIL, "Invalid email")
        if len(password) < self._min_password_length:
            raise IdentityProviderError(WEAK_PASSWORD, "Password should be at least 6 characters")
        if email in self._accounts:
            raise IdentityProviderError(EMAIL_IN_USE, "Email already in use")

        account = _MockAccount(uid=uuid4().hex, email=email, password=password)
        self._accounts[email] = account
        identity = Identity(uid=account.uid, email=email)
        self._set_identity(identity)
        return identity

    async def sign_in(self, email: str, password: str) -> Identity:
        self._raise_injected("sign_in")
        account = self._accounts.get(email.strip().lower())
        if account is None:
            raise IdentityProviderError(USER_NOT_FOUND, "User not found")
        if account.password != password:
            raise IdentityProviderError(WRONG_PASSWORD, "Wrong password")
        if account.disabled:
            raise IdentityProviderError(USER_DISABLED, "User disabled")

        identity = Identity(uid=account.uid, email=account.email)
        self._set_identity(identity)
        return identity

    async def sign_out(self) -> None:
        self._raise_injected("sign_out")
        self._set_identity(None)

    # Helper methods for testing
    def add_account(self, email: str, password: str) -> Identity:
        """Seed an account without signing in."""
        account = _MockAccount(uid=uuid4().hex, email=email.strip().lower(), password=password)
        self._accounts[account.email] = account
        return Identity(uid=account.uid, email=account.email)

    def disable_account(self, email: str) -> None:
        self._accounts[email.strip().lower()].disabled = True

    def fail_next(self, operation: str, code: str, message: str = "") -> None:
        """Make the next call to `operation` raise with `code`."""
        self._failures[operation] = IdentityProviderError(code, message or code)

    def _raise_injected(self, operation: str) -> None:
        error = self._failures.pop(operation, None)
        if error is not None:
            raise error


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_identity_provider(
    config: Optional[IdentityConfig] = None,
    mock_mode: bool = False,
) -> IdentityChangeNotifier:
    """
    Create identity provider based on configuration.

    Args:
        config: REST API configuration (required if not mock_mode)
        mock_mode: If True, return the in-memory provider

    Returns:
        IdentityProvider implementation (REST or Mock)
    """
    if mock_mode:
        return MockIdentityProvider()

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return HttpIdentityProvider(config)
