"""
Navigation state machine.

The Router guards paths by role and serializes page transitions. Every
navigation request goes through a FIFO queue that is drained by whoever
finds the router idle; while one navigation runs, new requests only
queue. Navigations therefore execute one at a time, in arrival order, and
page-loading side effects never interleave.

There is no lock: the queue plus the busy flag is a cooperative
run-to-completion loop on the event loop.
"""

import logging
from collections import deque
from typing import Optional

from ..session.auth import AuthManager
from .pages import PageLoader
from .routes import RouteTable, normalize_path

logger = logging.getLogger(__name__)


class Router:
    """
    Role-aware navigation over a RouteTable.

    Redirects move the location indicator and queue the target, the same
    way a location-change event would.
    """

    def __init__(
        self,
        auth: AuthManager,
        loader: PageLoader,
        *,
        auth_ready_timeout_seconds: float = 10.0,
    ) -> None:
        self._auth = auth
        self._loader = loader
        self._routes: RouteTable = loader.routes
        self._auth_ready_timeout = auth_ready_timeout_seconds

        self.current_path: Optional[str] = None
        self.is_navigating = False
        self.auth_ready = False
        self.is_ready = False
        self.last_redirect: Optional[str] = None
        # Paths whose page was actually loaded, in order.
        self.history: list[str] = []

        self._queue: deque[str] = deque()
        self._in_flight: Optional[str] = None

    @property
    def routes(self) -> RouteTable:
        return self._routes

    @property
    def display(self):
        return self._loader.display

    @property
    def pending(self) -> list[str]:
        """Queued paths, head first."""
        return list(self._queue)

    # -- Readiness ------------------------------------------------------------

    async def wait_for_auth(self) -> None:
        """
        Wait until the session has produced its first definitive state.

        After the timeout navigation proceeds anyway, treating the session
        as it currently stands: an unknown session beats a hung UI.
        """
        if self._auth.is_initialized:
            self.auth_ready = True
            return

        logger.debug("Waiting for session initialization")
        ready = await self._auth.wait_until_ready(self._auth_ready_timeout)
        if not ready:
            logger.warning(
                "Timed out waiting for session, proceeding anyway",
                extra={"timeout_seconds": self._auth_ready_timeout},
            )
        self.auth_ready = True

    async def init(self) -> None:
        """Wait for the session, then navigate to the current location."""
        await self.wait_for_auth()
        self.is_ready = True
        initial = self.display.location or "/"
        logger.info("Router ready", extra={"initial_path": initial})
        await self.navigate(initial)

    async def handle_location_change(self, location: str) -> None:
        """Location-change event (hash change, history pop)."""
        if not self.auth_ready:
            return
        await self.navigate(location.lstrip("#"))

    # -- Navigation -----------------------------------------------------------

    async def navigate(self, path: Optional[str] = "/") -> None:
        """
        Request navigation to `path`.

        Repeated triggers for the path already being processed are dropped,
        and a request equal to the queue's tail collapses onto it. When a
        navigation is already running the request just waits in the queue;
        otherwise this call drains the queue itself.
        """
        path = normalize_path(path)

        if self.is_navigating and self._in_flight == path:
            logger.debug("Already navigating to path", extra={"path": path})
            return

        self._enqueue(path)

        if self.is_navigating:
            logger.debug("Navigation in progress, queued", extra={"path": path})
            return

        while self._queue:
            await self._navigate(self._queue.popleft())

    def _enqueue(self, path: str) -> None:
        if not self._queue or self._queue[-1] != path:
            self._queue.append(path)

    async def _navigate(self, path: str) -> None:
        self.is_navigating = True
        self._in_flight = path

        try:
            logger.info("Navigating", extra={"path": path})

            if not self.auth_ready:
                await self.wait_for_auth()

            required_role = self._routes.required_role(path)
            is_authenticated = self._auth.is_authenticated
            role = self._auth.current_role

            logger.debug(
                "Navigation state",
                extra={
                    "path": path,
                    "required_role": required_role,
                    "is_authenticated": is_authenticated,
                    "role": role,
                },
            )

            if required_role is not None:
                if not is_authenticated:
                    logger.info("Not authenticated, redirecting to login", extra={"path": path})
                    self._redirect(self._routes.login_path)
                    return

                if role is not required_role:
                    dashboard = self._routes.canonical_dashboard(role)
                    if path != dashboard:
                        logger.info(
                            "Role does not match route, redirecting",
                            extra={"path": path, "redirect": dashboard},
                        )
                        self._redirect(dashboard)
                        return

            # A session whose role is still unknown may be in the middle of
            # signup or activation; the public page has to stay reachable.
            if self._routes.is_public(path) and is_authenticated and role is not None:
                dashboard = self._routes.canonical_dashboard(role)
                if path != dashboard:
                    logger.info(
                        "Already signed in, redirecting to dashboard",
                        extra={"path": path, "redirect": dashboard},
                    )
                    self._redirect(dashboard)
                    return

            if self.current_path != path:
                shown = await self._loader.load(path)
                if shown is not None:
                    self.current_path = shown
                    self.history.append(shown)

        except Exception as e:
            logger.error("Navigation failed", extra={"path": path, "error": str(e)})
        finally:
            self.is_navigating = False
            self._in_flight = None

    def _redirect(self, target: str) -> None:
        self.last_redirect = target
        self.display.location = target
        self._enqueue(target)

    # -- Shortcuts ------------------------------------------------------------

    async def go_to(self, path: str) -> None:
        await self.navigate(path)

    async def go_to_login(self) -> None:
        await self.navigate("/login")

    async def go_to_signup(self) -> None:
        await self.navigate("/signup")

    async def go_to_personal_dashboard(self) -> None:
        await self.navigate("/personal/dashboard")

    async def go_to_student_dashboard(self) -> None:
        await self.navigate("/student/dashboard")

    async def go_to_create_workout(self) -> None:
        await self.navigate("/personal/create-workout")

    async def go_to_exercises(self) -> None:
        await self.navigate("/personal/exercises")

    async def go_to_view_workout(self) -> None:
        await self.navigate("/student/view-workout")

    async def go_to_student_details(self, student_id: str) -> None:
        await self.navigate(f"/personal/student/{student_id}")

    async def go_to_volume_analysis(self, student_id: str) -> None:
        await self.navigate(f"/personal/volume/{student_id}")
