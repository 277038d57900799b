"""
Page loading: fetch a page resource, mount it, run its controllers.

Pages are templates fetched from a PageSource (object storage in
production). The behavior that belongs to a page is not shipped inside
the template; each page resource maps to controller functions registered
in a PageControllerRegistry, which run after the content is mounted.
"""

import asyncio
import html
import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Protocol, Union

from .routes import RouteTable, normalize_path

if TYPE_CHECKING:
    from ..session.auth import AuthManager
    from ..training.repository import TrainingRepository

logger = logging.getLogger(__name__)


ERROR_PANEL_TEMPLATE = """<div class="page-error" role="alert">
  <h2>Could not load page</h2>
  <p>{message}</p>
  <button type="button" data-action="reload">Reload</button>
</div>"""


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class PageSource(Protocol):
    """Where page templates come from."""

    async def fetch_page(self, resource: str, cache_bust: bool = True) -> str:
        """Return the page template. `cache_bust` bypasses any cache."""
        ...


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------

@dataclass
class Display:
    """
    The display container plus the visible location indicator.

    `data` holds whatever the page controllers loaded for the page.
    """
    location: str = "/"
    content: str = ""
    route_params: dict[str, str] = field(default_factory=dict)
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def clear(self) -> None:
        self.content = ""
        self.data = {}
        self.error = None

    def mount(self, content: str) -> None:
        self.content = content

    def show_error(self, message: str) -> None:
        """Replace the content with a recoverable error panel."""
        self.error = message
        self.content = ERROR_PANEL_TEMPLATE.format(message=html.escape(message))

    def snapshot(self) -> dict[str, Any]:
        return {
            "location": self.location,
            "content": self.content,
            "params": dict(self.route_params),
            "data": dict(self.data),
            "error": self.error,
        }


# ---------------------------------------------------------------------------
# Controllers
# ---------------------------------------------------------------------------

@dataclass
class PageContext:
    """What a page controller gets to work with."""
    path: str
    route: str
    params: dict[str, str]
    display: Display
    auth: Optional["AuthManager"] = None
    training: Optional["TrainingRepository"] = None


PageController = Callable[[PageContext], Union[None, Awaitable[None]]]


class PageControllerRegistry:
    """Maps page resources to the controllers that initialize them."""

    def __init__(self) -> None:
        self._controllers: dict[str, list[PageController]] = {}

    def register(self, resource: str, controller: Optional[PageController] = None):
        """
        Register a controller for a page resource.

        Works as a plain call or as a decorator:

            @registry.register("pages/personal/dashboard.html")
            async def load_students(ctx): ...
        """
        def decorator(func: PageController) -> PageController:
            self._controllers.setdefault(resource, []).append(func)
            return func

        if controller is not None:
            return decorator(controller)
        return decorator

    def initializers_for(self, resource: str) -> list[PageController]:
        return list(self._controllers.get(resource, []))

    def __contains__(self, resource: str) -> bool:
        return resource in self._controllers


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

class PageLoader:
    """
    Resolves a path to a page resource and brings it on screen.

    Never raises: a failed fetch renders the error panel in place so the
    application keeps running.
    """

    def __init__(
        self,
        routes: RouteTable,
        source: PageSource,
        display: Display,
        registry: Optional[PageControllerRegistry] = None,
        *,
        auth: Optional["AuthManager"] = None,
        training: Optional["TrainingRepository"] = None,
        clear_settle_seconds: float = 0.05,
        mount_settle_seconds: float = 0.1,
        initializer_pause_seconds: float = 0.01,
    ) -> None:
        self.routes = routes
        self.display = display
        self._source = source
        self._registry = registry or PageControllerRegistry()
        self._auth = auth
        self._training = training
        self._clear_settle = clear_settle_seconds
        self._mount_settle = mount_settle_seconds
        self._initializer_pause = initializer_pause_seconds

    async def load(self, path: str) -> Optional[str]:
        """
        Load the page for `path`.

        Returns the path now on display (the login path when nothing
        matched), or None when the page could not be loaded.
        """
        path = normalize_path(path)
        matched = self.routes.match(path)
        if matched is None:
            logger.info("No route for path, showing login", extra={"path": path})
            if path == self.routes.login_path:
                self.display.show_error(f"No route for {path}")
                return None
            return await self.load(self.routes.login_path)

        self.display.route_params = dict(matched.params)

        try:
            logger.debug("Loading page", extra={"path": path, "resource": matched.resource})
            content = await self._source.fetch_page(matched.resource, cache_bust=True)

            self.display.clear()
            await asyncio.sleep(self._clear_settle)
            self.display.mount(content)
            await asyncio.sleep(self._mount_settle)

            context = PageContext(
                path=path,
                route=matched.route,
                params=dict(matched.params),
                display=self.display,
                auth=self._auth,
                training=self._training,
            )
            await self._run_controllers(matched.resource, context)

            if self.display.location != path:
                self.display.location = path

            logger.info("Page loaded", extra={"path": path, "resource": matched.resource})
            return path

        except Exception as e:
            logger.error(
                "Failed to load page",
                extra={"path": path, "resource": matched.resource, "error": str(e)},
            )
            self.display.show_error(str(e))
            return None

    async def _run_controllers(self, resource: str, context: PageContext) -> None:
        """Run controllers in registration order; one failing doesn't stop the rest."""
        for controller in self._registry.initializers_for(resource):
            try:
                result = controller(context)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Page controller failed",
                    extra={
                        "resource": resource,
                        "controller": getattr(controller, "__qualname__", repr(controller)),
                    },
                )
            await asyncio.sleep(self._initializer_pause)
