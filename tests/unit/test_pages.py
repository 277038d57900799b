"""
Unit tests for page loading and the controller registry.
"""

import pytest

from src.core.navigation import Display, PageControllerRegistry, PageLoader, RouteTable

pytestmark = pytest.mark.anyio


class StaticSource:
    """Page source returning a fixed template, or failing with `error`."""

    def __init__(self, error: Exception = None) -> None:
        self.error = error
        self.requested: list[str] = []

    async def fetch_page(self, resource: str, cache_bust: bool = True) -> str:
        self.requested.append(resource)
        if self.error is not None:
            raise self.error
        return f"<main>{resource}</main>"


def make_loader(source, registry=None, routes=None) -> PageLoader:
    return PageLoader(
        routes or RouteTable(),
        source,
        Display(),
        registry,
        clear_settle_seconds=0,
        mount_settle_seconds=0,
        initializer_pause_seconds=0,
    )


class TestPageLoader:

    async def test_mounts_page_and_syncs_location(self):
        loader = make_loader(StaticSource())

        shown = await loader.load("signup")

        assert shown == "/signup"
        assert loader.display.content == "<main>pages/signup.html</main>"
        assert loader.display.location == "/signup"

    async def test_fetch_bypasses_cache(self, pages):
        loader = make_loader(pages)

        await loader.load("/login")

        assert pages.fetches == [("pages/login.html", True)]

    async def test_unmatched_path_loads_login(self):
        source = StaticSource()
        loader = make_loader(source)

        shown = await loader.load("/missing/page")

        assert shown == "/login"
        assert source.requested == ["pages/login.html"]

    async def test_unmatched_login_path_shows_error(self):
        routes = RouteTable(routes={"/": "pages/home.html"}, protected={}, public=("/",))
        loader = make_loader(StaticSource(), routes=routes)

        assert await loader.load("/elsewhere") is None
        assert loader.display.error

    async def test_fetch_failure_renders_escaped_error_panel(self):
        loader = make_loader(StaticSource(error=RuntimeError("<b>down</b>")))

        assert await loader.load("/login") is None
        assert loader.display.error == "<b>down</b>"
        assert "&lt;b&gt;down&lt;/b&gt;" in loader.display.content
        assert 'data-action="reload"' in loader.display.content


class TestControllers:

    async def test_controllers_run_in_order_after_mount(self):
        registry = PageControllerRegistry()
        calls = []

        @registry.register("pages/signup.html")
        async def first(ctx):
            calls.append(("first", ctx.display.content))

        @registry.register("pages/signup.html")
        def second(ctx):
            calls.append(("second", ctx.path))

        await make_loader(StaticSource(), registry).load("/signup")

        assert calls == [
            ("first", "<main>pages/signup.html</main>"),
            ("second", "/signup"),
        ]

    async def test_failing_controller_does_not_stop_later_ones(self):
        registry = PageControllerRegistry()
        calls = []

        async def broken(ctx):
            raise RuntimeError("controller bug")

        registry.register("pages/login.html", broken)
        registry.register("pages/login.html", lambda ctx: calls.append("ran"))

        shown = await make_loader(StaticSource(), registry).load("/login")

        assert shown == "/login"
        assert calls == ["ran"]

    async def test_route_params_reach_controllers(self):
        registry = PageControllerRegistry()
        seen = {}
        registry.register(
            "pages/personal/volume-analysis.html",
            lambda ctx: seen.update(ctx.params),
        )

        loader = make_loader(StaticSource(), registry)
        await loader.load("/personal/volume/s1")

        assert seen == {"id": "s1"}
        assert loader.display.route_params == {"id": "s1"}

    def test_registry_membership(self):
        registry = PageControllerRegistry()
        registry.register("pages/a.html", lambda ctx: None)

        assert "pages/a.html" in registry
        assert "pages/b.html" not in registry
        assert registry.initializers_for("pages/b.html") == []
