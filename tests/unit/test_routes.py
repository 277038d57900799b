"""
Unit tests for the route table and path matching.

Pure functions and lookups only; no event loop needed.
"""

import pytest

from src.core.navigation.routes import (
    DEFAULT_ROUTES,
    RouteTable,
    match_pattern,
    normalize_path,
)
from src.core.session import Role


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

class TestNormalizePath:
    """Paths always carry a leading separator."""

    def test_empty_and_none_become_root(self):
        assert normalize_path("") == "/"
        assert normalize_path(None) == "/"

    def test_missing_separator_is_added(self):
        assert normalize_path("login") == "/login"

    def test_existing_separator_is_kept(self):
        assert normalize_path("/personal/dashboard") == "/personal/dashboard"


class TestMatchPattern:
    """Parameterized pattern matching by segments."""

    def test_extracts_named_parameter(self):
        assert match_pattern("/personal/student/:id", "/personal/student/abc") == {"id": "abc"}

    def test_segment_count_must_agree(self):
        assert match_pattern("/personal/student/:id", "/personal/student/abc/extra") is None
        assert match_pattern("/personal/student/:id", "/personal/student") is None

    def test_literal_segments_must_match(self):
        assert match_pattern("/personal/student/:id", "/personal/volume/abc") is None

    def test_literal_pattern_matches_itself_without_params(self):
        assert match_pattern("/login", "/login") == {}


# ---------------------------------------------------------------------------
# RouteTable
# ---------------------------------------------------------------------------

class TestRouteTable:
    """Route resolution and role requirements over the default table."""

    def test_exact_match(self):
        table = RouteTable()
        matched = table.match("/personal/dashboard")

        assert matched.route == "/personal/dashboard"
        assert matched.resource == "pages/personal/dashboard.html"
        assert matched.params == {}

    def test_parameterized_match(self):
        table = RouteTable()
        matched = table.match("/personal/volume/s-42")

        assert matched.route == "/personal/volume/:id"
        assert matched.resource == "pages/personal/volume-analysis.html"
        assert matched.params == {"id": "s-42"}

    def test_unknown_path_has_no_match(self):
        assert RouteTable().match("/nope") is None
        assert RouteTable().resource_for("/nope") is None

    def test_exact_match_wins_over_pattern(self):
        table = RouteTable(routes={
            "/items/:id": "pages/item.html",
            "/items/new": "pages/new-item.html",
        }, protected={}, public=())

        assert table.match("/items/new").resource == "pages/new-item.html"
        assert table.match("/items/7").resource == "pages/item.html"

    def test_first_pattern_in_insertion_order_wins(self):
        table = RouteTable(routes={
            "/a/:x": "pages/first.html",
            "/a/:y": "pages/second.html",
        }, protected={}, public=())

        matched = table.match("/a/1")
        assert matched.resource == "pages/first.html"
        assert matched.params == {"x": "1"}

    def test_required_role_for_literal_and_parameterized_paths(self):
        table = RouteTable()

        assert table.required_role("/personal/exercises") is Role.PERSONAL
        assert table.required_role("/student/view-workout") is Role.STUDENT
        assert table.required_role("/personal/student/abc") is Role.PERSONAL

    def test_public_paths_require_no_role(self):
        table = RouteTable()

        for path in ("/", "/login", "/signup", "/primeiro-acesso"):
            assert table.required_role(path) is None
            assert table.is_public(path)

    def test_protected_pages_are_not_public(self):
        assert not RouteTable().is_public("/personal/dashboard")

    def test_protected_pattern_missing_from_routes_is_rejected(self):
        with pytest.raises(ValueError, match="missing from route table"):
            RouteTable(routes={"/login": "pages/login.html"}, protected={"/admin": Role.PERSONAL})

    def test_every_protected_pattern_is_routed_by_default(self):
        table = RouteTable()
        assert set(table.protected) <= set(DEFAULT_ROUTES)


class TestCanonicalDashboard:
    """Where each role lands."""

    def test_trainer_lands_on_personal_dashboard(self):
        assert RouteTable.canonical_dashboard(Role.PERSONAL) == "/personal/dashboard"

    def test_student_lands_on_student_dashboard(self):
        assert RouteTable.canonical_dashboard(Role.STUDENT) == "/student/dashboard"

    def test_unknown_role_lands_on_student_dashboard(self):
        assert RouteTable.canonical_dashboard(None) == "/student/dashboard"
