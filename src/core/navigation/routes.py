"""
Route table and path matching.

Patterns are literal paths or paths with named parameter segments
(``/personal/student/:id``). A parameterized pattern matches a path with
the same number of segments whose literal segments are equal. Exact
matches win; otherwise the first matching pattern in insertion order does.
"""

from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..session.models import Role

LOGIN_PATH = "/login"

DEFAULT_ROUTES: dict[str, str] = {
    "/": "pages/login.html",
    "/login": "pages/login.html",
    "/signup": "pages/signup.html",
    "/primeiro-acesso": "pages/primeiro-acesso.html",
    "/personal/dashboard": "pages/personal/dashboard.html",
    "/personal/exercises": "pages/personal/exercises.html",
    "/personal/create-workout": "pages/personal/create-workout.html",
    "/personal/student/:id": "pages/personal/student-details.html",
    "/personal/feedbacks": "pages/personal/feedbacks.html",
    "/student/dashboard": "pages/student/dashboard.html",
    "/student/view-workout": "pages/student/view-workout.html",
    "/personal/volume/:id": "pages/personal/volume-analysis.html",
}

DEFAULT_PROTECTED: dict[str, Role] = {
    "/personal/dashboard": Role.PERSONAL,
    "/personal/exercises": Role.PERSONAL,
    "/personal/create-workout": Role.PERSONAL,
    "/personal/student/:id": Role.PERSONAL,
    "/personal/feedbacks": Role.PERSONAL,
    "/student/dashboard": Role.STUDENT,
    "/personal/volume/:id": Role.PERSONAL,
    "/student/view-workout": Role.STUDENT,
}

# Reachable without a session. /primeiro-acesso is where a student
# activates an account, so there is no identity yet.
DEFAULT_PUBLIC: tuple[str, ...] = ("/login", "/signup", "/", "/primeiro-acesso")

DASHBOARDS: dict[Role, str] = {
    Role.PERSONAL: "/personal/dashboard",
    Role.STUDENT: "/student/dashboard",
}


@dataclass(frozen=True)
class RouteMatch:
    """A path resolved against a pattern."""
    route: str
    resource: str
    params: dict[str, str] = field(default_factory=dict)


def normalize_path(path: Optional[str]) -> str:
    """Ensure a leading separator; empty paths become the root."""
    if not path:
        return "/"
    return path if path.startswith("/") else "/" + path


def match_pattern(pattern: str, path: str) -> Optional[dict[str, str]]:
    """
    Match `path` against a parameterized `pattern`.

    Returns the extracted parameters, or None when the segment counts
    differ or a literal segment doesn't match.
    """
    pattern_parts = pattern.split("/")
    path_parts = path.split("/")
    if len(pattern_parts) != len(path_parts):
        return None

    params: dict[str, str] = {}
    for expected, actual in zip(pattern_parts, path_parts):
        if expected.startswith(":"):
            params[expected[1:]] = actual
        elif expected != actual:
            return None
    return params


class RouteTable:
    """Static mapping of path patterns to page resources and required roles."""

    def __init__(
        self,
        routes: Optional[Mapping[str, str]] = None,
        protected: Optional[Mapping[str, Role]] = None,
        public: Optional[tuple[str, ...]] = None,
        login_path: str = LOGIN_PATH,
    ) -> None:
        self._routes = dict(DEFAULT_ROUTES if routes is None else routes)
        self._protected = dict(DEFAULT_PROTECTED if protected is None else protected)
        self._public = tuple(DEFAULT_PUBLIC if public is None else public)
        self.login_path = login_path

        missing = [pattern for pattern in self._protected if pattern not in self._routes]
        if missing:
            raise ValueError(f"Protected patterns missing from route table: {missing}")

    @property
    def routes(self) -> dict[str, str]:
        return dict(self._routes)

    @property
    def protected(self) -> dict[str, Role]:
        return dict(self._protected)

    def match(self, path: str) -> Optional[RouteMatch]:
        if path in self._routes:
            return RouteMatch(route=path, resource=self._routes[path])

        for pattern, resource in self._routes.items():
            if ":" not in pattern:
                continue
            params = match_pattern(pattern, path)
            if params is not None:
                return RouteMatch(route=pattern, resource=resource, params=params)

        return None

    def required_role(self, path: str) -> Optional[Role]:
        """Role a path requires, or None for public paths."""
        if path in self._protected:
            return self._protected[path]

        for pattern, role in self._protected.items():
            if ":" not in pattern:
                continue
            if match_pattern(pattern, path) is not None:
                return role

        return None

    def is_public(self, path: str) -> bool:
        return path in self._public

    def resource_for(self, path: str) -> Optional[str]:
        matched = self.match(path)
        return matched.resource if matched else None

    @staticmethod
    def canonical_dashboard(role: Optional[Role]) -> str:
        """Landing path for a role; anything but a trainer lands on the student side."""
        if role is Role.PERSONAL:
            return DASHBOARDS[Role.PERSONAL]
        return DASHBOARDS[Role.STUDENT]
