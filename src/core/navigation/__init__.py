"""
Client-side navigation: route table, role guards, serialized page loads.
"""

from .controllers import build_default_registry
from .pages import Display, PageContext, PageControllerRegistry, PageLoader, PageSource
from .router import Router
from .routes import RouteMatch, RouteTable, match_pattern, normalize_path

__all__ = [
    "build_default_registry",
    "Display",
    "PageContext",
    "PageControllerRegistry",
    "PageLoader",
    "PageSource",
    "Router",
    "RouteMatch",
    "RouteTable",
    "match_pattern",
    "normalize_path",
]
