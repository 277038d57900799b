"""
Navigation endpoints.

POST asks the router to go somewhere (the equivalent of a location
change) and returns what ends up on display, after guards and redirects.
GET returns the display as it is.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from ...core.navigation import Router
from ..dependencies import RouterDep

logger = logging.getLogger(__name__)

router = APIRouter()


class NavigateRequest(BaseModel):
    path: str = Field(description="Path or location fragment, e.g. '/personal/dashboard' or '#/login'")


class DisplayResponse(BaseModel):
    location: str
    current_path: Optional[str] = None
    content: str
    params: dict[str, str] = {}
    data: dict[str, Any] = {}
    error: Optional[str] = None
    redirected_to: Optional[str] = None


def _display(nav: Router, redirected_to: Optional[str] = None) -> DisplayResponse:
    return DisplayResponse(
        **nav.display.snapshot(),
        current_path=nav.current_path,
        redirected_to=redirected_to,
    )


@router.post(
    "",
    response_model=DisplayResponse,
    status_code=status.HTTP_200_OK,
    summary="Navigate",
)
async def navigate(request: NavigateRequest, nav: RouterDep) -> DisplayResponse:
    logger.info("Navigation requested", extra={"path": request.path})
    nav.last_redirect = None
    await nav.handle_location_change(request.path)
    if nav.display.error:
        logger.warning(
            "Page failed to load",
            extra={"path": request.path, "error": nav.display.error}
        )
    return _display(nav, nav.last_redirect)


@router.get(
    "",
    response_model=DisplayResponse,
    status_code=status.HTTP_200_OK,
    summary="Current display",
)
async def current_display(nav: RouterDep) -> DisplayResponse:
    return _display(nav)
