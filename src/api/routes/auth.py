"""
Session endpoints: signup, login, logout, student first access.

Every endpoint delegates to the AuthManager. Failures come back as an
AuthResult and are turned into an HTTP error with the translated
message; a successful sign-in moves the app shell to the user's
dashboard, a sign-out back to the login page.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.session import AuthManager, AuthResult, Role
from ..dependencies import AuthManagerDep, RouterDep, status_for

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class SignupRequest(BaseModel):
    """Trainer signup."""
    email: str = Field(description="E-mail address used to sign in")
    password: str = Field(description="Password, at least 6 characters")
    name: str = Field(description="Display name")


class LoginRequest(BaseModel):
    email: str
    password: str


class PendingCheckRequest(BaseModel):
    email: str = Field(description="E-mail the trainer registered the student with")


class ActivateRequest(BaseModel):
    """Student first access: choose a password for a pre-registered account."""
    email: str
    password: str
    student_doc_id: str = Field(
        alias="studentDocId",
        description="Id of the pending record, from the pending-check response",
    )

    model_config = {"populate_by_name": True}


class SessionResponse(BaseModel):
    """Current session as the app shell sees it."""
    authenticated: bool
    uid: Optional[str] = None
    email: Optional[str] = None
    role: Optional[Role] = None
    initialized: bool
    location: Optional[str] = Field(None, description="Location after the operation")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _session(auth: AuthManager, location: Optional[str] = None) -> SessionResponse:
    identity = auth.current_identity
    return SessionResponse(
        authenticated=identity is not None,
        uid=identity.uid if identity else None,
        email=identity.email if identity else None,
        role=auth.current_role,
        initialized=auth.is_initialized,
        location=location,
    )


def _raise_for(result: AuthResult, operation: str) -> None:
    if not result.success:
        logger.warning(
            "Session operation failed",
            extra={"operation": operation, "error": result.error}
        )
        raise HTTPException(status_code=status_for(result.failure), detail=result.error)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/signup",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a trainer account",
)
async def signup(request: SignupRequest, auth: AuthManagerDep, nav: RouterDep) -> SessionResponse:
    result = await auth.signup_personal(request.email, request.password, request.name)
    _raise_for(result, "signup")
    logger.info("Trainer signed up", extra={"uid": result.identity.uid})

    await nav.navigate(nav.routes.canonical_dashboard(result.role))
    return _session(auth, nav.current_path)


@router.post(
    "/login",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Sign in",
    responses={
        401: {"description": "Wrong credentials"},
        403: {"description": "Account disabled by the trainer"},
    },
)
async def login(request: LoginRequest, auth: AuthManagerDep, nav: RouterDep) -> SessionResponse:
    result = await auth.login(request.email, request.password)
    _raise_for(result, "login")
    logger.info("Signed in", extra={"uid": result.identity.uid, "role": result.role})

    await nav.navigate(nav.routes.canonical_dashboard(result.role))
    return _session(auth, nav.current_path)


@router.post(
    "/logout",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Sign out",
)
async def logout(auth: AuthManagerDep, nav: RouterDep) -> SessionResponse:
    await auth.logout()
    await nav.go_to_login()
    return _session(auth, nav.current_path)


@router.get(
    "/session",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Current session",
)
async def get_session(auth: AuthManagerDep, nav: RouterDep) -> SessionResponse:
    return _session(auth, nav.current_path)


@router.post(
    "/pending-check",
    status_code=status.HTTP_200_OK,
    summary="Look up a student account waiting for activation",
    description="Public: reads only the activation index and the referenced pending record.",
)
async def pending_check(request: PendingCheckRequest, auth: AuthManagerDep) -> dict[str, Any]:
    check = await auth.check_pending_student(request.email)
    return check.as_dict()


@router.post(
    "/activate",
    response_model=SessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Activate a pre-registered student account",
)
async def activate(request: ActivateRequest, auth: AuthManagerDep, nav: RouterDep) -> SessionResponse:
    result = await auth.activate_student_account(
        request.email, request.password, request.student_doc_id
    )
    _raise_for(result, "activate")
    logger.info("Student activated", extra={"uid": result.identity.uid})

    await nav.go_to_student_dashboard()
    return _session(auth, nav.current_path)
