"""
FastAPI dependency injection.

The app shell holds one session, so services are built once per
application (not per request) and kept on ``app.state.services``.
Dependencies hand them to route handlers, which means tests can build
their own ServiceContainer from the in-memory mocks and pass it to
create_app().
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status

from ..config.settings import Settings, get_settings
from ..core.navigation import (
    Display,
    PageControllerRegistry,
    PageLoader,
    Router,
    RouteTable,
    build_default_registry,
)
from ..core.session import (
    AccountDisabledError,
    AuthenticationError,
    AuthError,
    AuthManager,
    AuthorizationError,
    ConflictError,
    DataIntegrityError,
    NotFoundError,
    ValidationError,
)
from ..core.training import TrainingRepository
from ..infrastructure.identity import IdentityConfig, create_identity_provider
from ..infrastructure.snowflake.client import SnowflakeConfig
from ..infrastructure.snowflake.documents import create_document_store
from ..infrastructure.storage.client import StorageConfig, create_storage_client

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Service container
# ---------------------------------------------------------------------------

@dataclass
class ServiceContainer:
    """Everything one app shell instance runs on."""
    identity: object
    store: object
    pages: object
    auth: AuthManager
    training: TrainingRepository
    routes: RouteTable
    display: Display
    loader: PageLoader
    router: Router

    async def start(self) -> None:
        """Resolve the initial session and show the first page."""
        await self.store.ensure_schema()
        await self.auth.initialize()
        await self.router.init()

    async def stop(self) -> None:
        self.auth.close()
        aclose = getattr(self.identity, "aclose", None)
        if aclose is not None:
            await aclose()


def build_services(
    settings: Settings,
    *,
    identity=None,
    store=None,
    pages=None,
    registry: Optional[PageControllerRegistry] = None,
    routes: Optional[RouteTable] = None,
) -> ServiceContainer:
    """
    Wire the services from settings.

    Any collaborator passed in is used as is; the rest come from the
    factories, honoring the mock-mode flags.
    """
    routes = routes or RouteTable()

    if identity is None:
        identity_config = None
        if not settings.identity_mock_mode:
            identity_config = IdentityConfig(
                api_key=settings.identity_api_key,
                base_url=settings.identity_base_url,
            )
        identity = create_identity_provider(identity_config, mock_mode=settings.identity_mock_mode)

    if store is None:
        snowflake_config = None
        if not settings.snowflake_mock_mode:
            snowflake_config = SnowflakeConfig(
                account=settings.snowflake_account,
                user=settings.snowflake_user,
                password=settings.snowflake_password or None,
                private_key_path=settings.snowflake_private_key_path,
                database=settings.snowflake_database,
                schema=settings.snowflake_schema,
                warehouse=settings.snowflake_warehouse,
                role=settings.snowflake_role,
            )
        store = create_document_store(
            snowflake_config,
            mock_mode=settings.snowflake_mock_mode,
            table=settings.snowflake_documents_table,
        )

    if pages is None:
        storage_config = None
        if not settings.r2_mock_mode:
            storage_config = StorageConfig(
                access_key_id=settings.r2_access_key_id,
                secret_access_key=settings.r2_secret_access_key,
                bucket_name=settings.r2_bucket_name,
                endpoint_url=settings.r2_endpoint,
                prefix=settings.pages_prefix,
            )
        pages = create_storage_client(
            storage_config,
            mock_mode=settings.r2_mock_mode,
            seed_resources=set(routes.routes.values()),
        )

    auth = AuthManager(
        identity,
        store,
        min_password_length=settings.min_password_length,
        reinitialize_settle_seconds=settings.reinitialize_settle_seconds,
        logout_settle_seconds=settings.logout_settle_seconds,
    )
    training = TrainingRepository(store, auth)
    display = Display()
    loader = PageLoader(
        routes,
        pages,
        display,
        registry or build_default_registry(),
        auth=auth,
        training=training,
        clear_settle_seconds=settings.page_clear_settle_seconds,
        mount_settle_seconds=settings.page_mount_settle_seconds,
        initializer_pause_seconds=settings.page_initializer_pause_seconds,
    )
    router = Router(auth, loader, auth_ready_timeout_seconds=settings.auth_ready_timeout_seconds)

    logger.info(
        "Built services",
        extra={"mock_mode": settings.mock_modes}
    )

    return ServiceContainer(
        identity=identity,
        store=store,
        pages=pages,
        auth=auth,
        training=training,
        routes=routes,
        display=display,
        loader=loader,
        router=router,
    )


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_auth_manager(services: Annotated[ServiceContainer, Depends(get_services)]) -> AuthManager:
    return services.auth


def get_router(services: Annotated[ServiceContainer, Depends(get_services)]) -> Router:
    return services.router


def require_personal(auth: Annotated[AuthManager, Depends(get_auth_manager)]) -> AuthManager:
    """Reject requests unless a personal trainer is signed in."""
    if not auth.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in",
        )
    if not auth.is_personal:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only personal trainers can manage students",
        )
    return auth


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

ERROR_STATUS: list[tuple[type, int]] = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (AccountDisabledError, status.HTTP_403_FORBIDDEN),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (DataIntegrityError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(failure: Optional[AuthError]) -> int:
    """HTTP status for a failed AuthResult; 400 when the cause is unclassified."""
    for error_type, code in ERROR_STATUS:
        if isinstance(failure, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

ServicesDep = Annotated[ServiceContainer, Depends(get_services)]
AuthManagerDep = Annotated[AuthManager, Depends(get_auth_manager)]
PersonalAuthDep = Annotated[AuthManager, Depends(require_personal)]
RouterDep = Annotated[Router, Depends(get_router)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
