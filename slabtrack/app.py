import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from slabtrack.application import (
    configure_client_state_repository,
    get_board_service,
    get_client_state_service,
    get_session_service,
)
from slabtrack.core.logging import RequestLoggingMiddleware, configure_logging
from slabtrack.core.settings import Settings, load_settings
from slabtrack.core.validation import AccessDeniedError, NotFoundError, SessionTransitionError, ValidationError
from slabtrack.domain import WorkKind
from slabtrack.infrastructure import (
    FabGateway,
    FileClientStateRepository,
    GatewayError,
    HttpFabGateway,
    InMemoryClientStateRepository,
    InMemoryFabGateway,
    configure_fab_gateway,
)
from slabtrack.routes import boards, fabs, preferences, sessions, upload

logger = logging.getLogger(__name__)


def _load_seed(gateway: InMemoryFabGateway, path: Path) -> None:
    """Load ``{"fabs": [...], "assignments": [...]}`` into the in-memory gateway."""
    with path.open("r", encoding="utf-8") as fp:
        data = json.load(fp)
    if isinstance(data, list):
        data = {"fabs": data}
    gateway.seed(data.get("fabs") or [])
    for item in data.get("assignments") or []:
        gateway.assign(int(item["fab_id"]), WorkKind(item.get("kind", "drafting")), int(item["drafter_id"]))
    logger.info("seeded %s fabs from %s", len(data.get("fabs") or []), path)


def _install_gateway(settings: Settings) -> FabGateway:
    if settings.api_base_url:
        gateway = HttpFabGateway(
            settings.api_base_url,
            token=settings.api_token,
            token_provider=get_client_state_service().token,
            timeout=settings.api_timeout,
        )
        configure_fab_gateway(gateway)
        return gateway

    memory = InMemoryFabGateway()
    if settings.seed_file and settings.seed_file.exists():
        _load_seed(memory, settings.seed_file)
    configure_fab_gateway(memory)
    return memory


def _register_exception_handlers(app: FastAPI) -> None:
    async def transition_error(request: Request, exc: SessionTransitionError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc), "status": exc.status, "action": exc.action})

    async def validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    async def access_denied(request: Request, exc: AccessDeniedError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": str(exc)})

    async def gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
        return JSONResponse(
            status_code=502,
            content={"detail": str(exc), "upstream_status": exc.status_code},
        )

    app.add_exception_handler(SessionTransitionError, transition_error)
    app.add_exception_handler(ValidationError, validation_error)
    app.add_exception_handler(NotFoundError, not_found)
    app.add_exception_handler(AccessDeniedError, access_denied)
    app.add_exception_handler(GatewayError, gateway_error)


def create_app() -> FastAPI:
    settings = load_settings()
    configure_logging(settings.log_level)

    if settings.state_root:
        configure_client_state_repository(FileClientStateRepository(settings.state_root))
    else:
        configure_client_state_repository(InMemoryClientStateRepository())

    gateway = _install_gateway(settings)
    get_session_service().configure(tick_seconds=settings.tick_seconds)
    get_board_service().configure(timezone=settings.timezone)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if isinstance(gateway, HttpFabGateway):
            gateway.close()
            logger.info("upstream client closed")

    app = FastAPI(title="SlabTrack Workflow API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    _register_exception_handlers(app)

    app.include_router(boards.router, prefix="/api")
    app.include_router(fabs.router, prefix="/api")
    app.include_router(sessions.router, prefix="/api")
    app.include_router(upload.router, prefix="/api")
    app.include_router(preferences.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "SlabTrack Workflow API",
                "docs": "/docs",
                "health": "/api/stages",
            }
        )

    return app


app = create_app()
