from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from nailbliss_api.core.settings import settings
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.backend import SupabaseBackend
from .services.redemption import LoyaltyBackend, StationRegistry
from .services.tokens import QRRenderer, TokenCodec, build_renderer


APP_VERSION = "0.1.0"


def install_services(
    app: FastAPI,
    *,
    backend: LoyaltyBackend | None = None,
    codec: TokenCodec | None = None,
    renderer: QRRenderer | None = None,
) -> None:
    """Attach the backend gateway, token codec, renderer and station registry to ``app.state``."""

    backend = backend or SupabaseBackend.from_settings()
    codec = codec or TokenCodec.from_settings()
    renderer = renderer or build_renderer()

    app.state.backend = backend
    app.state.codec = codec
    app.state.renderer = renderer
    app.state.stations = StationRegistry(backend=backend, codec=codec)
    app.state.qr_countdown_step_seconds = settings.qr_countdown_step_seconds


@asynccontextmanager
async def lifespan(app: FastAPI):
    backend = app.state.backend
    if not getattr(backend, "is_configured", True):
        logger.warning(
            "Hosted backend not configured",
            reason="SUPABASE_URL or SUPABASE_ANON_KEY is empty",
        )
    logger.info(
        "QR token protocol ready",
        freshness_window_ms=app.state.codec.freshness_window_ms,
        signed=app.state.codec.is_signed,
        renderer=type(app.state.renderer).__name__,
    )

    try:
        yield
    finally:
        app.state.stations.close_all()
        aclose = getattr(backend, "aclose", None)
        if aclose is not None:
            await aclose()


def create_app(
    *,
    backend: LoyaltyBackend | None = None,
    codec: TokenCodec | None = None,
    renderer: QRRenderer | None = None,
) -> FastAPI:
    """Application factory for the NailBliss loyalty API."""
    configure_logging(
        service_name="nailbliss-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="NailBliss Loyalty API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    install_services(app, backend=backend, codec=codec, renderer=renderer)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    configure_tracing(
        app,
        service_name="nailbliss-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
