import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from alquila.core.config import Settings, validate_settings
from alquila.core.database import create_engine, create_session_factory
from alquila.core.errors import register_exception_handlers
from alquila.routers import health, properties, property_images
from alquila.services.image_storage import ImageStorage, LocalImageStorage
from alquila.services.properties_repository import PropertiesRepository
from alquila.services.sql_properties_repository import SqlPropertiesRepository

logger = logging.getLogger(__name__)


# ─── Security headers middleware ───────────────────────────────────────────────
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, environment: str):
        super().__init__(app)
        self.environment = environment

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        if self.environment != "development":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def create_app(
    settings: Settings | None = None,
    *,
    repository: PropertiesRepository | None = None,
    image_storage: ImageStorage | None = None,
) -> FastAPI:
    settings = settings or Settings()

    logging.basicConfig(
        level=getattr(logging, settings.api_log_level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    validate_settings(settings)

    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting alquila API (%s)", settings.environment)
        yield
        await engine.dispose()

    app = FastAPI(
        title="Alquila API",
        version="0.1.0",
        docs_url="/docs" if settings.environment == "development" else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.properties_repository = repository or SqlPropertiesRepository(
        session_factory, retry_backoff_seconds=settings.db_retry_backoff_seconds
    )
    app.state.image_storage = image_storage or LocalImageStorage(settings.content_root)

    register_exception_handlers(app)
    app.add_middleware(SecurityHeadersMiddleware, environment=settings.environment)

    # ─── CORS ──────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
    )

    # ─── Routers ──────────────────────────────────
    app.include_router(health.router)
    # Unversioned paths stay for existing clients; only /api/v1 is documented
    for prefix in ("", "/api/v1"):
        documented = bool(prefix)
        app.include_router(properties.router, prefix=prefix, include_in_schema=documented)
        app.include_router(property_images.router, prefix=prefix, include_in_schema=documented)

    # Files land below <content_root>/uploads and are addressed by their public_url
    app.mount("/uploads", StaticFiles(directory=settings.uploads_dir, check_dir=False), name="uploads")

    return app


app = create_app()
