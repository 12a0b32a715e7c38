"""Application factory and top-level wiring for the OpenProject bridge.

Configuration is validated first; a missing ``SESSION_SECRET`` stops the
process here rather than at the first login. Then come logging, the local
user table, middleware, routers and the error handlers that turn domain
exceptions into the JSON error envelope.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import Settings, get_settings
from .core.errors import (
    OpenProjectError,
    OpenProjectNotConfigured,
    configuration_exception_handler,
    http_exception_handler,
    openproject_exception_handler,
    validation_exception_handler,
)
from .core.logging import configure_logging
from .db.migrate import run_migrations
from .db.session import Base, get_engine
from .middlewares import RequestIdMiddleware

# Importing the models registers them with the metadata used by create_all.
from .models import user as _user  # noqa: F401
from .routers import api_auth, api_openproject, api_users


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title=settings.APP_NAME)

    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    run_migrations(engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS or ["*"],
        allow_credentials=bool(settings.CORS_ORIGINS),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    app.mount("/avatars", StaticFiles(directory=str(settings.avatar_dir)), name="avatars")

    app.include_router(api_auth.router)
    app.include_router(api_openproject.router)
    app.include_router(api_users.router)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(OpenProjectError, openproject_exception_handler)
    app.add_exception_handler(OpenProjectNotConfigured, configuration_exception_handler)

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "OK", "message": "Server is running"}

    Instrumentator().instrument(app).expose(app, include_in_schema=False)
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app on ``HOST``/``PORT``."""

    import uvicorn

    settings = get_settings()
    uvicorn.run("opbridge.main:app", host=settings.HOST, port=settings.PORT, log_config=None)
