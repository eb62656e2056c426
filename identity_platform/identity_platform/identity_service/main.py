from contextlib import asynccontextmanager
from typing import Optional
import functools
import logging
import os
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .auth import PasswordHasher, TokenIssuer
from .config import Settings
from .db import build_engine, build_session_factory, init_db
from .errors import register_error_handlers
from .middleware import register_request_logging
from .routes import auth as auth_routes, files as file_routes, health as health_routes, users as user_routes
from .utils.file_storage import FileStorage, LocalFileStorage
from .utils.mailer import NotificationSink, build_notification_sink

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    handlers = [logging.StreamHandler(sys.stdout)]

    # File logging is optional; keep going on a read-only filesystem
    try:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(settings.LOG_DIR, "identity_service.log")))
    except OSError as e:
        print(f"WARNING: Could not set up file logging: {e}", file=sys.stderr)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )


def create_app(
    settings: Optional[Settings] = None,
    notification_sink: Optional[NotificationSink] = None,
    file_storage: Optional[FileStorage] = None,
) -> FastAPI:
    """
    Build the application and its long-lived collaborators.

    Settings are validated here, once. Tests pass their own settings and a
    recording notification sink.
    """
    settings = settings or Settings()
    configure_logging(settings)

    engine = build_engine(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        init_db(engine)
        logger.info("Identity service started: environment=%s email_backend=%s", settings.ENVIRONMENT, settings.EMAIL_BACKEND)
        yield
        engine.dispose()

    app = FastAPI(
        title="Identity Service",
        description="Registration, sign-in, email verification and password reset",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.hasher = PasswordHasher()
    app.state.token_issuer = TokenIssuer.from_settings(settings)
    app.state.notification_sink = notification_sink or build_notification_sink(settings)
    storage = file_storage or LocalFileStorage(settings.UPLOAD_DIRECTORY, settings.MAX_FILE_SIZE)
    app.state.file_storage = storage

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )
    register_request_logging(app)
    register_error_handlers(app)

    app.include_router(auth_routes.router)
    app.include_router(user_routes.router)
    app.include_router(file_routes.router)
    app.include_router(health_routes.router)

    upload_dir = getattr(storage, "upload_dir", settings.UPLOAD_DIRECTORY)
    app.mount("/uploads", StaticFiles(directory=str(upload_dir), check_dir=False), name="uploads")

    return app


@functools.lru_cache(maxsize=None)
def get_app() -> FastAPI:
    """The process-wide app, built from the environment on first use."""
    return create_app()


def __getattr__(name: str):
    # Resolves `main:app` for uvicorn
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
