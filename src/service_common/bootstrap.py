"""One-call wiring of the shared service scaffolding.

    settings = Settings()
    swagger = SwaggerSettings()
    engine = create_engine(settings)

    app = FastAPI(lifespan=lifespan, **docs_kwargs(swagger))
    install_commons(
        app,
        settings=settings,
        swagger_settings=swagger,
        session_factory=create_session_factory(engine),
        tracer=HeaderTracer(),
    )

Each ``enable_*`` function can also be called on its own.
"""

from pathlib import Path

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from service_common.config import Settings, SwaggerSettings
from service_common.handlers import register_error_handlers
from service_common.logging import LoggingSettings, configure_logging, get_logger
from service_common.messages import MessageSource
from service_common.middleware import TraceMiddleware
from service_common.openapi import configure_openapi
from service_common.sql_logging import enable_sql_logging
from service_common.tracing import Tracer

__all__ = [
    "enable_error_handler",
    "enable_logging",
    "enable_sql_logging",
    "enable_swagger",
    "enable_tracing",
    "install_commons",
]

logger = get_logger(__name__)


def enable_logging(settings: LoggingSettings | None = None) -> None:
    configure_logging(settings or LoggingSettings())


def enable_error_handler(app: FastAPI, messages: MessageSource | None = None) -> None:
    register_error_handlers(app, messages)


def enable_tracing(app: FastAPI, tracer: Tracer | None = None) -> None:
    """Add the trace middleware. Call after every other ``add_middleware`` so it runs outermost."""
    app.add_middleware(TraceMiddleware, tracer=tracer)


def enable_swagger(app: FastAPI, settings: SwaggerSettings | None = None) -> None:
    """Customize the OpenAPI document.

    Disabling docs happens at construction time: ``FastAPI(**docs_kwargs(settings))``.
    """
    settings = settings or SwaggerSettings()
    if settings.enabled:
        configure_openapi(app, settings)


def install_commons(
    app: FastAPI,
    *,
    settings: Settings | None = None,
    logging_settings: LoggingSettings | None = None,
    swagger_settings: SwaggerSettings | None = None,
    messages: MessageSource | None = None,
    messages_dir: str | Path | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    tracer: Tracer | None = None,
    configure_logs: bool = True,
) -> None:
    """Logging, error handlers, OpenAPI, database sessions, then tracing (outermost).

    ``messages`` wins over ``messages_dir``; without either, messages resolve
    to their keys.
    """
    settings = settings or Settings()
    if configure_logs:
        enable_logging(logging_settings)

    if messages is None:
        messages = (
            MessageSource.from_directory(messages_dir, settings.default_locale)
            if messages_dir is not None
            else MessageSource(default_locale=settings.default_locale)
        )
    enable_error_handler(app, messages)
    enable_swagger(app, swagger_settings)

    if session_factory is not None:
        app.state.session_factory = session_factory

    enable_tracing(app, tracer)
    logger.info("commons_installed", profiles=settings.profiles, traced=tracer is not None)
