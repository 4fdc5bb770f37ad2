"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from plyglot.chat.gateway import CompletionGateway
from plyglot.chat.history import SessionHistoryStore
from plyglot.chat.providers import LLMRouter
from plyglot.chat.usage import UsageAccumulator
from plyglot.gateway.connection_router import ConnectionRouter
from plyglot.shared.config import VERSION, Settings, settings
from plyglot.shared.exception_handlers import (
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from plyglot.shared.logging_config import LogCategory, log_extra, setup_logging
from plyglot.shared.middleware import PrometheusMiddleware
from plyglot.shared.schemas import HealthResponse

from .routes import chat, metrics, stats

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    app_settings: Settings = app.state.settings
    setup_logging(app_settings.LOG_LEVEL, color=app_settings.LOG_COLOR)
    logger.info(f"{app_settings.APP_NAME} server started", extra=log_extra(LogCategory.SERVER))
    logger.info(
        f"Available languages: {', '.join(app_settings.SUPPORTED_LANGUAGES)}",
        extra=log_extra(LogCategory.SERVER),
    )
    logger.info(
        f"Models: translation={app_settings.TRANSLATION_MODEL}, "
        f"conversation={app_settings.CONVERSATION_MODEL}",
        extra=log_extra(LogCategory.SERVER),
    )
    yield
    logger.info("Server shutting down", extra=log_extra(LogCategory.SERVER))


def create_app(app_settings: Settings = settings, llm_router: LLMRouter | None = None) -> FastAPI:
    """Build the application and wire the chat services together."""
    app = FastAPI(
        title=f"{app_settings.APP_NAME} API",
        version=VERSION,
        description="Realtime translation and conversation relay",
        lifespan=lifespan,
    )

    usage = UsageAccumulator()
    history = SessionHistoryStore(max_history_length=app_settings.MAX_HISTORY_LENGTH)
    gateway = CompletionGateway(llm_router or LLMRouter(app_settings), usage, app_settings)
    app.state.settings = app_settings
    app.state.usage = usage
    app.state.history = history
    app.state.completion_gateway = gateway
    app.state.connection_router = ConnectionRouter(history, gateway, usage)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.add_middleware(PrometheusMiddleware)

    app.include_router(chat.router, tags=["chat"])
    app.include_router(stats.router, prefix="/api", tags=["stats"])
    app.include_router(metrics.router, tags=["metrics"])

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            version=VERSION,
            timestamp=datetime.now(timezone.utc),
        )

    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn."""
    import uvicorn

    uvicorn.run(
        "plyglot.gateway.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
