import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import load_config, require_completion
from ..services.chat import ChatService
from .routes import GENERIC_ERROR, MESSAGE_REQUIRED, error_response, router

logger = logging.getLogger(__name__)


def create_app(
    chat_service: ChatService | None = None,
    config_path: str | Path | None = None,
    cors_origins: Sequence[str] = ("*",),
) -> FastAPI:
    """Build the API app.

    Without an injected ``chat_service`` the lifespan loads configuration,
    checks the completion settings and wires the services; configuration
    errors abort startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        refresh_task: asyncio.Task | None = None
        if app.state.chat_service is None:
            config = load_config(config_path)
            require_completion(config)
            app.state.chat_service = ChatService.from_config(config)
            interval = config.cache.refresh_interval_seconds
            if interval > 0:
                refresh_task = asyncio.create_task(
                    app.state.chat_service.cache.run_periodic(interval)
                )
        yield
        if refresh_task is not None:
            refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await refresh_task

    app = FastAPI(
        title="MarginFi Agent API",
        description="Chat assistant over MarginFi bank analytics.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.chat_service = chat_service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError):
        logger.info("Invalid request to %s: %s", request.url.path, exc.errors())
        return error_response(400, MESSAGE_REQUIRED)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        return error_response(500, GENERIC_ERROR)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    from ..logging_setup import configure_logging

    configure_logging("INFO")
    config = load_config()
    uvicorn.run(
        create_app(cors_origins=config.server.cors_origins),
        host=config.server.host,
        port=config.server.port,
    )
