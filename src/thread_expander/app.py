"""FastAPI application with lifespan and health endpoint.

The lifespan owns the ExpanderService: it starts the Socket Mode connection
and worker pool on startup and drains them on shutdown. The HTTP surface only
exists for container liveness checks.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from thread_expander import __version__
from thread_expander.config import get_settings
from thread_expander.logging_config import configure_logging
from thread_expander.service import ExpanderService


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: configure logging, start the expander, drain it on exit."""
    settings = get_settings()
    configure_logging(settings.log_level)
    service = ExpanderService(settings)
    try:
        await service.start()
    except BaseException:
        await service.stop()
        raise
    app.state.service = service
    try:
        yield
    finally:
        await service.stop()


app = FastAPI(
    title="Thread Expander",
    lifespan=lifespan,
)


@app.get("/health")
async def health(request: Request):
    """Health check endpoint for Cloud Run and local development."""
    body = {
        "status": "ok",
        "service": "thread-expander",
        "version": __version__,
    }
    service: ExpanderService | None = getattr(request.app.state, "service", None)
    if service is not None:
        body["expander"] = service.stats()
    return body
