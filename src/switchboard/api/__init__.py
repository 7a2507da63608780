"""FastAPI application for the Switchboard health endpoint."""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI

from switchboard import __version__
from switchboard.api.health import router as health_router

if TYPE_CHECKING:
    import discord

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log application startup and shutdown."""
    log.info("api_starting")
    yield
    log.info("api_stopping")


def create_app(client: "discord.Client | None" = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        client: The Discord client whose connection state is reported.

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="Switchboard",
        description="Health check for the Switchboard Discord agent host.",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.client = client
    app.include_router(health_router)
    return app
