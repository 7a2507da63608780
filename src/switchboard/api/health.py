"""Health check endpoint.

The process is healthy while it runs. The Discord field reports whether
the gateway connection is currently ready.
"""

from datetime import datetime, timezone

import discord
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from switchboard import __version__
from switchboard.api.deps import get_client

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    timestamp: datetime
    discord: str


@router.get("/health", response_model=HealthResponse)
async def health_check(
    client: discord.Client | None = Depends(get_client),
) -> HealthResponse:
    """Report process and gateway status."""
    if client is None:
        discord_status = "detached"
    elif client.is_ready() and not client.is_closed():
        discord_status = "connected"
    else:
        discord_status = "connecting"

    return HealthResponse(
        status="ok",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        discord=discord_status,
    )
