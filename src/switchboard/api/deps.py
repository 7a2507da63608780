"""FastAPI dependency injection for the Switchboard API."""

import discord
from fastapi import Request


def get_client(request: Request) -> discord.Client | None:
    """Get the Discord client from app state, if one is attached."""
    return getattr(request.app.state, "client", None)
