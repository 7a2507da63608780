"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest
from click.testing import CliRunner

BOT_USER_ID = 999
AUTHOR_ID = 111
REACTOR_ID = 222


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def client() -> MagicMock:
    """A connected bot client with no caches."""
    bot = MagicMock()
    bot.user = MagicMock()
    bot.user.id = BOT_USER_ID
    bot.cached_messages = []
    bot.get_user.return_value = None
    bot.get_channel.return_value = None
    bot.add_listener = MagicMock()
    return bot


@pytest.fixture
def make_channel() -> Callable[..., MagicMock]:
    """Factory for sendable guild text channels (or threads)."""

    def factory(thread: bool = False, name: str = "general") -> MagicMock:
        channel = MagicMock(spec=discord.Thread if thread else discord.TextChannel)
        channel.id = 500
        channel.name = name
        channel.mention = "<#500>"
        channel.send = AsyncMock()
        channel.fetch_message = AsyncMock()
        return channel

    return factory


@pytest.fixture
def make_user() -> Callable[..., MagicMock]:
    """Factory for users."""

    def factory(user_id: int = REACTOR_ID, bot: bool = False) -> MagicMock:
        user = MagicMock()
        user.id = user_id
        user.bot = bot
        user.name = f"user{user_id}"
        user.mention = f"<@{user_id}>"
        return user

    return factory


@pytest.fixture
def make_message(make_channel, make_user) -> Callable[..., MagicMock]:
    """Factory for guild messages."""

    def factory(
        content: str = "hello there",
        channel: Any = None,
        guild: bool = True,
        author_id: int = AUTHOR_ID,
        message_id: int = 700,
    ) -> MagicMock:
        message = MagicMock()
        message.id = message_id
        message.content = content
        message.channel = channel if channel is not None else make_channel()
        message.author = make_user(author_id)
        message.attachments = []
        message.reactions = []
        message.jump_url = f"https://discord.com/channels/1/500/{message_id}"
        message.reply = AsyncMock()
        message.delete = AsyncMock()
        if guild:
            message.guild = MagicMock()
            message.guild.me = MagicMock()
            message.guild.me.id = BOT_USER_ID
        else:
            message.guild = None
        return message

    return factory


@pytest.fixture
def make_reaction(make_message) -> Callable[..., MagicMock]:
    """Factory for reactions attached to a message."""

    def factory(
        emoji: discord.PartialEmoji | str = "⭐",
        count: int = 1,
        message: Any = None,
    ) -> MagicMock:
        reaction = MagicMock()
        reaction.emoji = emoji
        reaction.count = count
        reaction.message = message if message is not None else make_message()
        reaction.message.reactions.append(reaction)
        return reaction

    return factory
