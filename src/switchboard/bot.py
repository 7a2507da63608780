"""Discord bot process for Switchboard.

Owns the gateway connection and the single ``Dispatcher`` that every
agent registers through. Agents are started from ``setup_hook`` so their
listeners are attached before any gateway event arrives.
"""

from __future__ import annotations

import asyncio
import signal
from typing import Iterable

import discord
from discord.ext import commands

from switchboard.agents import start_agents
from switchboard.config import Config
from switchboard.dispatch import Dispatcher
from switchboard.llm import ModelClient
from switchboard.logging import get_logger

log = get_logger("bot")


class SwitchboardBot(commands.Bot):
    """Discord bot hosting the agents.

    Attributes:
        config: Application configuration.
        dispatcher: The process-wide event dispatcher.
        llm: Model client shared by the agents.
        started_agents: Names of the agents started in ``setup_hook``.
    """

    def __init__(
        self,
        config: Config,
        selection: Iterable[str] | None = None,
        dispatcher: Dispatcher | None = None,
    ) -> None:
        """Initialize the bot with the intents the agents need.

        Args:
            config: Application configuration.
            selection: Agent names to start. Defaults to those enabled in config.
            dispatcher: Dispatcher to register through. A new one is created
                when omitted.
        """
        intents = discord.Intents.default()
        intents.message_content = True  # Read message text
        intents.reactions = True
        intents.guild_messages = True

        # commands.Bot requires a command_prefix even though no commands
        # exist. A mention prefix never collides with agent triggers like !ping.
        super().__init__(command_prefix=commands.when_mentioned, intents=intents)
        self.config = config
        self.selection = list(selection) if selection is not None else None
        self.dispatcher = dispatcher or Dispatcher(config.dispatch)
        self.llm = ModelClient(config)
        self.started_agents: list[str] = []
        self._shutdown_requested = False

    async def setup_hook(self) -> None:
        """Start the selected agents before the gateway connects."""
        self.started_agents = start_agents(
            self.dispatcher,
            self,
            self.config.agents,
            self.llm,
            self.selection,
        )

    async def on_message(self, message: discord.Message) -> None:
        """Messages reach agents through the dispatcher listener only.

        The inherited handler would run prefix command processing, and
        with no commands registered every match ends in CommandNotFound.
        """

    async def on_ready(self) -> None:
        """Called when connected to Discord."""
        log.info(
            "discord_ready",
            user=str(self.user),
            guilds=len(self.guilds),
            agents=self.started_agents,
        )

    async def on_disconnect(self) -> None:
        """discord.py reconnects automatically; this only logs."""
        log.warning("discord_disconnected")

    async def on_resumed(self) -> None:
        log.info("discord_resumed")

    async def graceful_shutdown(self) -> None:
        """Release the model client and close the gateway connection."""
        if self._shutdown_requested:
            return
        log.info("shutdown_initiated")
        self._shutdown_requested = True

        await self.llm.close()
        await self.close()
        await asyncio.sleep(0)  # Allow pending aiohttp callbacks to finalize
        log.info("shutdown_complete")


def setup_signal_handlers(bot: SwitchboardBot, loop: asyncio.AbstractEventLoop) -> None:
    """Setup graceful shutdown handlers for SIGINT and SIGTERM.

    Args:
        bot: The bot to shut down.
        loop: The event loop to add signal handlers to.
    """

    def handle_signal(sig: signal.Signals) -> None:
        log.info("signal_received", signal=sig.name)
        loop.create_task(bot.graceful_shutdown())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))

    log.debug("signal_handlers_registered", signals=["SIGINT", "SIGTERM"])


async def run_bot(bot: SwitchboardBot, token: str) -> None:
    """Run the bot until shutdown.

    Args:
        bot: The bot to run.
        token: Discord bot token.
    """
    loop = asyncio.get_running_loop()
    setup_signal_handlers(bot, loop)

    try:
        log.info("bot_starting")
        await bot.start(token)
    except asyncio.CancelledError:
        log.debug("bot_cancelled")
    finally:
        if not bot.is_closed():
            await bot.close()
