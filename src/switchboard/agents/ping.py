"""Ping test agent: answers ``!ping`` in guild channels."""

from __future__ import annotations

import discord
from discord.ext import commands

from switchboard.dispatch import Dispatcher, MessageContext
from switchboard.logging import get_logger
from switchboard.registry import MessageSubscription

log = get_logger("agents.ping")

SUBSCRIPTION_ID = "ping-test"


def is_ping(message: discord.Message) -> bool:
    """True for a ``!ping`` from someone other than the bot, in a guild."""
    bot_user = message.guild.me if message.guild is not None else None
    return (
        message.guild is not None
        and (bot_user is None or message.author.id != bot_user.id)
        and message.content.strip().lower() == "!ping"
    )


async def reply_pong(context: MessageContext) -> None:
    message = context.message
    log.info(
        "ping_received",
        user_id=str(message.author.id),
        channel_id=str(message.channel.id),
        message_id=str(message.id),
    )
    await message.reply(
        "pong! 🏓",
        allowed_mentions=discord.AllowedMentions(replied_user=False),
    )


def start_ping_test_agent(dispatcher: Dispatcher, client: commands.Bot) -> None:
    """Register the ping test subscription."""
    dispatcher.register_message_subscriptions(
        client,
        [MessageSubscription(id=SUBSCRIPTION_ID, filter=is_ping, action=reply_pong)],
    )
    log.info("agent_started", agent="ping-test")
