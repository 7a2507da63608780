"""Moderation agent for #general channels.

Every message in a channel whose name contains ``general`` is shown to
the model, which answers with a JSON decision. The agent then carries
the decision out itself: greet newcomers, point support questions at
the support forum, move introductions, or remove spam.
"""

from __future__ import annotations

import json
import re
from datetime import timedelta
from typing import Literal

import discord
from discord.ext import commands
from pydantic import BaseModel, ValidationError

from switchboard.config import AgentsConfig
from switchboard.dispatch import Dispatcher, MessageContext
from switchboard.llm import ModelClient
from switchboard.logging import get_logger
from switchboard.registry import MessageSubscription

log = get_logger("agents.moderation")

SUBSCRIPTION_ID = "moderation-general"

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}

SPAM_TIMEOUT = timedelta(hours=1)
SPAM_PURGE_LIMIT = 100

SYSTEM_PROMPT = """you are a discord bot that helps moderate the discord #general channel. you operate in the background, so you decide on your own what to do with each message without being asked.

here is what you should do:
1. if someone joins, say hi (an empty message likely means they joined) -> "greet"
2. if someone asks a support question, point them to {support} -> "support"
3. if someone wants to introduce themselves or talk about their resume, they belong in {introduce} -> "introduce"
4. if someone outright spams, tries to @ everyone or posts crypto stuff -> "spam"
5. otherwise -> "none"

answer with a single json object and nothing else:
{{"action": "none" | "greet" | "support" | "introduce" | "spam", "reply": "<message to post, empty for none and spam>"}}

when talking to users be very friendly, conversational, quirky, all lowercase. be very much a robot. avoid emojis."""

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class ModerationDecision(BaseModel):
    """What the model wants done with a message."""

    action: Literal["none", "greet", "support", "introduce", "spam"] = "none"
    reply: str = ""


def parse_decision(text: str) -> ModerationDecision | None:
    """Pull the JSON decision out of a model response.

    Returns:
        The decision, or None if the response holds no valid decision.
    """
    match = _JSON_OBJECT.search(text)
    if match is None:
        return None
    try:
        return ModerationDecision.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, ValidationError):
        return None


def is_general_message(message: discord.Message) -> bool:
    """Guild messages from others in a channel named like #general."""
    if message.guild is None:
        return False
    if message.author.id == message.guild.me.id:
        return False
    name = getattr(message.channel, "name", None) or ""
    return "general" in name


def image_urls(message: discord.Message) -> list[str]:
    """URLs of attachments that look like images."""
    urls = []
    for attachment in message.attachments:
        path = attachment.url.split("?", 1)[0]
        extension = path.rsplit(".", 1)[-1].lower() if "." in path else ""
        if extension in IMAGE_EXTENSIONS:
            urls.append(attachment.url)
    return urls


def channel_mention(channel_id: str | None, fallback: str) -> str:
    return f"<#{channel_id}>" if channel_id else fallback


class Moderator:
    """Message action that asks the model and executes its decision."""

    def __init__(self, llm: ModelClient, config: AgentsConfig) -> None:
        self.llm = llm
        self.model_profile = config.model_profile
        self.support_channel_id = config.support_forum_channel_id
        self.introduce_channel_id = config.introduce_yourself_channel_id
        self.system_prompt = SYSTEM_PROMPT.format(
            support=channel_mention(self.support_channel_id, "the support forum"),
            introduce=channel_mention(
                self.introduce_channel_id, "the introduce-yourself channel"
            ),
        )

    async def __call__(self, context: MessageContext) -> None:
        message = context.message

        prompt = (
            f"message: {message.content}\n"
            f"user: {message.author.mention}\n"
            f"channel: {getattr(message.channel, 'mention', message.channel.id)}"
        )
        result = await self.llm.complete(
            prompt,
            model_profile=self.model_profile,
            system=self.system_prompt,
            image_urls=image_urls(message),
        )

        decision = parse_decision(result.text)
        if decision is None:
            log.warning("moderation_unparseable", message_id=str(message.id))
            return

        log.info(
            "moderation_decision",
            message_id=str(message.id),
            action=decision.action,
        )
        await self.apply(message, decision)

    async def apply(
        self, message: discord.Message, decision: ModerationDecision
    ) -> None:
        """Carry out a moderation decision."""
        if decision.action == "none":
            return

        if decision.action in ("greet", "support"):
            reply = decision.reply
            if (
                decision.action == "support"
                and self.support_channel_id
                and f"<#{self.support_channel_id}>" not in reply
            ):
                reply = f"{reply} <#{self.support_channel_id}>".strip()
            if reply:
                await message.reply(
                    reply,
                    allowed_mentions=discord.AllowedMentions(replied_user=True),
                )
            return

        if decision.action == "introduce":
            await self._move_introduction(message, decision.reply)
            return

        await self._remove_spam(message)

    async def _move_introduction(self, message: discord.Message, reply: str) -> None:
        guild = message.guild
        target = (
            guild.get_channel(int(self.introduce_channel_id))
            if guild is not None and self.introduce_channel_id
            else None
        )
        if not isinstance(target, discord.abc.Messageable):
            log.warning(
                "introduce_channel_unavailable",
                channel_id=self.introduce_channel_id,
            )
            return

        await message.delete()
        text = reply or "please introduce yourself here!"
        await target.send(
            f"{message.author.mention} {text}",
            allowed_mentions=discord.AllowedMentions(users=[message.author]),
        )

    async def _remove_spam(self, message: discord.Message) -> None:
        author = message.author
        channel = message.channel

        if isinstance(channel, discord.TextChannel):
            deleted = await channel.purge(
                limit=SPAM_PURGE_LIMIT, check=lambda m: m.author.id == author.id
            )
            log.info("spam_purged", user_id=str(author.id), deleted=len(deleted))
        else:
            await message.delete()

        if isinstance(author, discord.Member):
            try:
                await author.timeout(SPAM_TIMEOUT, reason="spam in #general")
            except discord.HTTPException as e:
                log.error("spam_timeout_failed", user_id=str(author.id), error=str(e))


def start_moderation_agent(
    dispatcher: Dispatcher,
    client: commands.Bot,
    llm: ModelClient,
    config: AgentsConfig,
) -> None:
    """Register the moderation subscription."""
    dispatcher.register_message_subscriptions(
        client,
        [
            MessageSubscription(
                id=SUBSCRIPTION_ID,
                filter=is_general_message,
                action=Moderator(llm, config),
            )
        ],
    )
    log.info("agent_started", agent="moderation")
