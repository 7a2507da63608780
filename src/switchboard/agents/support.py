"""Support redirect agent.

Reacting to a message with the ``tech_support`` emoji moves the
conversation into a new thread in the support forum, pulls the support
team in, and leaves a pointer in the original channel.
"""

from __future__ import annotations

import re

import discord
from discord.ext import commands

from switchboard.config import AgentsConfig
from switchboard.dispatch import Dispatcher, ReactionContext
from switchboard.logging import get_logger
from switchboard.registry import ReactionSubscription

log = get_logger("agents.support")

SUPPORT_EMOJI = "tech_support"

SUPPORT_THREAD_FOLLOW_UP = (
    "beep boop, I've moved this conversation here so the support team can get "
    "back to you sooner.\n \nCould you please share your debugging info if you "
    "have not already? https://docs.composio.dev/docs/resources/debugging-info"
)

THREAD_NAME_MAX_LENGTH = 90
THREAD_NAME_WORDS = 6

_NON_WORD = re.compile(r"[^\w\s-]+")


def build_thread_name(message: discord.Message) -> str:
    """Name a support thread after the first few words of the message."""
    words = message.content.split()[:THREAD_NAME_WORDS]
    sanitized = _NON_WORD.sub("", " ".join(words)).strip()
    base = sanitized or f"{message.author.name}-support"
    return base[:THREAD_NAME_MAX_LENGTH]


def build_initial_post(message: discord.Message, source_channel_mention: str) -> str:
    """Build the opening post of a support thread."""
    original_content = message.content.strip() or "_No message content provided._"
    if message.attachments:
        original_content += "\n" + "\n".join(a.url for a in message.attachments)

    return "\n".join(
        [
            f"support request from {message.author.mention} in {source_channel_mention}",
            "```",
            original_content,
            "```",
            f"original message link: {message.jump_url}",
            "",
            "---",
            "",
            SUPPORT_THREAD_FOLLOW_UP,
        ]
    )


def unique_user_ids(*ids: int | str | None) -> list[int]:
    """De-duplicate user ids, dropping blanks and preserving order."""
    unique: list[int] = []
    for value in ids:
        if value is None:
            continue
        text = str(value).strip()
        if not text:
            continue
        user_id = int(text)
        if user_id not in unique:
            unique.append(user_id)
    return unique


async def find_forum_channel(
    guild: discord.Guild, channel_id: str
) -> discord.ForumChannel | None:
    """Look the forum up in the guild cache, then through the API."""
    channel = guild.get_channel(int(channel_id))
    if channel is None:
        try:
            channel = await guild.fetch_channel(int(channel_id))
        except discord.HTTPException as e:
            log.error(
                "support_forum_fetch_failed",
                channel_id=channel_id,
                error=str(e),
            )
            return None

    if not isinstance(channel, discord.ForumChannel):
        return None
    return channel


class SupportRedirect:
    """Reaction action that opens support threads."""

    def __init__(self, config: AgentsConfig) -> None:
        self.forum_channel_id = config.support_forum_channel_id
        self.team_user_ids = list(config.support_team_user_ids)

    async def __call__(self, context: ReactionContext) -> None:
        message = context.message
        channel = context.channel
        guild = message.guild

        log.info("support_redirect_triggered", message_id=str(message.id))

        if guild is None:
            return

        if not self.forum_channel_id:
            log.warning("support_forum_not_configured")
            return

        if context.reaction.count > 1:
            return

        if isinstance(channel, discord.Thread):
            return

        forum = await find_forum_channel(guild, self.forum_channel_id)
        if forum is None:
            log.warning(
                "support_forum_unavailable",
                channel_id=self.forum_channel_id,
            )
            return

        mentioned = [
            discord.Object(id=user_id)
            for user_id in unique_user_ids(message.author.id, context.user.id)
        ]
        applied_tags = forum.available_tags[:1]

        try:
            created = await forum.create_thread(
                name=build_thread_name(message),
                content=build_initial_post(message, channel.mention),
                applied_tags=applied_tags,
                allowed_mentions=discord.AllowedMentions(users=mentioned),
            )
        except discord.HTTPException as e:
            log.error("support_thread_create_failed", error=str(e))
            return

        thread = created.thread

        for user_id in self.team_user_ids:
            try:
                await thread.add_user(discord.Object(id=int(user_id)))
            except discord.HTTPException as e:
                log.error(
                    "support_thread_add_user_failed",
                    user_id=user_id,
                    error=str(e),
                )

        await channel.send(
            f"{message.author.mention}, i've moved this conversation to "
            f"{thread.mention} so the support team can jump in.",
            allowed_mentions=discord.AllowedMentions(users=[message.author]),
        )

        log.info("support_thread_created", thread_url=thread.jump_url)


def start_support_redirect_agent(
    dispatcher: Dispatcher, client: commands.Bot, config: AgentsConfig
) -> None:
    """Register the support redirect reaction."""
    dispatcher.register_reaction_subscriptions(
        client,
        [ReactionSubscription(emoji=SUPPORT_EMOJI, action=SupportRedirect(config))],
    )
    log.info("agent_started", agent="support-redirect")
