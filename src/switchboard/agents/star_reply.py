"""Star reply agent: answers a starred message with a model-written quip."""

from __future__ import annotations

from discord.ext import commands

from switchboard.config import AgentsConfig
from switchboard.dispatch import STAR_EMOJI, Dispatcher, ReactionContext
from switchboard.llm import ModelClient
from switchboard.logging import get_logger
from switchboard.registry import ReactionSubscription

log = get_logger("agents.star_reply")

PROMPT_TEMPLATE = """Reply to a user on Discord with a short, funny message.
Write only the message itself.

message: {content}
user: {user}
reaction: {reaction}
channel: {channel}"""

# Discord message length limit
MAX_REPLY_LENGTH = 2000


class StarReply:
    """Reaction action that replies to starred messages."""

    def __init__(self, llm: ModelClient, model_profile: str = "simple") -> None:
        self.llm = llm
        self.model_profile = model_profile

    async def __call__(self, context: ReactionContext) -> None:
        message = context.message
        if message.guild is None:
            return

        log.info(
            "star_reply_triggered",
            emoji_key=context.emoji_key,
            message_id=str(message.id),
        )

        prompt = PROMPT_TEMPLATE.format(
            content=message.content,
            user=context.user.mention,
            reaction=context.reaction.emoji,
            channel=getattr(context.channel, "mention", "DM"),
        )
        result = await self.llm.complete(prompt, model_profile=self.model_profile)

        text = result.text.strip()
        if not text:
            log.warning("star_reply_empty", message_id=str(message.id))
            return

        await context.channel.send(text[:MAX_REPLY_LENGTH])
        log.info("star_reply_sent", tokens=result.usage.total_tokens)


def start_star_reply_agent(
    dispatcher: Dispatcher,
    client: commands.Bot,
    llm: ModelClient,
    config: AgentsConfig,
) -> None:
    """Register the star reply, replacing the default star acknowledgement."""
    dispatcher.register_reaction_subscriptions(
        client,
        [
            ReactionSubscription(
                emoji=STAR_EMOJI, action=StarReply(llm, config.model_profile)
            )
        ],
    )
    log.info("agent_started", agent="star-reply")
