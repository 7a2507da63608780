"""Event dispatch for reaction and message subscriptions.

One ``Dispatcher`` exists per process. Agents register subscriptions
through it, and it attaches exactly one discord.py listener per event
type no matter how many agents register.

Reaction flow:
    drop own reactions -> hydrate -> derive candidate keys -> first
    registered key wins -> check the channel can be sent to -> invoke

Message flow:
    hydrate -> invoke every subscription whose filter accepts the
    message, in registration order

Every invocation is isolated. A failing handler is logged with its
emoji key or subscription id and never reaches discord.py, so the
listeners stay attached across any number of failures.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable, Iterable

import discord
from discord.ext import commands

from switchboard.config import DispatchConfig
from switchboard.emoji import candidate_keys, emoji_parts
from switchboard.gateway import (
    MessageEvent,
    ReactionEvent,
    message_event_from_message,
    reaction_event_from_payload,
)
from switchboard.hydration import is_partial, resolve
from switchboard.logging import get_logger
from switchboard.registry import (
    MessageRegistry,
    MessageSubscription,
    ReactionAction,
    ReactionRegistry,
    ReactionSubscription,
)

log = get_logger("dispatch")

STAR_EMOJI = "⭐"


@dataclass(frozen=True)
class ReactionContext:
    """Passed to the matched reaction handler.

    ``emoji_key`` is the key that matched, which is not necessarily the
    first candidate derived from the reaction.
    """

    client: discord.Client
    emoji_key: str
    channel: discord.abc.Messageable
    message: discord.Message
    reaction: discord.Reaction
    user: discord.abc.User


@dataclass(frozen=True)
class MessageContext:
    """Passed to every message handler whose filter accepts the message."""

    client: discord.Client
    message: discord.Message


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of one handler invocation."""

    key: str
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def invoke(
    action: Callable[[Any], Any],
    context: Any,
    key: str,
    key_field: str,
) -> InvocationResult:
    """Run one handler, capturing any failure instead of raising.

    Args:
        action: Sync or async handler.
        context: Context object handed to the handler.
        key: Emoji key or subscription id the handler is registered under.
        key_field: Log field name for ``key``.

    Returns:
        The invocation result.
    """
    try:
        result = action(context)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        log.error(
            "handler_failed",
            error=str(e),
            exc_info=True,
            **{key_field: key},
        )
        return InvocationResult(key=key, error=e)
    return InvocationResult(key=key)


async def star_acknowledgement(context: ReactionContext) -> None:
    """Built-in handler: announce the first star on a guild message."""
    message = context.message
    if message.guild is None:
        return

    # Only the first star announces
    if context.reaction.count > 1:
        return

    await context.channel.send(
        f"{STAR_EMOJI} {context.user.mention} starred a message from "
        f"{message.author.mention}: {message.jump_url}",
        allowed_mentions=discord.AllowedMentions(users=[context.user]),
    )


class Dispatcher:
    """Owns the subscription registries and the platform listeners.

    Attributes:
        config: Dispatch configuration.
        reactions: Reaction actions keyed by canonical emoji key.
        messages: Message subscriptions keyed by id.
        client: The client listeners are attached to, once attached.
    """

    def __init__(self, config: DispatchConfig | None = None) -> None:
        self.config = config or DispatchConfig()
        self.reactions = ReactionRegistry()
        self.messages = MessageRegistry()
        self.client: commands.Bot | None = None
        self._reaction_listener_attached = False
        self._message_listener_attached = False
        self._reaction_bootstrapped = False

    # =========================================================================
    # Registration
    # =========================================================================

    def register_reaction_subscriptions(
        self,
        client: commands.Bot,
        subscriptions: Iterable[ReactionSubscription] = (),
    ) -> ReactionRegistry:
        """Register reaction subscriptions and attach the listener once.

        The first call also installs the built-in star acknowledgement
        when the registry is empty at that point. Subscriptions passed
        here are added afterwards, so a caller's own star handler wins.

        Args:
            client: The bot to listen on.
            subscriptions: Emoji -> action pairs to add.

        Returns:
            The reaction registry, for later add/remove/clear.
        """
        if not self._reaction_bootstrapped:
            self._reaction_bootstrapped = True
            if self.config.default_star_reply and len(self.reactions) == 0:
                self.reactions.add(STAR_EMOJI, star_acknowledgement)
                log.debug("default_star_reply_installed")

        for subscription in subscriptions:
            self.reactions.add(subscription.emoji, subscription.action)

        if not self._reaction_listener_attached:
            self._bind(client)
            client.add_listener(self.on_raw_reaction_add, "on_raw_reaction_add")
            self._reaction_listener_attached = True
            log.info("reaction_listener_attached")

        return self.reactions

    def register_message_subscriptions(
        self,
        client: commands.Bot,
        subscriptions: Iterable[MessageSubscription] = (),
    ) -> MessageRegistry:
        """Register message subscriptions and attach the listener once.

        Args:
            client: The bot to listen on.
            subscriptions: Subscriptions to add.

        Returns:
            The message registry, for later add/remove/clear.
        """
        for subscription in subscriptions:
            self.messages.add(subscription)

        if not self._message_listener_attached:
            self._bind(client)
            client.add_listener(self.on_message, "on_message")
            self._message_listener_attached = True
            log.info("message_listener_attached")

        return self.messages

    def _bind(self, client: commands.Bot) -> None:
        if self.client is None:
            self.client = client
        elif self.client is not client:
            log.warning("dispatcher_client_mismatch")

    # =========================================================================
    # Platform listeners
    # =========================================================================

    async def on_raw_reaction_add(
        self, payload: discord.RawReactionActionEvent
    ) -> None:
        """discord.py listener for reaction-add gateway events."""
        client = self.client
        if client is None:
            return
        event = reaction_event_from_payload(client, payload)
        await self.handle_reaction(client, event)

    async def on_message(self, message: discord.Message) -> None:
        """discord.py listener for message-create gateway events."""
        client = self.client
        if client is None:
            return
        await self.handle_message(client, message_event_from_message(message))

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def handle_reaction(
        self, client: discord.Client, event: ReactionEvent
    ) -> InvocationResult | None:
        """Dispatch one reaction to at most one handler.

        Args:
            client: The client the event came from.
            event: The reaction event.

        Returns:
            The handler outcome, or None if the event was dropped.
        """
        if client.user is not None and event.user_id == client.user.id:
            return None

        if is_partial(event.reaction) or is_partial(event.user):
            log.debug(
                "reaction_fetching",
                reaction_partial=is_partial(event.reaction),
                user_partial=is_partial(event.user),
            )

        try:
            reaction = await resolve(event.reaction)
            user = await resolve(event.user)
        except Exception as e:
            log.error(
                "reaction_hydration_failed",
                emoji=str(event.emoji),
                user_id=str(event.user_id),
                error=str(e),
                exc_info=True,
            )
            return None

        if self.config.ignore_other_bots and user.bot:
            log.debug("reaction_ignored_bot", user_id=str(user.id))
            return None

        matched_key: str | None = None
        action: ReactionAction | None = None
        for key in candidate_keys(*emoji_parts(reaction.emoji)):
            action = self.reactions.get(key)
            if action is not None:
                matched_key = key
                break

        if action is None or matched_key is None:
            return None

        message = reaction.message
        channel = message.channel
        if not isinstance(channel, discord.abc.Messageable):
            log.debug(
                "reaction_channel_not_sendable",
                emoji_key=matched_key,
                channel_id=str(getattr(channel, "id", None)),
            )
            return None

        context = ReactionContext(
            client=client,
            emoji_key=matched_key,
            channel=channel,
            message=message,
            reaction=reaction,
            user=user,
        )
        return await invoke(action, context, matched_key, "emoji_key")

    async def handle_message(
        self, client: discord.Client, event: MessageEvent
    ) -> list[InvocationResult]:
        """Fan a message out to every accepting subscription.

        Args:
            client: The client the event came from.
            event: The message event.

        Returns:
            One result per invoked (or failed-filter) subscription, in
            registration order.
        """
        try:
            message = await resolve(event.message)
        except Exception as e:
            log.error(
                "message_hydration_failed",
                message_id=str(event.message.id),
                error=str(e),
                exc_info=True,
            )
            return []

        context = MessageContext(client=client, message=message)
        results: list[InvocationResult] = []

        for subscription in self.messages.snapshot():
            try:
                accepted = subscription.matches(message)
            except Exception as e:
                log.error(
                    "message_filter_failed",
                    subscription_id=subscription.id,
                    error=str(e),
                    exc_info=True,
                )
                results.append(InvocationResult(key=subscription.id, error=e))
                continue

            if not accepted:
                continue

            results.append(
                await invoke(
                    subscription.action, context, subscription.id, "subscription_id"
                )
            )

        return results
