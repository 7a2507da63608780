"""Translation of discord.py gateway events into dispatchable events.

Raw reaction events only carry ids. Whatever the client already has in
its caches is wrapped as ``Full``; everything else becomes a ``Stub``
whose fetch goes through the Discord API.
"""

from __future__ import annotations

from dataclasses import dataclass

import discord

from switchboard.hydration import Full, HydrationError, Lazy, Stub


@dataclass(frozen=True)
class ReactionEvent:
    """A reaction was added to a message."""

    user_id: int
    emoji: discord.PartialEmoji
    reaction: Lazy[discord.Reaction]
    user: Lazy[discord.abc.User]


@dataclass(frozen=True)
class MessageEvent:
    """A message was created."""

    message: Lazy[discord.Message]


def find_reaction(
    message: discord.Message, emoji: discord.PartialEmoji
) -> discord.Reaction | None:
    """Find the reaction for ``emoji`` on ``message``.

    Custom emoji compare by id, unicode emoji by the character.
    """
    for reaction in message.reactions:
        current = reaction.emoji
        if isinstance(current, str):
            if emoji.is_unicode_emoji() and current == emoji.name:
                return reaction
        elif emoji.id is not None and current.id == emoji.id:
            return reaction
    return None


def _cached_message(client: discord.Client, message_id: int) -> discord.Message | None:
    return discord.utils.get(client.cached_messages, id=message_id)


async def _fetch_channel(
    client: discord.Client, channel_id: int
) -> discord.abc.Messageable:
    channel = client.get_channel(channel_id)
    if channel is None:
        channel = await client.fetch_channel(channel_id)
    if not isinstance(channel, discord.abc.Messageable):
        raise HydrationError(f"channel {channel_id} has no message history")
    return channel


def reaction_event_from_payload(
    client: discord.Client, payload: discord.RawReactionActionEvent
) -> ReactionEvent:
    """Build a ``ReactionEvent`` from a raw reaction-add payload.

    Args:
        client: The connected client, used for cache lookups and fetches.
        payload: The raw gateway payload.

    Returns:
        The event with reaction and user wrapped as lazy values.
    """
    emoji = payload.emoji

    async def fetch_reaction() -> discord.Reaction:
        channel = await _fetch_channel(client, payload.channel_id)
        message = await channel.fetch_message(payload.message_id)
        found = find_reaction(message, emoji)
        if found is None:
            raise HydrationError(
                f"reaction {emoji} no longer on message {payload.message_id}"
            )
        return found

    reaction: Lazy[discord.Reaction] = Stub(payload.message_id, fetch_reaction)
    cached = _cached_message(client, payload.message_id)
    if cached is not None:
        found = find_reaction(cached, emoji)
        if found is not None:
            reaction = Full(found)

    user: Lazy[discord.abc.User]
    known_user = payload.member or client.get_user(payload.user_id)
    if known_user is not None:
        user = Full(known_user)
    else:
        user = Stub(payload.user_id, lambda: client.fetch_user(payload.user_id))

    return ReactionEvent(
        user_id=payload.user_id,
        emoji=emoji,
        reaction=reaction,
        user=user,
    )


def message_event_from_message(message: discord.Message) -> MessageEvent:
    """Wrap a gateway message, which discord.py always delivers complete."""
    return MessageEvent(message=Full(message))
