"""Subscription registries.

A registry is a single-valued key -> entry map that lives for the whole
process and is only mutated through ``add``, ``remove`` and ``clear``.
Iteration yields entries in registration order (re-registering a key
keeps its original position).

There is no locking. Registries are expected to be filled during a
sequential startup phase before event traffic begins; mutating them
from concurrent tasks during live traffic is not supported.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Generic,
    Iterator,
    TypeVar,
    Union,
)

import discord

from switchboard.emoji import normalize_emoji_key
from switchboard.logging import get_logger

if TYPE_CHECKING:
    from switchboard.dispatch import MessageContext, ReactionContext

log = get_logger("registry")

K = TypeVar("K")
V = TypeVar("V")

ReactionAction = Callable[["ReactionContext"], Union[Awaitable[Any], None]]
MessageAction = Callable[["MessageContext"], Union[Awaitable[Any], None]]
MessageFilter = Callable[[discord.Message], bool]


@dataclass(frozen=True)
class ReactionSubscription:
    """Run ``action`` when a reaction matching ``emoji`` is added."""

    emoji: str
    action: ReactionAction


@dataclass(frozen=True)
class MessageSubscription:
    """Run ``action`` for every new message accepted by ``filter``.

    Without a filter the action runs for every incoming message.
    """

    id: str
    action: MessageAction
    filter: MessageFilter | None = None

    def matches(self, message: discord.Message) -> bool:
        return self.filter is None or bool(self.filter(message))


class Registry(Generic[K, V]):
    """Generic keyed store with upsert semantics."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._entries: dict[K, V] = {}

    def put(self, key: K, entry: V) -> None:
        """Insert or overwrite the entry for ``key``."""
        replaced = key in self._entries
        self._entries[key] = entry
        log.debug(
            "subscription_added",
            registry=self.name,
            key=str(key),
            replaced=replaced,
        )

    def remove(self, key: K) -> bool:
        """Remove the entry for ``key``.

        Returns:
            True if an entry existed and was removed.
        """
        if key not in self._entries:
            return False
        del self._entries[key]
        log.debug("subscription_removed", registry=self.name, key=str(key))
        return True

    def clear(self) -> None:
        """Drop all entries."""
        self._entries.clear()
        log.debug("subscriptions_cleared", registry=self.name)

    def get(self, key: K) -> V | None:
        return self._entries.get(key)

    def keys(self) -> list[K]:
        return list(self._entries)

    def snapshot(self) -> list[V]:
        """Entries in registration order, safe to iterate while mutating."""
        return list(self._entries.values())

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[V]:
        return iter(self.snapshot())


class ReactionRegistry(Registry[str, ReactionAction]):
    """Reaction actions keyed by canonical emoji key.

    Keys are normalized on every call, so ``"<:wave:1>"``, ``"wave:1"``
    and ``"1"`` all address the same entry.
    """

    def __init__(self) -> None:
        super().__init__("reaction")

    def add(self, emoji: str, action: ReactionAction) -> None:
        self.put(normalize_emoji_key(emoji), action)

    def remove(self, emoji: str) -> bool:
        return super().remove(normalize_emoji_key(emoji))

    def get(self, emoji: str) -> ReactionAction | None:
        return super().get(normalize_emoji_key(emoji))

    def __contains__(self, emoji: object) -> bool:
        if not isinstance(emoji, str):
            return False
        return super().__contains__(normalize_emoji_key(emoji))


class MessageRegistry(Registry[str, MessageSubscription]):
    """Message subscriptions keyed by subscription id."""

    def __init__(self) -> None:
        super().__init__("message")

    def add(self, subscription: MessageSubscription) -> None:
        self.put(subscription.id, subscription)
