"""Emoji key normalization.

Reaction subscriptions are keyed by a canonical emoji key so that the
many textual spellings of one emoji all land on the same handler:

- custom emoji markup ``<:wave:123>`` / ``<a:wave:123>`` -> ``123``
- shorthand ``:wave:`` -> ``wave``
- composite ``wave:123`` -> ``123``
- anything else (unicode emoji, bare names, ids) -> trimmed input

Normalizing an already-canonical key returns it unchanged.
"""

from __future__ import annotations

import re

import discord

CUSTOM_EMOJI_PATTERN = re.compile(r"^<a?:\w+:(\d+)>$", re.ASCII)
SHORTHAND_EMOJI_PATTERN = re.compile(r"^:([\w-]{2,}):$", re.ASCII)
COMPOSITE_EMOJI_PATTERN = re.compile(r"^([\w-]+):(\d+)$", re.ASCII)


def normalize_emoji_key(emoji: str) -> str:
    """Map a textual emoji representation to its canonical lookup key.

    Rules are applied in order and the first match wins.

    Args:
        emoji: Raw emoji identifier as written by an agent or derived
            from a reaction.

    Returns:
        The canonical key.
    """
    trimmed = emoji.strip()

    match = CUSTOM_EMOJI_PATTERN.match(trimmed)
    if match:
        return match.group(1)

    match = SHORTHAND_EMOJI_PATTERN.match(trimmed)
    if match:
        return match.group(1)

    match = COMPOSITE_EMOJI_PATTERN.match(trimmed)
    if match:
        return match.group(2)

    return trimmed


def emoji_parts(
    emoji: discord.Emoji | discord.PartialEmoji | str,
) -> tuple[str | None, str | None]:
    """Split a reaction emoji into its (id, name) pair.

    Unicode emoji have no id; their name is the emoji itself.
    """
    if isinstance(emoji, str):
        return None, emoji or None

    emoji_id = str(emoji.id) if emoji.id is not None else None
    return emoji_id, emoji.name or None


def candidate_keys(emoji_id: str | None, emoji_name: str | None) -> list[str]:
    """Build the ordered, de-duplicated lookup keys for a reaction.

    The order is id-or-name, then name, then id. When a legacy
    name-keyed and an id-keyed subscription exist for the same custom
    emoji, the id-keyed one wins.

    Args:
        emoji_id: Custom emoji id, or None for unicode emoji.
        emoji_name: Emoji name (the literal character for unicode emoji).

    Returns:
        Normalized candidate keys, first match wins.
    """
    keys: list[str] = []

    for value in (emoji_id or emoji_name, emoji_name, emoji_id):
        if not value:
            continue
        key = normalize_emoji_key(value)
        if key and key not in keys:
            keys.append(key)

    return keys
