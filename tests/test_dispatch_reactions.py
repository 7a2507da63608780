"""Tests for reaction dispatch.

Covers:
- Own reactions are ignored
- Candidate key fallback and the matched key in the context
- Re-registration, removal, and listener idempotency
- Hydration and handler failures are contained and logged
- Built-in star acknowledgement bootstrap
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import discord
import pytest

from switchboard.config import DispatchConfig
from switchboard.dispatch import (
    STAR_EMOJI,
    Dispatcher,
    ReactionContext,
    star_acknowledgement,
)
from switchboard.gateway import ReactionEvent
from switchboard.hydration import Full, Stub
from switchboard.registry import ReactionSubscription

BOT_USER_ID = 999
REACTOR_ID = 222


def reaction_event(reaction, user, user_id: int = REACTOR_ID) -> ReactionEvent:
    emoji = reaction.emoji
    partial = (
        discord.PartialEmoji(name=emoji) if isinstance(emoji, str) else emoji
    )
    return ReactionEvent(
        user_id=user_id,
        emoji=partial,
        reaction=Full(reaction),
        user=Full(user),
    )


@pytest.fixture
def dispatcher() -> Dispatcher:
    """A dispatcher without the built-in star reply."""
    return Dispatcher(DispatchConfig(default_star_reply=False))


class TestReactionMatching:
    """Tests for candidate lookup and handler invocation."""

    @pytest.mark.asyncio
    async def test_unicode_reaction_invokes_handler(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        action = AsyncMock()
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=action)]
        )
        reaction = make_reaction("🔥")
        user = make_user()

        result = await dispatcher.handle_reaction(client, reaction_event(reaction, user))

        assert result is not None and result.ok
        action.assert_awaited_once()
        context = action.await_args.args[0]
        assert isinstance(context, ReactionContext)
        assert context.emoji_key == "🔥"
        assert context.message is reaction.message
        assert context.channel is reaction.message.channel
        assert context.reaction is reaction
        assert context.user is user
        assert context.client is client

    @pytest.mark.asyncio
    async def test_later_candidate_match_sets_matched_key(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        """Candidates are [id, name]; only the name is registered."""
        action = AsyncMock()
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji=":wave:", action=action)]
        )
        reaction = make_reaction(discord.PartialEmoji(name="wave", id=123))

        result = await dispatcher.handle_reaction(
            client, reaction_event(reaction, make_user())
        )

        assert result is not None and result.key == "wave"
        assert action.await_args.args[0].emoji_key == "wave"

    @pytest.mark.asyncio
    async def test_first_candidate_wins_when_both_registered(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        by_id, by_name = AsyncMock(), AsyncMock()
        dispatcher.register_reaction_subscriptions(
            client,
            [
                ReactionSubscription(emoji="wave", action=by_name),
                ReactionSubscription(emoji="<:wave:123>", action=by_id),
            ],
        )
        reaction = make_reaction(discord.PartialEmoji(name="wave", id=123))

        await dispatcher.handle_reaction(client, reaction_event(reaction, make_user()))

        by_id.assert_awaited_once()
        by_name.assert_not_awaited()
        assert by_id.await_args.args[0].emoji_key == "123"

    @pytest.mark.asyncio
    async def test_no_match_is_silent(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=AsyncMock())]
        )
        reaction = make_reaction("👍")

        with patch("switchboard.dispatch.log") as mock_log:
            result = await dispatcher.handle_reaction(
                client, reaction_event(reaction, make_user())
            )

        assert result is None
        mock_log.error.assert_not_called()
        mock_log.warning.assert_not_called()

    @pytest.mark.asyncio
    async def test_sync_handler_supported(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        calls = []
        dispatcher.register_reaction_subscriptions(
            client,
            [ReactionSubscription(emoji="🔥", action=lambda ctx: calls.append(ctx))],
        )

        result = await dispatcher.handle_reaction(
            client, reaction_event(make_reaction("🔥"), make_user())
        )

        assert result is not None and result.ok
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_replaced_handler_is_used(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        old, new = AsyncMock(), AsyncMock()
        registry = dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=old)]
        )
        registry.add("🔥", new)

        await dispatcher.handle_reaction(
            client, reaction_event(make_reaction("🔥"), make_user())
        )

        old.assert_not_awaited()
        new.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_removed_key_no_longer_matches(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        action = AsyncMock()
        registry = dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=action)]
        )

        assert registry.remove("👻") is False
        assert registry.remove("🔥") is True

        result = await dispatcher.handle_reaction(
            client, reaction_event(make_reaction("🔥"), make_user())
        )

        assert result is None
        action.assert_not_awaited()


class TestReactionDrops:
    """Tests for events that never reach a handler."""

    @pytest.mark.asyncio
    async def test_own_reaction_never_triggers(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        action = AsyncMock()
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=action)]
        )
        fetch = AsyncMock()
        event = ReactionEvent(
            user_id=BOT_USER_ID,
            emoji=discord.PartialEmoji(name="🔥"),
            reaction=Stub(700, fetch),
            user=Full(make_user(BOT_USER_ID, bot=True)),
        )

        assert await dispatcher.handle_reaction(client, event) is None
        action.assert_not_awaited()
        fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_bots_ignored_by_default(
        self, client, make_reaction, make_user
    ) -> None:
        dispatcher = Dispatcher(DispatchConfig(default_star_reply=False))
        action = AsyncMock()
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=action)]
        )

        result = await dispatcher.handle_reaction(
            client, reaction_event(make_reaction("🔥"), make_user(333, bot=True), 333)
        )

        assert result is None
        action.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_bots_allowed_when_configured(
        self, client, make_reaction, make_user
    ) -> None:
        dispatcher = Dispatcher(
            DispatchConfig(default_star_reply=False, ignore_other_bots=False)
        )
        action = AsyncMock()
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=action)]
        )

        await dispatcher.handle_reaction(
            client, reaction_event(make_reaction("🔥"), make_user(333, bot=True), 333)
        )

        action.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_hydration_failure_logged_and_dropped(
        self, dispatcher, client, make_user
    ) -> None:
        action = AsyncMock()
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=action)]
        )
        event = ReactionEvent(
            user_id=REACTOR_ID,
            emoji=discord.PartialEmoji(name="🔥"),
            reaction=Stub(700, AsyncMock(side_effect=RuntimeError("fetch failed"))),
            user=Full(make_user()),
        )

        with patch("switchboard.dispatch.log") as mock_log:
            result = await dispatcher.handle_reaction(client, event)

        assert result is None
        action.assert_not_awaited()
        mock_log.error.assert_called_once()
        assert mock_log.error.call_args.args[0] == "reaction_hydration_failed"

    @pytest.mark.asyncio
    async def test_partial_user_is_fetched(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        action = AsyncMock()
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=action)]
        )
        user = make_user()
        reaction = make_reaction("🔥")
        event = ReactionEvent(
            user_id=REACTOR_ID,
            emoji=discord.PartialEmoji(name="🔥"),
            reaction=Stub(700, AsyncMock(return_value=reaction)),
            user=Stub(REACTOR_ID, AsyncMock(return_value=user)),
        )

        with patch("switchboard.dispatch.log") as mock_log:
            await dispatcher.handle_reaction(client, event)

        assert action.await_args.args[0].user is user
        mock_log.debug.assert_any_call(
            "reaction_fetching", reaction_partial=True, user_partial=True
        )

    @pytest.mark.asyncio
    async def test_full_event_needs_no_fetch(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        action = AsyncMock()
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=action)]
        )

        with patch("switchboard.dispatch.log") as mock_log:
            await dispatcher.handle_reaction(
                client, reaction_event(make_reaction("🔥"), make_user())
            )

        action.assert_awaited_once()
        fetch_logs = [
            c for c in mock_log.debug.call_args_list if c.args[0] == "reaction_fetching"
        ]
        assert fetch_logs == []

    @pytest.mark.asyncio
    async def test_unsendable_channel_dropped(
        self, dispatcher, client, make_reaction, make_message, make_user
    ) -> None:
        action = AsyncMock()
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=action)]
        )
        message = make_message(channel=MagicMock(spec=discord.ForumChannel))
        reaction = make_reaction("🔥", message=message)

        result = await dispatcher.handle_reaction(
            client, reaction_event(reaction, make_user())
        )

        assert result is None
        action.assert_not_awaited()


class TestReactionHandlerFailures:
    """Tests for handler failure isolation."""

    @pytest.mark.asyncio
    async def test_handler_error_captured_and_logged(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        error = ValueError("handler exploded")
        dispatcher.register_reaction_subscriptions(
            client,
            [ReactionSubscription(emoji="🔥", action=AsyncMock(side_effect=error))],
        )

        with patch("switchboard.dispatch.log") as mock_log:
            result = await dispatcher.handle_reaction(
                client, reaction_event(make_reaction("🔥"), make_user())
            )

        assert result is not None
        assert result.ok is False
        assert result.error is error
        mock_log.error.assert_called_once()
        assert mock_log.error.call_args.kwargs["emoji_key"] == "🔥"

    @pytest.mark.asyncio
    async def test_dispatch_continues_after_failure(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        action = AsyncMock(side_effect=[RuntimeError("first"), None])
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=action)]
        )

        first = await dispatcher.handle_reaction(
            client, reaction_event(make_reaction("🔥"), make_user())
        )
        second = await dispatcher.handle_reaction(
            client, reaction_event(make_reaction("🔥"), make_user())
        )

        assert first is not None and not first.ok
        assert second is not None and second.ok


class TestReactionListener:
    """Tests for listener attachment."""

    def test_listener_attached_once(self, dispatcher, client) -> None:
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=AsyncMock())]
        )
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="👍", action=AsyncMock())]
        )

        client.add_listener.assert_called_once_with(
            dispatcher.on_raw_reaction_add, "on_raw_reaction_add"
        )
        assert dispatcher.reactions.keys() == ["🔥", "👍"]

    @pytest.mark.asyncio
    async def test_each_handler_runs_once_after_repeated_registration(
        self, dispatcher, client, make_reaction, make_user
    ) -> None:
        fire, thumbs = AsyncMock(), AsyncMock()
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=fire)]
        )
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="👍", action=thumbs)]
        )

        reaction = make_reaction("🔥")
        client.cached_messages = [reaction.message]
        client.get_user.return_value = make_user()
        payload = MagicMock()
        payload.user_id = REACTOR_ID
        payload.member = None
        payload.channel_id = 500
        payload.message_id = reaction.message.id
        payload.emoji = discord.PartialEmoji(name="🔥")

        await dispatcher.on_raw_reaction_add(payload)

        fire.assert_awaited_once()
        thumbs.assert_not_awaited()

    def test_registration_returns_reaction_registry(self, dispatcher, client) -> None:
        registry = dispatcher.register_reaction_subscriptions(client)
        assert registry is dispatcher.reactions


class TestStarBootstrap:
    """Tests for the built-in star acknowledgement."""

    def test_installed_on_first_registration(self, client) -> None:
        dispatcher = Dispatcher()
        dispatcher.register_reaction_subscriptions(client)

        assert dispatcher.reactions.get(STAR_EMOJI) is star_acknowledgement

    def test_installed_alongside_first_subscriptions(self, client) -> None:
        dispatcher = Dispatcher()
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="🔥", action=AsyncMock())]
        )

        assert dispatcher.reactions.keys() == [STAR_EMOJI, "🔥"]

    def test_caller_star_handler_wins(self, client) -> None:
        dispatcher = Dispatcher()
        custom = AsyncMock()
        dispatcher.register_reaction_subscriptions(
            client, [ReactionSubscription(emoji="⭐", action=custom)]
        )

        assert dispatcher.reactions.get(STAR_EMOJI) is custom

    def test_not_reinstalled_on_later_calls(self, client) -> None:
        dispatcher = Dispatcher()
        registry = dispatcher.register_reaction_subscriptions(client)
        registry.clear()

        dispatcher.register_reaction_subscriptions(client)

        assert len(dispatcher.reactions) == 0

    def test_skipped_when_registry_already_populated(self, client) -> None:
        dispatcher = Dispatcher()
        dispatcher.reactions.add("🔥", AsyncMock())

        dispatcher.register_reaction_subscriptions(client)

        assert STAR_EMOJI not in dispatcher.reactions

    def test_disabled_by_config(self, client) -> None:
        dispatcher = Dispatcher(DispatchConfig(default_star_reply=False))
        dispatcher.register_reaction_subscriptions(client)

        assert STAR_EMOJI not in dispatcher.reactions


class TestStarAcknowledgement:
    """Tests for the star acknowledgement handler."""

    def _context(self, client, reaction, user) -> ReactionContext:
        return ReactionContext(
            client=client,
            emoji_key=STAR_EMOJI,
            channel=reaction.message.channel,
            message=reaction.message,
            reaction=reaction,
            user=user,
        )

    @pytest.mark.asyncio
    async def test_posts_acknowledgement(self, client, make_reaction, make_user) -> None:
        reaction = make_reaction("⭐")
        user = make_user()

        await star_acknowledgement(self._context(client, reaction, user))

        channel = reaction.message.channel
        channel.send.assert_awaited_once()
        content = channel.send.await_args.args[0]
        assert content.startswith("⭐ <@222> starred a message from <@111>")
        assert reaction.message.jump_url in content
        mentions = channel.send.await_args.kwargs["allowed_mentions"]
        assert mentions.users == [user]

    @pytest.mark.asyncio
    async def test_skips_after_first_star(self, client, make_reaction, make_user) -> None:
        reaction = make_reaction("⭐", count=2)

        await star_acknowledgement(self._context(client, reaction, make_user()))

        reaction.message.channel.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_skips_direct_messages(
        self, client, make_reaction, make_message, make_user
    ) -> None:
        reaction = make_reaction("⭐", message=make_message(guild=False))

        await star_acknowledgement(self._context(client, reaction, make_user()))

        reaction.message.channel.send.assert_not_awaited()
