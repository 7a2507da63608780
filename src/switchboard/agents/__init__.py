"""Agents: behaviors built on top of the dispatcher.

Agents only produce subscriptions and implement the actions behind
them. All event plumbing lives in ``switchboard.dispatch``.
"""

from __future__ import annotations

from typing import Iterable

from discord.ext import commands

from switchboard.agents.moderation import start_moderation_agent
from switchboard.agents.ping import start_ping_test_agent
from switchboard.agents.star_reply import start_star_reply_agent
from switchboard.agents.support import start_support_redirect_agent
from switchboard.config import AgentsConfig
from switchboard.dispatch import Dispatcher
from switchboard.llm import ModelClient
from switchboard.logging import get_logger

log = get_logger("agents")

AGENT_NAMES = ("ping-test", "moderation", "support-redirect", "star-reply")


def start_agents(
    dispatcher: Dispatcher,
    client: commands.Bot,
    config: AgentsConfig,
    llm: ModelClient,
    selection: Iterable[str] | None = None,
) -> list[str]:
    """Start the selected agents.

    Args:
        dispatcher: The process dispatcher.
        client: The bot the agents listen on.
        config: Agent configuration.
        llm: Model client for agents that call a language model.
        selection: Agent names to start. Defaults to those enabled in config.

    Returns:
        Names of the agents started, in start order.

    Raises:
        ValueError: If the selection names an unknown agent.
    """
    selected = list(selection) if selection is not None else config.selected()
    unknown = [name for name in selected if name not in AGENT_NAMES]
    if unknown:
        raise ValueError(f"Unknown agents: {', '.join(unknown)}")

    log.info("agents_starting", selection=selected)

    started: list[str] = []
    for name in AGENT_NAMES:
        if name not in selected:
            continue
        if name == "ping-test":
            start_ping_test_agent(dispatcher, client)
        elif name == "moderation":
            start_moderation_agent(dispatcher, client, llm, config)
        elif name == "support-redirect":
            start_support_redirect_agent(dispatcher, client, config)
        elif name == "star-reply":
            start_star_reply_agent(dispatcher, client, llm, config)
        started.append(name)

    log.info("agents_started", agents=started)
    return started


__all__ = [
    "AGENT_NAMES",
    "start_agents",
    "start_moderation_agent",
    "start_ping_test_agent",
    "start_star_reply_agent",
    "start_support_redirect_agent",
]
