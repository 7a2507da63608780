"""Command-line interface for Switchboard."""

import asyncio
from pathlib import Path

import click

from switchboard import __version__
from switchboard.agents import AGENT_NAMES
from switchboard.config import Config
from switchboard.logging import get_logger, setup_logging

log = get_logger("cli")


@click.group()
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to configuration file.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Set logging level (overrides config).",
)
@click.option(
    "--log-json/--no-log-json",
    default=None,
    help="Output logs as JSON or human-readable format (overrides config).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: Path | None,
    log_level: str | None,
    log_json: bool | None,
) -> None:
    """Switchboard - Discord agent host.

    Routes Discord reactions and messages to the agents subscribed to them.
    """
    ctx.ensure_object(dict)

    config = Config.load_or_default(config_file)
    ctx.obj["config"] = config
    ctx.obj["config_file"] = config_file

    effective_log_level = log_level or config.log_level
    effective_log_json = log_json if log_json is not None else config.log_json

    setup_logging(json_output=effective_log_json, level=effective_log_level)


@cli.command()
def version() -> None:
    """Print version information."""
    click.echo(f"switchboard {__version__}")


@cli.command(name="agents")
@click.pass_context
def list_agents(ctx: click.Context) -> None:
    """List the known agents and whether config enables them."""
    config = ctx.obj["config"]
    enabled = set(config.agents.selected())
    for name in AGENT_NAMES:
        state = "enabled" if name in enabled else "disabled"
        click.echo(f"{name}: {state}")


@cli.command()
@click.option(
    "-a",
    "--agent",
    "agents",
    multiple=True,
    type=click.Choice(AGENT_NAMES),
    help="Agent to run (repeatable). Defaults to the agents enabled in config.",
)
@click.option(
    "--health/--no-health",
    default=None,
    help="Serve the health endpoint (overrides config).",
)
@click.pass_context
def run(ctx: click.Context, agents: tuple[str, ...], health: bool | None) -> None:
    """Connect to Discord and run the agents.

    Requires the Discord bot token environment variable (DISCORD_BOT_TOKEN
    by default) to be set. Use Ctrl+C or send SIGTERM for graceful shutdown.
    """
    from switchboard.bot import SwitchboardBot, run_bot

    config = ctx.obj["config"]
    token = config.discord_token

    if not token:
        click.echo(
            f"Error: {config.discord.token_env} environment variable not set", err=True
        )
        click.echo("Set it to your bot token to connect to Discord.", err=True)
        raise SystemExit(1)

    selection = list(agents) or None
    serve_health = config.health.enabled if health is None else health

    log.info(
        "run_command_invoked",
        agents=selection or config.agents.selected(),
        health=serve_health,
    )

    async def main() -> None:
        bot = SwitchboardBot(config, selection)
        tasks = [asyncio.create_task(run_bot(bot, token))]

        if serve_health:
            import uvicorn

            from switchboard.api import create_app

            server = uvicorn.Server(
                uvicorn.Config(
                    create_app(bot),
                    host=config.health.host,
                    port=config.health.port,
                    log_level="warning",
                )
            )
            tasks.append(asyncio.create_task(server.serve()))
            log.info(
                "health_server_started",
                host=config.health.host,
                port=config.health.port,
            )

        try:
            done, pending = await asyncio.wait(
                tasks, return_when=asyncio.FIRST_COMPLETED
            )

            for task in pending:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

            for task in done:
                if not task.cancelled() and task.exception():
                    raise task.exception()  # type: ignore[misc]
        finally:
            await bot.llm.close()

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        log.info("shutdown_requested_keyboard")
    except Exception as e:
        log.error("run_failed", error=str(e))
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command(name="check")
@click.option(
    "-c",
    "--config-file",
    type=click.Path(exists=True, path_type=Path),
    default="config.yaml",
    help="Path to configuration file.",
)
def config_check(config_file: Path) -> None:
    """Validate configuration file."""
    try:
        cfg = Config.load(config_file)
        click.echo(f"Configuration valid: {config_file}")
        click.echo(f"  Log level: {cfg.log_level}")
        click.echo(f"  Token variable: {cfg.discord.token_env}")

        selected = cfg.agents.selected()
        click.echo(f"  Agents: {', '.join(selected) if selected else 'none'}")

        if cfg.agents.support_redirect and not cfg.agents.support_forum_channel_id:
            click.echo("  Warning: support-redirect enabled without a support forum channel")

        if cfg.models:
            click.echo(f"  Model profiles: {len(cfg.models.profiles)}")
        else:
            click.echo("  Model profiles: not configured")

        if cfg.health.enabled:
            click.echo(f"  Health endpoint: {cfg.health.host}:{cfg.health.port}")

    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    except Exception as e:
        click.echo(f"Configuration error: {e}", err=True)
        raise SystemExit(1)
