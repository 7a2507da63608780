"""CLI entrypoint for running switchboard as a module."""

from switchboard.cli import cli
from switchboard.logging import setup_logging

if __name__ == "__main__":
    setup_logging()
    cli()
