"""Switchboard - event subscription and dispatch host for Discord agents."""

__version__ = "0.1.0"
