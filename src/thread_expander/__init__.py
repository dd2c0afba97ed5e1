"""Slack bot that republishes thread replies sent to the channel as channel messages."""

__version__ = "0.1.0"
