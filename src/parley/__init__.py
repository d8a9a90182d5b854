"""Parley - realtime voice/text agent session core with MCP tool access."""

__version__ = "0.1.0"
