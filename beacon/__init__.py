"""Beacon — discovers MCP servers and A2A agents, merges them into one catalog
and keeps their verification results fresh.

Pipeline entry point: :class:`beacon.monitor.Monitor`.
"""

__version__ = "1.0.0"
