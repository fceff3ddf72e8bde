"""MCP server and client for the EV platform's binary team network."""

__version__ = "0.1.0"
