"""Jira MCP server: ticket, workflow and Zephyr test step tools."""

__version__ = "0.1.0"
