"""Handoff task queue served over MCP tools and a REST mapping."""

__version__ = "0.3.0"

__all__ = ["__version__"]
