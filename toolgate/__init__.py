"""toolgate - policy gate for AI agent tool calls."""

__version__ = "0.3.0"
