"""QueryPilot: conversational query assistant for SQL databases and search engines."""

__version__ = "0.1.0"
