"""Conversational-assistant backend with a summarizing session context engine."""

__version__ = "0.1.0"
