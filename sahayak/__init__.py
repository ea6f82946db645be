"""Sahayak: live English-practice chat session over WebSocket with HTTP fallback."""

__version__ = "0.1.0"
