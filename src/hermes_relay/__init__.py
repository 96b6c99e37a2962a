"""Hermes relay: realtime fan-out for end-to-end encrypted chats."""

__version__ = "0.1.0"
