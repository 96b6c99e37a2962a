"""Realtime WebSocket relay."""

from .session import RelaySession

__all__ = ["RelaySession"]
