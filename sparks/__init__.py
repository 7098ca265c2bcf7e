"""Ephemeral, location-anchored group chats that vanish 24 hours after creation."""

__version__ = "1.0.0"
