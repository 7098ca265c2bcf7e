"""
Domain models for sparks and their messages.

This module contains the in-memory entities owned by the stores.
For request/response schemas of the HTTP adapter, see schemas.py.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# A spark lives exactly 24 hours from creation
GROUP_LIFETIME_MS = 24 * 60 * 60 * 1000

DEFAULT_GROUP_NAME = "Untitled Spark"
ANONYMOUS_LABEL = "Anonymous"
GUEST_LABEL = "Guest"


class Coordinates(BaseModel):
    """A latitude/longitude reading in decimal degrees."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Group(BaseModel):
    """
    A location-anchored group chat with a fixed lifetime.

    Every field is fixed at creation. The group is live while
    now < expires_at and is removed by the sweeper afterwards.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    created_at: int  # ms since epoch
    expires_at: int  # created_at + GROUP_LIFETIME_MS
    lat: float
    lng: float
    anonymous_allowed: bool = True
    icebreaker: Optional[str] = None

    def is_live(self, now: int) -> bool:
        return now < self.expires_at


class Message(BaseModel):
    """A single post in a group's message log."""
    model_config = ConfigDict(frozen=True)

    id: str
    group_id: str
    text: str
    created_at: int
    display_name: str
    anonymous: bool = False


def resolve_display_name(anonymous: bool, handle: Optional[str]) -> str:
    """Anonymous label, else the trimmed handle, else the guest label."""
    if anonymous:
        return ANONYMOUS_LABEL
    handle = (handle or "").strip()
    return handle or GUEST_LABEL
