"""
Location provider contract and fallback resolution.

Device geolocation lives outside the core. A provider either returns
a Coordinates reading or raises LocationUnavailable; callers fall back
to a fixed reference point instead of blocking creation or discovery.
"""

import logging
from typing import Optional, Protocol

from sparks.errors import LocationUnavailable
from sparks.models import Coordinates

logger = logging.getLogger(__name__)


class LocationProvider(Protocol):
    def get_location(self) -> Coordinates:
        ...


class StaticLocationProvider:
    """Always reports the same reading. Useful as a mock device."""

    def __init__(self, coordinates: Coordinates):
        self.coordinates = coordinates

    def get_location(self) -> Coordinates:
        return self.coordinates


class UnavailableLocationProvider:
    """Reports a permission/availability failure on every call."""

    def __init__(self, reason: str = "location permission denied"):
        self.reason = reason

    def get_location(self) -> Coordinates:
        raise LocationUnavailable(self.reason)


def resolve_location(
    provider: Optional[LocationProvider],
    fallback: Coordinates,
) -> Coordinates:
    """
    Ask the provider for a reading, falling back on failure.

    Args:
        provider: Location collaborator, or None when the device has none
        fallback: Reference point used when no reading is available

    Returns:
        The provider's reading, or the fallback coordinates
    """
    if provider is None:
        logger.debug("No location provider configured, using fallback")
        return fallback

    try:
        return provider.get_location()
    except LocationUnavailable as e:
        logger.warning(
            f"Location unavailable, using fallback: {e.message}",
            extra={"fallback_lat": fallback.latitude, "fallback_lng": fallback.longitude},
        )
        return fallback
