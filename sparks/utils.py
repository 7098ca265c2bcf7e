"""
Utility functions for the sparks core.
"""

import random
import time
import uuid
from typing import Optional


ICEBREAKERS = [
    "Share a song you're vibing to right now.",
    "What's the one emoji that describes your day?",
    "Two truths and a lie \u2014 go!",
    "What's your go-to comfort food?",
    "If you had 10 minutes of fame, how would you use it?",
]


def new_id() -> str:
    """Random 128-bit identifier; collisions are not handled."""
    return uuid.uuid4().hex


def now_ms() -> int:
    """Current wall-clock time in milliseconds since epoch."""
    return int(time.time() * 1000)


def random_icebreaker(rng: Optional[random.Random] = None) -> str:
    return (rng or random).choice(ICEBREAKERS)


def format_time_left(expires_at: int, now: int) -> str:
    """
    Remaining lifetime as 'Hh Mm Ss'.

    Args:
        expires_at: Expiry timestamp (ms)
        now: Current timestamp (ms)

    Returns:
        e.g. '23h 59m 59s'; '0h 0m 0s' once expired
    """
    diff = max(0, expires_at - now)
    hours = diff // (1000 * 60 * 60)
    minutes = (diff % (1000 * 60 * 60)) // (1000 * 60)
    seconds = (diff % (1000 * 60)) // 1000
    return f"{hours}h {minutes}m {seconds}s"
