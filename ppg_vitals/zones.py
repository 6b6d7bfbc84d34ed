"""
Heart-rate training zones as a percentage of maximum heart rate.
"""

from __future__ import annotations

from typing import Optional

# (upper bound in % of max HR, zone name), checked in order
_ZONES = (
    (50.0, "Rest"),
    (60.0, "Very Light"),
    (70.0, "Light"),
    (80.0, "Moderate"),
    (90.0, "Hard"),
)


def max_heart_rate(age: int = 30) -> int:
    """Age-predicted maximum heart rate, ``220 - age``."""
    return 220 - age


def heart_rate_zone(
    bpm: Optional[float],
    age: int = 30,
    max_hr: Optional[float] = None,
) -> str:
    """
    Classify *bpm* into a training zone.

    *max_hr* overrides the age-predicted maximum.  Returns ``"Unknown"``
    for a missing or zero reading.
    """
    if not bpm:
        return "Unknown"
    limit = max_hr if max_hr else max_heart_rate(age)
    percentage = bpm / limit * 100.0
    for upper, name in _ZONES:
        if percentage < upper:
            return name
    return "Maximum"
