"""
Simulated clock — maps elapsed simulated seconds onto a time of day.

One simulated hour elapses every SECONDS_PER_HOUR simulated seconds, so a
full household day plays out in 24 minutes of simulated time.
"""

from datetime import datetime, timedelta

SECONDS_PER_HOUR = 60
SIM_EPOCH = datetime(2024, 1, 1)


def hour_of_day(time_sec: float) -> int:
    return int(time_sec // SECONDS_PER_HOUR) % 24


def minute_of_day(time_sec: float) -> int:
    """Minutes since midnight, at minute resolution."""
    minutes = int(time_sec * 60 // SECONDS_PER_HOUR)
    return minutes % (24 * 60)


def sim_datetime(time_sec: float) -> datetime:
    """Wall-clock style datetime for the simulated instant (for cron matching)."""
    return SIM_EPOCH + timedelta(minutes=int(time_sec * 60 // SECONDS_PER_HOUR))


def parse_hhmm(value: str) -> int:
    """'22:30' -> minutes since midnight."""
    hours, _, minutes = value.partition(":")
    return (int(hours) % 24) * 60 + (int(minutes) if minutes else 0)


def in_window(time_sec: float, start: str, end: str) -> bool:
    """Is the simulated time inside [start, end)? Windows may wrap midnight."""
    now = minute_of_day(time_sec)
    lo = parse_hhmm(start)
    hi = parse_hhmm(end)
    if lo <= hi:
        return lo <= now < hi
    return now >= lo or now < hi


def occupant_room_at(time_sec: float) -> str:
    """Where the simulated human is, by schedule."""
    hour = hour_of_day(time_sec)
    if 6 <= hour < 9:
        return "kitchen"
    if hour >= 21 or hour < 6:
        return "bedroom"
    return "living_room"


def is_night(time_sec: float) -> bool:
    hour = hour_of_day(time_sec)
    return hour >= 21 or hour < 6
