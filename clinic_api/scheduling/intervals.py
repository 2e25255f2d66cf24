"""
Interval Model

Wall-clock times are handled as integer minutes since midnight and
appointments as half-open intervals [start, end).
"""

import re
from dataclasses import dataclass

MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::(\d{2}))?$')


class MalformedTimeError(ValueError):
    """Raised when a wall-clock string is not a valid HH:MM time."""


def parse_time(text: str) -> int:
    """Convert ``HH:MM`` (optionally ``HH:MM:SS``) into minutes since midnight.

    Seconds are accepted because SQL ``TIME`` columns render them, and are
    ignored.
    """
    if not isinstance(text, str):
        raise MalformedTimeError(f'Invalid time: {text!r}')

    match = _TIME_PATTERN.match(text.strip())
    if not match:
        raise MalformedTimeError(f'Invalid time: {text!r}')

    hour, minute = int(match.group(1)), int(match.group(2))
    seconds = match.group(3)
    if hour > 23 or minute > 59 or (seconds is not None and int(seconds) > 59):
        raise MalformedTimeError(f'Invalid time: {text!r}')

    return hour * 60 + minute


def format_time(minutes: int) -> str:
    hour, minute = divmod(minutes, 60)
    return f'{hour:02d}:{minute:02d}'


@dataclass(frozen=True)
class Interval:
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError(f'Interval start must be before end ({self.start} >= {self.end}).')

    @classmethod
    def from_duration(cls, start: int, duration: int) -> 'Interval':
        return cls(start, start + duration)

    @property
    def duration(self) -> int:
        return self.end - self.start


def overlaps(a: Interval, b: Interval) -> bool:
    return a.start < b.end and b.start < a.end
