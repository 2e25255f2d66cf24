"""
Availability Filter

Decides which grid start times can take a new appointment of the requested
duration without overlapping any existing booking of the day.

Algorithm:
    1. Build the interval of every non-cancelled appointment
       (duration defaults to 60 minutes when missing).
    2. For each grid start ``s`` build the candidate [s, s + duration).
    3. The candidate is available iff it overlaps no appointment interval.

Candidates that run past closing time are not clamped.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional, Sequence

from clinic_api.scheduling.intervals import Interval, format_time, overlaps, parse_time
from clinic_api.scheduling.slots import generate_slot_grid

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINUTES = 60
CANCELLED_STATUS = 'cancelled'
ALL_THERAPISTS = 'all'


@dataclass(frozen=True)
class AppointmentRecord:
    """Snapshot of a stored appointment as seen by the calculator."""

    time: str
    duration: Optional[int] = None
    status: Optional[str] = None
    id: Optional[str] = None
    patient_name: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == CANCELLED_STATUS


@dataclass
class AvailabilityResult:
    date: str
    therapist: str
    duration: int
    available_slots: list[str] = field(default_factory=list)
    occupied_slots: int = 0

    @property
    def total_available(self) -> int:
        return len(self.available_slots)

    def to_response(self) -> dict:
        return {
            'date': self.date,
            'therapist': self.therapist,
            'duration': self.duration,
            'availableSlots': list(self.available_slots),
            'totalAvailable': self.total_available,
            'occupiedSlots': self.occupied_slots,
        }


def appointment_interval(record: AppointmentRecord) -> Interval:
    """Interval occupied by ``record``; raises ``ValueError`` for unusable data."""
    start = parse_time(record.time)
    return Interval.from_duration(start, record.duration or DEFAULT_DURATION_MINUTES)


def booked_intervals(records: Iterable[AppointmentRecord]) -> list[Interval]:
    intervals: list[Interval] = []
    for record in records:
        if record.is_cancelled:
            continue
        try:
            intervals.append(appointment_interval(record))
        except ValueError as exc:
            logger.warning('Skipping appointment %s with unusable time data: %s', record.id or '?', exc)
    return intervals


def find_overlapping(records: Iterable[AppointmentRecord], requested: Interval) -> list[AppointmentRecord]:
    """Non-cancelled records whose interval intersects ``requested``."""
    conflicts: list[AppointmentRecord] = []
    for record in records:
        if record.is_cancelled:
            continue
        try:
            interval = appointment_interval(record)
        except ValueError as exc:
            logger.warning('Skipping appointment %s with unusable time data: %s', record.id or '?', exc)
            continue
        if overlaps(interval, requested):
            conflicts.append(record)
    return conflicts


def is_slot_available(start: int, duration: int, intervals: Sequence[Interval]) -> bool:
    candidate = Interval.from_duration(start, duration)
    return not any(overlaps(candidate, interval) for interval in intervals)


def compute_availability(
    day: date | str,
    therapist: Optional[str],
    duration: int,
    existing_appointments: Sequence[AppointmentRecord],
    grid: Optional[Sequence[int]] = None,
) -> AvailabilityResult:
    if duration <= 0:
        raise ValueError('Duration must be a positive number of minutes.')

    active = [record for record in existing_appointments if not record.is_cancelled]
    intervals = booked_intervals(active)
    slot_starts = generate_slot_grid() if grid is None else grid

    available = [
        format_time(start)
        for start in slot_starts
        if is_slot_available(start, duration, intervals)
    ]

    return AvailabilityResult(
        date=day.isoformat() if isinstance(day, date) else day,
        therapist=therapist or ALL_THERAPISTS,
        duration=duration,
        available_slots=available,
        occupied_slots=len(active),
    )
