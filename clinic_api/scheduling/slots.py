"""
Slot Grid Generator

Candidate start times for one business day: 06:30 up to (but not including)
21:00, every 30 minutes.
"""

DAY_START_MINUTES = 6 * 60 + 30
DAY_END_MINUTES = 21 * 60
SLOT_STEP_MINUTES = 30


def generate_slot_grid(
    day_start: int = DAY_START_MINUTES,
    day_end: int = DAY_END_MINUTES,
    step: int = SLOT_STEP_MINUTES,
) -> list[int]:
    if step <= 0:
        raise ValueError('Slot step must be positive.')

    total_slots = max(0, (day_end - day_start) // step)
    return [day_start + index * step for index in range(total_slots)]
