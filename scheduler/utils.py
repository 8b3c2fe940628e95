"""
Time arithmetic helpers shared by the scheduler modules.

All interval math is done in minutes-from-midnight integers; `time` objects
only appear at the model boundary.
"""

from datetime import date as date_type, time as time_type, timedelta
from typing import Iterator, List, Tuple


def to_minutes(t: time_type) -> int:
    return t.hour * 60 + t.minute


def from_minutes(minutes: int) -> time_type:
    """Convert minutes-from-midnight back to a time (clamped to the same day)."""
    minutes = max(0, min(minutes, 23 * 60 + 59))
    return time_type(minutes // 60, minutes % 60)


def day_of_week(d: date_type) -> int:
    """0=Sunday ... 6=Saturday."""
    return d.isoweekday() % 7


def date_range(start: date_type, end: date_type) -> Iterator[date_type]:
    """Inclusive day iterator."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def inclusive_days(start: date_type, end: date_type) -> int:
    return (end - start).days + 1


def intervals_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open overlap: StartA < EndB and StartB < EndA."""
    return start_a < end_b and start_b < end_a


def subtract_interval(
    intervals: List[Tuple[int, int]],
    cut_start: int,
    cut_end: int
) -> List[Tuple[int, int]]:
    """Remove [cut_start, cut_end) from a list of disjoint intervals."""
    result = []
    for start, end in intervals:
        if not intervals_overlap(start, end, cut_start, cut_end):
            result.append((start, end))
            continue
        if start < cut_start:
            result.append((start, cut_start))
        if cut_end < end:
            result.append((cut_end, end))
    return result


def week_index(d: date_type, anchor: date_type) -> int:
    """7-day block number of `d` counted from `anchor`."""
    return (d - anchor).days // 7
