"""
Overlap detection between a staff member's shifts.

Windows are half-open: a shift ending at 15:00 and one starting at 15:00
do not conflict.
"""

from collections.abc import Iterable
from datetime import datetime

from hospital_scheduler.models import Shift, ShiftStatus


def windows_overlap(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    return start_a < end_b and start_b < end_a


def conflicting_shifts(
    staff_id: str,
    start: datetime,
    end: datetime,
    existing_shifts: Iterable[Shift],
    *,
    exclude_shift_id: str | None = None,
) -> list[Shift]:
    """
    Shifts already assigned to `staff_id` whose window overlaps [start, end).
    Unassigned and cancelled shifts are never conflict sources.
    """
    return [
        shift
        for shift in existing_shifts
        if shift.id != exclude_shift_id
        and shift.status != ShiftStatus.CANCELLED
        and staff_id in shift.assigned_staff
        and windows_overlap(start, end, shift.start_time, shift.end_time)
    ]


def has_conflict(
    staff_id: str,
    start: datetime,
    end: datetime,
    existing_shifts: Iterable[Shift],
    *,
    exclude_shift_id: str | None = None,
) -> bool:
    return bool(
        conflicting_shifts(
            staff_id,
            start,
            end,
            existing_shifts,
            exclude_shift_id=exclude_shift_id,
        )
    )
