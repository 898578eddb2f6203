from datetime import date
from typing import Any

import attrs

from table_booking.service.shared_kernel.domain.entity.shift_entity import Area, Shift


@attrs.define(frozen=True)
class DayAvailability:
    day: date
    covers: int
    shifts: tuple[Shift, ...] = ()
    areas: tuple[Area, ...] = ()
    message: str | None = None

    @property
    def has_slots(self) -> bool:
        return any(shift.times for shift in self.shifts)


@attrs.define(frozen=True)
class MonthAvailability:
    """
    Raw per-day availability for one month.

    ``days[i]`` holds the day's slot lists; the day is closed when its primary
    list (``days[i][0]``) is an empty list. ``events`` maps event uid to one
    availability code per day.
    """

    year: int
    month: int
    days: tuple[Any, ...] = ()
    events: dict[int, tuple[int, ...]] = attrs.field(factory=dict)

    @property
    def key(self) -> str:
        return f'{self.year:04d}-{self.month:02d}'
