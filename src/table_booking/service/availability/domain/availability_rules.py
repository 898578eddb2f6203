"""
Availability rules over day/month payloads.

Blocked slots (negative times) are dropped, Event shifts are limited to the
times regular service is open, and month payloads are reduced to closed or
event-available dates.
"""

import calendar
from datetime import date

import attrs

from table_booking.service.shared_kernel.domain.entity.availability_entity import (
    DayAvailability,
    MonthAvailability,
)
from table_booking.service.shared_kernel.domain.entity.establishment_config import (
    EstablishmentConfig,
    EventDefinition,
)
from table_booking.service.shared_kernel.domain.entity.shift_entity import (
    Area,
    Shift,
    SlotCatalog,
)
from table_booking.service.shared_kernel.domain.enum.usage_policy import UsagePolicy


EVENT_AVAILABLE_CODES = frozenset({1, 2, 3})
DEFAULT_EVENT_TIME = 18.5
DEFAULT_SHIFT_TYPE = 'Dinner'


def drop_blocked_times(shift: Shift) -> Shift:
    return attrs.evolve(shift, times=tuple(slot for slot in shift.times if not slot.is_blocked))


def regular_service_times(shifts: tuple[Shift, ...]) -> tuple[float, ...]:
    """Sorted, de-duplicated open times of every non-Event shift."""
    times = {
        slot.time for shift in shifts if not shift.is_event for slot in shift.times if slot.time >= 0
    }
    return tuple(sorted(times))


def restrict_event_times(shift: Shift, allowed_times: tuple[float, ...]) -> Shift:
    if not shift.is_event:
        return shift
    allowed = set(allowed_times)
    return attrs.evolve(shift, times=tuple(slot for slot in shift.times if slot.time in allowed))


def apply_event_usage_fallback(shift: Shift, config: EstablishmentConfig | None) -> Shift:
    if not shift.is_event or shift.usage is not None or config is None:
        return shift
    return attrs.evolve(shift, usage=UsagePolicy.from_wire(config.event_usage(shift.uid)))


def normalize_day(
    availability: DayAvailability, config: EstablishmentConfig | None = None
) -> DayAvailability:
    shifts = tuple(drop_blocked_times(shift) for shift in availability.shifts)
    allowed = regular_service_times(shifts)
    shifts = tuple(
        apply_event_usage_fallback(restrict_event_times(shift, allowed), config)
        for shift in shifts
    )
    return attrs.evolve(availability, shifts=shifts)


def default_shift(availability: DayAvailability) -> Shift | None:
    """The shift shown expanded first: Dinner when offered, otherwise the first one."""
    if not availability.shifts:
        return None
    return next(
        (shift for shift in availability.shifts if shift.type == DEFAULT_SHIFT_TYPE),
        availability.shifts[0],
    )


def areas_for_time(areas: tuple[Area, ...], time: float) -> tuple[Area, ...]:
    return tuple(area for area in areas if area.is_open_at(time))


def resolve_slot_catalog(
    availability: DayAvailability, *, shift_uid: int, time: float
) -> SlotCatalog | None:
    """
    Add-on context for one slot. A time slot's own add-ons and usage win over
    the shift's; positions follow the resolved list order.
    """
    shift = next((shift for shift in availability.shifts if shift.uid == shift_uid), None)
    if shift is None:
        return None
    slot = shift.find_slot(time)
    if slot is None:
        return None

    addons = slot.addons if slot.addons else shift.addons
    usage = slot.usage if slot.usage is not None else shift.usage
    return SlotCatalog(
        shift_uid=shift.uid,
        shift_type=shift.type,
        shift_name=shift.name,
        time=time,
        usage_policy=usage,
        max_menu_types=shift.max_menu_types,
        charge=shift.charge,
        addons=tuple(
            attrs.evolve(addon, position=position) for position, addon in enumerate(addons)
        ),
        areas=areas_for_time(availability.areas, time),
    )


def closed_dates(month: MonthAvailability) -> tuple[date, ...]:
    """A day is closed when its primary slot list is present and empty."""
    days_in_month = calendar.monthrange(month.year, month.month)[1]
    closed = []
    for index, day_data in enumerate(month.days[:days_in_month]):
        primary = day_data[0] if isinstance(day_data, (list, tuple)) and day_data else None
        if isinstance(primary, (list, tuple)) and not primary:
            closed.append(date(month.year, month.month, index + 1))
    return tuple(closed)


def event_available_dates(month: MonthAvailability, event_uid: int) -> tuple[date, ...]:
    codes = month.events.get(event_uid, ())
    days_in_month = calendar.monthrange(month.year, month.month)[1]
    return tuple(
        date(month.year, month.month, index + 1)
        for index, code in enumerate(codes[:days_in_month])
        if code in EVENT_AVAILABLE_CODES
    )


def event_midpoint_time(event: EventDefinition) -> float:
    if event.avail:
        ordered = sorted(event.avail)
        return ordered[len(ordered) // 2]
    if event.early is not None and event.late is not None:
        return (event.early + event.late) / 2
    return DEFAULT_EVENT_TIME
