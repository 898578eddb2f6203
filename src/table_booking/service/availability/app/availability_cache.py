"""
Availability Cache

- Closed dates keyed by "YYYY-MM", fetched at most once per month. A second
  request for a cached or in-flight month awaits the same task.
- Day availability is fetched after a debounce window. A new request cancels
  a fetch still waiting out its debounce. Fetches already on the wire run to
  completion, and every request bumps a generation counter so results of
  superseded generations are dropped instead of overwriting a newer choice.
"""

import asyncio
from datetime import date

from table_booking.platform.config.core_setting import settings
from table_booking.platform.exception.exceptions import AvailabilityError, RemoteTimeoutError
from table_booking.platform.logging.loguru_io import Logger
from table_booking.service.availability.app.interface.i_availability_gateway import (
    IAvailabilityGateway,
)
from table_booking.service.availability.domain.availability_rules import (
    closed_dates,
    event_available_dates,
    event_midpoint_time,
    normalize_day,
    resolve_slot_catalog,
)
from table_booking.service.shared_kernel.domain.entity.availability_entity import DayAvailability
from table_booking.service.shared_kernel.domain.entity.establishment_config import (
    EstablishmentConfig,
    EventDefinition,
)
from table_booking.service.shared_kernel.domain.entity.shift_entity import SlotCatalog


NO_AVAILABILITY_MESSAGE = 'No availability found for the selected date and party size.'


def month_key(year: int, month: int) -> str:
    return f'{year:04d}-{month:02d}'


class AvailabilityCache:
    def __init__(
        self,
        *,
        gateway: IAvailabilityGateway,
        est: str,
        config: EstablishmentConfig | None = None,
        debounce_seconds: float | None = None,
        month_covers: int | None = None,
    ) -> None:
        self.gateway = gateway
        self.est = est
        self.config = config
        self.debounce_seconds = (
            settings.AVAILABILITY_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self.month_covers = month_covers or settings.MONTH_AVAIL_DEFAULT_COVERS

        self._closed_dates: dict[str, tuple[date, ...]] = {}
        self._month_in_flight: dict[str, asyncio.Task[tuple[date, ...]]] = {}
        self._event_dates: dict[tuple[int, str], tuple[date, ...]] = {}

        self._generation = 0
        self._pending_day: asyncio.Task[DayAvailability | None] | None = None
        self._day_in_flight: set[asyncio.Task[DayAvailability | None]] = set()
        self.current: DayAvailability | None = None
        self.last_error: str | None = None

    # =========================================================================
    # Closed dates
    # =========================================================================

    async def ensure_month(self, *, year: int, month: int) -> tuple[date, ...]:
        key = month_key(year, month)
        if key in self._closed_dates:
            return self._closed_dates[key]

        task = self._month_in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load_month(year, month))
            self._month_in_flight[key] = task
        return await asyncio.shield(task)

    async def _load_month(self, year: int, month: int) -> tuple[date, ...]:
        key = month_key(year, month)
        try:
            availability = await self.gateway.fetch_month_availability(
                est=self.est, year=year, month=month, covers=self.month_covers
            )
            dates = closed_dates(availability)
            self._closed_dates[key] = dates
            Logger.base.info(f'📅 [AVAILABILITY] {key}: {len(dates)} closed dates cached')
            return dates
        except (AvailabilityError, RemoteTimeoutError) as e:
            Logger.base.warning(f'⚠️ [AVAILABILITY] Month {key} not cached: {e.message}')
            return ()
        finally:
            self._month_in_flight.pop(key, None)

    def is_month_cached(self, *, year: int, month: int) -> bool:
        return month_key(year, month) in self._closed_dates

    def disabled_dates(self) -> list[date]:
        return sorted(day for dates in self._closed_dates.values() for day in dates)

    def is_closed(self, day: date) -> bool:
        return day in self._closed_dates.get(month_key(day.year, day.month), ())

    async def event_dates(
        self, *, event: EventDefinition, year: int, month: int, covers: int | None = None
    ) -> tuple[date, ...]:
        """Days of the month on which the event can be booked."""
        cache_key = (event.uid, month_key(year, month))
        if cache_key in self._event_dates:
            return self._event_dates[cache_key]
        availability = await self.gateway.fetch_month_availability(
            est=self.est,
            year=year,
            month=month,
            covers=covers or self.month_covers,
            time=event_midpoint_time(event),
            event=event.uid,
        )
        dates = event_available_dates(availability, event.uid)
        self._event_dates[cache_key] = dates
        return dates

    # =========================================================================
    # Day availability
    # =========================================================================

    @Logger.io
    async def fetch_day_availability(self, *, day: date, covers: int) -> DayAvailability:
        """
        Raises:
            AvailabilityError: no shifts and no explanatory message for this date
        """
        availability = normalize_day(
            await self.gateway.fetch_day_availability(est=self.est, covers=covers, day=day),
            self.config,
        )
        if not availability.shifts and not availability.message:
            raise AvailabilityError(NO_AVAILABILITY_MESSAGE)
        return availability

    def request_day_availability(
        self, *, day: date | None, covers: int
    ) -> asyncio.Task[DayAvailability | None] | None:
        """
        Debounced fetch. An earlier fetch still inside its debounce window is
        cancelled; invalid input clears the current result without fetching.
        """
        self._generation += 1
        self.cancel_pending()
        if day is None or covers < 1:
            self.current = None
            return None
        task = asyncio.create_task(self._debounced_fetch(self._generation, day, covers))
        self._day_in_flight.add(task)
        task.add_done_callback(self._day_in_flight.discard)
        self._pending_day = task
        return task

    async def _debounced_fetch(
        self, generation: int, day: date, covers: int
    ) -> DayAvailability | None:
        await asyncio.sleep(self.debounce_seconds)
        if self._pending_day is asyncio.current_task():
            self._pending_day = None
        try:
            availability = await self.fetch_day_availability(day=day, covers=covers)
        except (AvailabilityError, RemoteTimeoutError) as e:
            if generation == self._generation:
                self.current = None
                self.last_error = e.message
            return None

        if generation != self._generation:
            Logger.base.debug(
                f'🗑️ [AVAILABILITY] Dropping stale result for {day} (generation {generation})'
            )
            return None
        self.current = availability
        self.last_error = None
        return availability

    def cancel_pending(self) -> None:
        task, self._pending_day = self._pending_day, None
        if task is not None and not task.done():
            task.cancel()

    def slot_catalog(self, *, shift_uid: int, time: float) -> SlotCatalog | None:
        if self.current is None:
            return None
        return resolve_slot_catalog(self.current, shift_uid=shift_uid, time=time)

    async def aclose(self) -> None:
        self.cancel_pending()
        for day_task in list(self._day_in_flight):
            day_task.cancel()
        for task in list(self._month_in_flight.values()):
            task.cancel()
        self._month_in_flight.clear()
