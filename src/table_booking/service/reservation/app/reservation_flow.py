"""
Reservation form orchestration.

Holds the visitor's date, party size, slot, add-on selection and seating
area; feeds them through the constraint engine and hands a complete
BookingSelection to the session state machine.
"""

import asyncio
from datetime import date

import attrs

from table_booking.platform.exception.exceptions import DomainError, SelectionInvalidError
from table_booking.platform.logging.loguru_io import Logger
from table_booking.service.availability.app.availability_cache import AvailabilityCache
from table_booking.service.reservation.app.booking_session_state_machine import (
    BookingSessionStateMachine,
)
from table_booking.service.reservation.domain.addon_constraint_engine import (
    AddonConstraintEngine,
)
from table_booking.service.reservation.domain.entity.hold_entity import Hold, HoldRequest
from table_booking.service.reservation.domain.selection_hint import (
    PROCEED_LABEL,
    SELECT_AREA_HINT,
    SELECT_TIME_HINT,
    localized,
    selection_hint,
)
from table_booking.service.reservation.domain.value_object.booking_selection import (
    BookingSelection,
)
from table_booking.service.reservation.domain.value_object.selection_state import (
    SelectionCost,
    SelectionOutcome,
    SelectionState,
)
from table_booking.service.shared_kernel.domain.entity.establishment_config import (
    EstablishmentConfig,
)
from table_booking.service.shared_kernel.domain.entity.shift_entity import (
    EVENT_SHIFT_TYPE,
    SlotCatalog,
)
from table_booking.service.shared_kernel.domain.time_format import format_decimal_time


@attrs.define(frozen=True)
class ProceedState:
    enabled: bool
    message: str


class ReservationFlow:
    def __init__(
        self,
        *,
        config: EstablishmentConfig,
        availability: AvailabilityCache,
        session: BookingSessionStateMachine,
    ) -> None:
        self.config = config
        self.availability = availability
        self.session = session

        self.day: date | None = None
        self.party_size: int = 0
        self.catalog: SlotCatalog | None = None
        self.selection = SelectionState.empty()
        self.area: str = ''

    # =========================================================================
    # Date / party size / slot
    # =========================================================================

    def set_party_size(self, party_size: int) -> asyncio.Task | None:
        if party_size and not self.config.party_min <= party_size <= self.config.party_max:
            raise DomainError(
                f'Party size must be between {self.config.party_min} and {self.config.party_max}'
            )
        self.party_size = party_size
        if self.catalog is not None:
            self.selection = self.engine.reconcile(self.selection).state
        return self.availability.request_day_availability(day=self.day, covers=party_size)

    def set_date(self, day: date | None) -> asyncio.Task | None:
        if day is not None and self.availability.is_closed(day):
            raise DomainError(f'{day.isoformat()} is closed for bookings')
        self.day = day
        self._clear_slot()
        return self.availability.request_day_availability(day=day, covers=self.party_size)

    def select_time(self, *, shift_uid: int, time: float) -> SlotCatalog:
        catalog = self.availability.slot_catalog(shift_uid=shift_uid, time=time)
        if catalog is None:
            raise DomainError(
                f'{format_decimal_time(time)} is not available for shift {shift_uid}', 404
            )
        self.catalog = catalog
        self.selection = SelectionState.empty()
        self.area = ''
        Logger.base.info(
            f'🕒 [FLOW] Selected {catalog.shift_name} at {format_decimal_time(time, 24)} '
            f'(usage={catalog.usage_policy}, addons={len(catalog.addons)})'
        )
        return catalog

    def select_area(self, area: str | int | None) -> None:
        self.area = '' if area is None else str(area).strip()

    def _clear_slot(self) -> None:
        self.catalog = None
        self.selection = SelectionState.empty()
        self.area = ''

    # =========================================================================
    # Add-ons
    # =========================================================================

    @property
    def engine(self) -> AddonConstraintEngine:
        if self.catalog is None:
            raise DomainError('Select a time before choosing add-ons')
        return AddonConstraintEngine(catalog=self.catalog, party_size=self.party_size)

    def _apply(self, outcome: SelectionOutcome) -> SelectionOutcome:
        if outcome.accepted:
            self.selection = outcome.state
        return outcome

    def select_menu(self, uid: int) -> SelectionOutcome:
        return self._apply(self.engine.select_menu(self.selection, uid))

    def deselect_menu(self, uid: int) -> SelectionOutcome:
        return self._apply(self.engine.deselect_menu(self.selection, uid))

    def set_menu_quantity(self, uid: int, quantity: int) -> SelectionOutcome:
        return self._apply(self.engine.set_menu_quantity(self.selection, uid, quantity))

    def set_option_quantity(self, uid: int, quantity: int) -> SelectionOutcome:
        return self._apply(self.engine.set_option_quantity(self.selection, uid, quantity))

    def cost(self) -> SelectionCost:
        if self.catalog is None:
            return SelectionCost()
        return self.engine.cost(self.selection)

    # =========================================================================
    # Proceed
    # =========================================================================

    @property
    def area_required(self) -> bool:
        """Area choice is mandatory when enabled, "any" is not allowed and an area is open."""
        return bool(
            self.config.area_selection_required and self.catalog is not None and self.catalog.areas
        )

    def proceed_state(self) -> ProceedState:
        lng = self.config.lng
        if self.catalog is None:
            return ProceedState(enabled=False, message=localized(lng, SELECT_TIME_HINT))
        if self.area_required and not self.area:
            return ProceedState(enabled=False, message=localized(lng, SELECT_AREA_HINT))
        verdict = self.engine.is_complete(self.selection)
        if not verdict.complete:
            return ProceedState(
                enabled=False,
                message=selection_hint(
                    verdict.reason,
                    lng=lng,
                    guests=self.party_size,
                    max_menu_types=self.catalog.max_menu_types,
                ),
            )
        return ProceedState(enabled=True, message=localized(lng, PROCEED_LABEL))

    def booking_selection(self) -> BookingSelection:
        if self.day is None or self.catalog is None or self.party_size < 1:
            raise SelectionInvalidError(localized(self.config.lng, SELECT_TIME_HINT))
        return BookingSelection(
            day=self.day,
            party_size=self.party_size,
            catalog=self.catalog,
            selection=self.selection,
            area=self.area,
            area_required=self.area_required,
            event=self.catalog.shift_uid if self.catalog.shift_type == EVENT_SHIFT_TYPE else None,
        )

    def build_hold_request(self) -> HoldRequest:
        return self.booking_selection().to_hold_request(
            est=self.config.est, language=self.session.language
        )

    async def proceed(self) -> Hold | None:
        return await self.session.proceed_to_booking(booking=self.booking_selection())
