from datetime import date

import attrs

from table_booking.service.reservation.domain.addon_formatter import (
    format_addons_for_api,
    format_area_for_api,
)
from table_booking.service.reservation.domain.entity.hold_entity import HoldRequest
from table_booking.service.reservation.domain.value_object.selection_state import SelectionState
from table_booking.service.shared_kernel.domain.entity.shift_entity import SlotCatalog


@attrs.define(frozen=True)
class BookingSelection:
    """Everything the visitor chose before asking for a hold."""

    day: date
    party_size: int
    catalog: SlotCatalog
    selection: SelectionState = attrs.field(factory=SelectionState)
    area: str = ''
    area_required: bool = False
    event: int | None = None

    def to_hold_request(self, *, est: str, language: str) -> HoldRequest:
        return HoldRequest(
            est=est,
            covers=self.party_size,
            day=self.day,
            time=self.catalog.time,
            addons=format_addons_for_api(self.selection),
            area=format_area_for_api(self.area),
            event=self.event,
            language=language,
        )
