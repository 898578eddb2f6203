"""Whether a hold needs a card, and the amount shown to the user."""

import attrs

from table_booking.service.reservation.domain.entity.hold_entity import Hold
from table_booking.service.reservation.domain.pricing_rules import compute_selection_cost
from table_booking.service.reservation.domain.value_object.selection_state import SelectionState
from table_booking.service.shared_kernel.domain.entity.shift_entity import (
    DEPOSIT_CHARGE_FLAG,
    SlotCatalog,
)
from table_booking.service.shared_kernel.domain.enum.card_code import CardCode


@attrs.define(frozen=True)
class ChargeRequirement:
    required: bool
    reason: str
    hold: Hold  # effective hold the payment step works from

    @property
    def amount(self) -> int:
        return self.hold.charge_amount


def effective_hold(
    hold: Hold, catalog: SlotCatalog, party_size: int, state: SelectionState
) -> Hold:
    """A deposit shift charges the add-on total even when the hold itself carries no card code."""
    if catalog.charge == DEPOSIT_CHARGE_FLAG:
        return hold.as_deposit(compute_selection_cost(catalog, party_size, state).total)
    return hold


def _chargeable_addon(catalog: SlotCatalog, state: SelectionState) -> str | None:
    for menu in state.menus:
        addon = catalog.find(menu.uid)
        if addon and addon.charge == DEPOSIT_CHARGE_FLAG:
            return addon.name
    for uid, quantity in state.options.items():
        addon = catalog.find(uid)
        if quantity > 0 and addon and addon.charge == DEPOSIT_CHARGE_FLAG:
            return addon.name
    return None


def detect_charge(
    hold: Hold, catalog: SlotCatalog, party_size: int, state: SelectionState
) -> ChargeRequirement:
    if hold.card > CardCode.NONE:
        reason = (
            'No-show protection required'
            if hold.card == CardCode.NO_SHOW_PROTECTION
            else 'Deposit required'
        )
        return ChargeRequirement(required=True, reason=reason, hold=hold)

    if catalog.charge == DEPOSIT_CHARGE_FLAG:
        return ChargeRequirement(
            required=True,
            reason='Shift requires deposit',
            hold=effective_hold(hold, catalog, party_size, state),
        )

    if name := _chargeable_addon(catalog, state):
        amount = compute_selection_cost(catalog, party_size, state).total
        return ChargeRequirement(
            required=True,
            reason=f'Add-on "{name}" requires deposit',
            hold=hold.as_deposit(amount),
        )

    return ChargeRequirement(required=False, reason='No payment required', hold=hold)
