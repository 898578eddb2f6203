"""
Pricing and eligibility rules for add-ons.

Pure functions: no state, no logging, no exceptions for expected inputs.
"""

import math

from table_booking.service.reservation.domain.value_object.selection_state import (
    CostLine,
    SelectionCost,
    SelectionState,
)
from table_booking.service.shared_kernel.domain.entity.addon_entity import Addon
from table_booking.service.shared_kernel.domain.entity.shift_entity import SlotCatalog
from table_booking.service.shared_kernel.domain.enum.usage_policy import UsagePolicy


def is_visible_for_party(addon: Addon, party_size: int) -> bool:
    """An add-on is shown when the party size sits inside its guest bounds (0 shows everything)."""
    if party_size <= 0:
        return True
    upper = addon.max_guests if addon.max_guests is not None else math.inf
    return addon.min_guests <= party_size <= upper


def visible_addons(catalog: SlotCatalog, party_size: int) -> tuple[Addon, ...]:
    return tuple(addon for addon in catalog.addons if is_visible_for_party(addon, party_size))


def visible_menus(catalog: SlotCatalog, party_size: int) -> tuple[Addon, ...]:
    return tuple(addon for addon in visible_addons(catalog, party_size) if addon.is_menu)


def line_cost(
    addon: Addon, *, quantity: int, party_size: int, usage_policy: UsagePolicy | None
) -> int:
    """
    Cost of one selected add-on line in minor units.

    Per-guest items are multiplied by the party size, except under the
    quantity policies (2 and 4) where the chosen quantity already is the
    per-guest allocation.
    """
    if quantity <= 0:
        return 0
    amount = addon.price * quantity
    if addon.is_per_guest and not (usage_policy is not None and usage_policy.is_quantity_based):
        amount *= max(party_size, 1)
    return amount


def compute_selection_cost(
    catalog: SlotCatalog, party_size: int, state: SelectionState
) -> SelectionCost:
    lines: list[CostLine] = []

    for menu in state.menus:
        addon = catalog.find(menu.uid)
        if addon is None:
            continue
        quantity = menu.effective_quantity
        lines.append(
            CostLine(
                uid=addon.uid,
                name=addon.name,
                quantity=quantity,
                unit_price=addon.price,
                amount=line_cost(
                    addon,
                    quantity=quantity,
                    party_size=party_size,
                    usage_policy=menu.usage_policy,
                ),
            )
        )

    for uid, quantity in state.options.items():
        addon = catalog.find(uid)
        if addon is None or quantity <= 0:
            continue
        lines.append(
            CostLine(
                uid=addon.uid,
                name=addon.name,
                quantity=quantity,
                unit_price=addon.price,
                amount=line_cost(
                    addon,
                    quantity=quantity,
                    party_size=party_size,
                    usage_policy=catalog.usage_policy,
                ),
            )
        )

    return SelectionCost(total=sum(line.amount for line in lines), lines=tuple(lines))
