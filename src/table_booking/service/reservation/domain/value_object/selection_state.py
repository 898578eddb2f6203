from types import MappingProxyType
from typing import Mapping

import attrs

from table_booking.service.reservation.domain.enum.reason_code import ReasonCode
from table_booking.service.shared_kernel.domain.enum.usage_policy import UsagePolicy


def _freeze_options(options: Mapping[int, int]) -> Mapping[int, int]:
    return MappingProxyType(dict(options))


@attrs.define(frozen=True)
class MenuSelection:
    uid: int
    position: int
    usage_policy: UsagePolicy
    quantity: int | None = None  # None == implicit 1 (policies 1 and 3)

    @property
    def effective_quantity(self) -> int:
        return 1 if self.quantity is None else self.quantity


@attrs.define(frozen=True)
class SelectionState:
    """
    Immutable selection of menus (ordered) and options (uid -> quantity).

    Every mutation produces a new state; option insertion order is kept
    because it is the wire encoding order.
    """

    menus: tuple[MenuSelection, ...] = ()
    options: Mapping[int, int] = attrs.field(factory=dict, converter=_freeze_options)

    @classmethod
    def empty(cls) -> 'SelectionState':
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.menus and not self.options

    @property
    def menu_quantity_total(self) -> int:
        return sum(menu.effective_quantity for menu in self.menus)

    @property
    def distinct_menu_count(self) -> int:
        return len(self.menus)

    def find_menu(self, uid: int) -> MenuSelection | None:
        return next((menu for menu in self.menus if menu.uid == uid), None)

    def menu_at_position(self, position: int) -> MenuSelection | None:
        return next((menu for menu in self.menus if menu.position == position), None)

    def with_menus(self, menus: tuple[MenuSelection, ...]) -> 'SelectionState':
        return attrs.evolve(self, menus=menus)

    def with_option(self, uid: int, quantity: int) -> 'SelectionState':
        options = dict(self.options)
        if quantity > 0:
            options[uid] = quantity
        else:
            options.pop(uid, None)
        return attrs.evolve(self, options=options)


@attrs.define(frozen=True)
class SelectionOutcome:
    accepted: bool
    state: SelectionState
    reason: ReasonCode | None = None
    adjusted: bool = False

    @classmethod
    def accept(
        cls, state: SelectionState, *, reason: ReasonCode | None = None, adjusted: bool = False
    ) -> 'SelectionOutcome':
        return cls(accepted=True, state=state, reason=reason, adjusted=adjusted)

    @classmethod
    def reject(cls, state: SelectionState, reason: ReasonCode) -> 'SelectionOutcome':
        return cls(accepted=False, state=state, reason=reason)


@attrs.define(frozen=True)
class CompletionVerdict:
    complete: bool
    reason: ReasonCode | None = None

    @classmethod
    def ok(cls) -> 'CompletionVerdict':
        return cls(complete=True)

    @classmethod
    def incomplete(cls, reason: ReasonCode) -> 'CompletionVerdict':
        return cls(complete=False, reason=reason)


@attrs.define(frozen=True)
class CostLine:
    uid: int
    name: str
    quantity: int
    unit_price: int
    amount: int


@attrs.define(frozen=True)
class SelectionCost:
    total: int = 0
    lines: tuple[CostLine, ...] = ()
