"""
Add-on Constraint Engine

Reducer over an immutable SelectionState. Every mutation returns a
SelectionOutcome: either an accepted new state or a rejection that keeps the
old state, tagged with a ReasonCode. Expected states never raise.

Menu rules depend on the slot's usage policy (one strategy per policy).
Option rules are the same under every policy: quantities are clamped to the
option's own max, the party size and the parent menu's quantity, and an
option that falls below its minimum is removed rather than stored.
"""

from abc import ABC, abstractmethod
import math

from table_booking.platform.logging.loguru_io import Logger
from table_booking.service.reservation.domain.enum.reason_code import ReasonCode
from table_booking.service.reservation.domain.pricing_rules import (
    compute_selection_cost,
    is_visible_for_party,
    visible_menus,
)
from table_booking.service.reservation.domain.value_object.selection_state import (
    CompletionVerdict,
    MenuSelection,
    SelectionCost,
    SelectionOutcome,
    SelectionState,
)
from table_booking.service.shared_kernel.domain.entity.addon_entity import Addon
from table_booking.service.shared_kernel.domain.entity.shift_entity import SlotCatalog
from table_booking.service.shared_kernel.domain.enum.usage_policy import UsagePolicy


def _cap(value: int | None) -> float:
    """0 or None means unlimited."""
    return value if value else math.inf


# =============================================================================
# Menu policy strategies
# =============================================================================


class MenuPolicyStrategy(ABC):
    policy: UsagePolicy

    @abstractmethod
    def select(
        self, state: SelectionState, menu: Addon, *, catalog: SlotCatalog, party_size: int
    ) -> SelectionOutcome:
        pass

    @abstractmethod
    def set_quantity(
        self,
        state: SelectionState,
        menu: Addon,
        quantity: int,
        *,
        catalog: SlotCatalog,
        party_size: int,
    ) -> SelectionOutcome:
        pass

    @abstractmethod
    def check_complete(
        self, state: SelectionState, *, catalog: SlotCatalog, party_size: int
    ) -> CompletionVerdict:
        pass

    def deselect(self, state: SelectionState, menu: Addon) -> SelectionOutcome:
        menus = tuple(entry for entry in state.menus if entry.uid != menu.uid)
        return SelectionOutcome.accept(state.with_menus(menus))


class NoMenuPolicy(MenuPolicyStrategy):
    """Policy 0: menus are not applicable to this slot."""

    policy = UsagePolicy.NONE

    def select(self, state, menu, *, catalog, party_size):
        return SelectionOutcome.reject(state, ReasonCode.MENU_NOT_APPLICABLE)

    def set_quantity(self, state, menu, quantity, *, catalog, party_size):
        return SelectionOutcome.reject(state, ReasonCode.MENU_NOT_APPLICABLE)

    def deselect(self, state, menu):
        return SelectionOutcome.reject(state, ReasonCode.MENU_NOT_APPLICABLE)

    def check_complete(self, state, *, catalog, party_size):
        if state.menus:
            return CompletionVerdict.incomplete(ReasonCode.MENU_NOT_APPLICABLE)
        return CompletionVerdict.ok()


class _ImplicitQuantityPolicy(MenuPolicyStrategy):
    """Shared behaviour of policies 1 and 3, where a menu is either selected or not."""

    def set_quantity(self, state, menu, quantity, *, catalog, party_size):
        if quantity == 0:
            return self.deselect(state, menu)
        if quantity == 1:
            return self.select(state, menu, catalog=catalog, party_size=party_size)
        return SelectionOutcome.reject(state, ReasonCode.INVALID_QUANTITY)

    def _entry(self, menu: Addon) -> MenuSelection:
        return MenuSelection(uid=menu.uid, position=menu.position, usage_policy=self.policy)


class SingleSelectPolicy(_ImplicitQuantityPolicy):
    """Policy 1: radio selection, a new pick replaces the previous one."""

    policy = UsagePolicy.SINGLE_SELECT

    def select(self, state, menu, *, catalog, party_size):
        return SelectionOutcome.accept(state.with_menus((self._entry(menu),)))

    def check_complete(self, state, *, catalog, party_size):
        if not state.menus:
            return CompletionVerdict.incomplete(ReasonCode.SELECT_MENU_POLICY_1)
        return CompletionVerdict.ok()


class OptionalMultiSelectPolicy(_ImplicitQuantityPolicy):
    """Policy 3: optional checkboxes, capped by maxMenuTypes and the party size."""

    policy = UsagePolicy.OPTIONAL_MULTI_SELECT

    @staticmethod
    def selection_cap(catalog: SlotCatalog, party_size: int) -> float:
        return min(_cap(catalog.max_menu_types), _cap(party_size if party_size > 0 else None))

    def select(self, state, menu, *, catalog, party_size):
        if state.find_menu(menu.uid):
            return SelectionOutcome.accept(state)
        if state.distinct_menu_count >= self.selection_cap(catalog, party_size):
            return SelectionOutcome.reject(state, ReasonCode.MAX_MENU_TYPES_EXCEEDED)
        return SelectionOutcome.accept(state.with_menus(state.menus + (self._entry(menu),)))

    def check_complete(self, state, *, catalog, party_size):
        if state.distinct_menu_count > self.selection_cap(catalog, party_size):
            return CompletionVerdict.incomplete(ReasonCode.MAX_MENU_TYPES_EXCEEDED)
        return CompletionVerdict.ok()


class QuantityPolicy(MenuPolicyStrategy):
    """Policies 2 and 4: per-item quantities whose sum is bounded by the party size."""

    def __init__(self, policy: UsagePolicy) -> None:
        self.policy = policy

    def select(self, state, menu, *, catalog, party_size):
        current = state.find_menu(menu.uid)
        next_quantity = (current.effective_quantity if current else 0) + 1
        return self.set_quantity(
            state, menu, next_quantity, catalog=catalog, party_size=party_size
        )

    def set_quantity(self, state, menu, quantity, *, catalog, party_size):
        if quantity < 0:
            return SelectionOutcome.reject(state, ReasonCode.INVALID_QUANTITY)
        if quantity == 0:
            return self.deselect(state, menu)

        current = state.find_menu(menu.uid)
        current_quantity = current.effective_quantity if current else 0
        if quantity > current_quantity:
            new_total = state.menu_quantity_total + (quantity - current_quantity)
            if party_size > 0 and new_total > party_size:
                return SelectionOutcome.reject(state, ReasonCode.TOTAL_MENU_QUANTITY_EXCEEDED)
            if current is None and state.distinct_menu_count >= _cap(catalog.max_menu_types):
                return SelectionOutcome.reject(state, ReasonCode.MAX_MENU_TYPES_EXCEEDED)

        entry = MenuSelection(
            uid=menu.uid, position=menu.position, usage_policy=self.policy, quantity=quantity
        )
        if current is None:
            menus = state.menus + (entry,)
        else:
            menus = tuple(entry if item.uid == menu.uid else item for item in state.menus)
        return SelectionOutcome.accept(state.with_menus(menus))

    def check_complete(self, state, *, catalog, party_size):
        total = state.menu_quantity_total
        if state.distinct_menu_count > _cap(catalog.max_menu_types):
            return CompletionVerdict.incomplete(ReasonCode.MAX_MENU_TYPES_EXCEEDED)
        if self.policy == UsagePolicy.QUANTITY_CEILING:
            if party_size > 0 and total > party_size:
                return CompletionVerdict.incomplete(ReasonCode.TOTAL_MENU_QUANTITY_EXCEEDED)
            return CompletionVerdict.ok()
        if party_size > 0:
            if total != party_size:
                return CompletionVerdict.incomplete(ReasonCode.TOTAL_MENU_QUANTITY_MISMATCH)
            return CompletionVerdict.ok()
        # TODO: confirm with product whether a zero party size should keep the at-least-one rule
        if total < 1:
            return CompletionVerdict.incomplete(ReasonCode.SELECT_MENU_POLICY_2_GUESTS_0)
        return CompletionVerdict.ok()


MENU_POLICY_STRATEGIES: dict[UsagePolicy, MenuPolicyStrategy] = {
    UsagePolicy.NONE: NoMenuPolicy(),
    UsagePolicy.SINGLE_SELECT: SingleSelectPolicy(),
    UsagePolicy.QUANTITY_EXACT: QuantityPolicy(UsagePolicy.QUANTITY_EXACT),
    UsagePolicy.OPTIONAL_MULTI_SELECT: OptionalMultiSelectPolicy(),
    UsagePolicy.QUANTITY_CEILING: QuantityPolicy(UsagePolicy.QUANTITY_CEILING),
}


def strategy_for(catalog: SlotCatalog) -> MenuPolicyStrategy:
    return MENU_POLICY_STRATEGIES[catalog.effective_policy]


# =============================================================================
# Option gating
# =============================================================================


def parent_quantity(catalog: SlotCatalog, state: SelectionState, option: Addon) -> float:
    """Effective quantity of the option's parent menu: unbounded when unlinked, 0 if unselected."""
    if not option.has_parent:
        return math.inf
    parent = state.menu_at_position(option.parent)
    if parent is None:
        return 0
    return parent.effective_quantity


def option_quantity_ceiling(
    catalog: SlotCatalog, state: SelectionState, option: Addon, party_size: int
) -> float:
    return min(
        _cap(option.max_quantity),
        _cap(party_size if party_size > 0 else None),
        parent_quantity(catalog, state, option),
    )


def clamp_option_quantity(
    catalog: SlotCatalog, state: SelectionState, option: Addon, quantity: int, party_size: int
) -> int:
    """Clamped quantity, or 0 when the result falls below the option's minimum."""
    ceiling = option_quantity_ceiling(catalog, state, option, party_size)
    clamped = int(min(quantity, ceiling))
    if clamped < max(option.min_quantity, 1):
        return 0
    return clamped


# =============================================================================
# Completion check
# =============================================================================


def is_selection_complete(
    catalog: SlotCatalog, party_size: int, state: SelectionState
) -> CompletionVerdict:
    """
    Pure completion verdict for the "proceed" action.

    Order of checks: options without their parent, then the slot's menu
    policy (only when at least one menu is visible for the party size, or
    menus were selected where none are allowed), then option minimums.
    """
    for uid in state.options:
        option = catalog.find(uid)
        if option is not None and parent_quantity(catalog, state, option) == 0:
            return CompletionVerdict.incomplete(ReasonCode.OPTION_PARENT_MISSING)

    strategy = strategy_for(catalog)
    if visible_menus(catalog, party_size) or state.menus:
        verdict = strategy.check_complete(state, catalog=catalog, party_size=party_size)
        if not verdict.complete:
            return verdict

    for uid, quantity in state.options.items():
        option = catalog.find(uid)
        if option is not None and 0 < quantity < option.min_quantity:
            return CompletionVerdict.incomplete(ReasonCode.OPTION_MIN_QUANTITY_NOT_MET)

    return CompletionVerdict.ok()


# =============================================================================
# Engine
# =============================================================================


class AddonConstraintEngine:
    """Applies menu and option mutations for one slot catalog and party size."""

    def __init__(self, *, catalog: SlotCatalog, party_size: int) -> None:
        self.catalog = catalog
        self.party_size = party_size
        self.strategy = strategy_for(catalog)

    def _lookup(self, uid: int, *, menu: bool) -> Addon | ReasonCode:
        addon = self.catalog.find(uid)
        if addon is None:
            return ReasonCode.UNKNOWN_ADDON
        if addon.is_menu != menu:
            return ReasonCode.ADDON_TYPE_MISMATCH
        return addon

    @Logger.io
    def select_menu(self, state: SelectionState, uid: int) -> SelectionOutcome:
        menu = self._lookup(uid, menu=True)
        if isinstance(menu, ReasonCode):
            return SelectionOutcome.reject(state, menu)
        if self.catalog.effective_policy == UsagePolicy.NONE:
            return SelectionOutcome.reject(state, ReasonCode.MENU_NOT_APPLICABLE)
        if not is_visible_for_party(menu, self.party_size):
            return SelectionOutcome.reject(state, ReasonCode.ADDON_NOT_AVAILABLE_FOR_PARTY_SIZE)
        outcome = self.strategy.select(
            state, menu, catalog=self.catalog, party_size=self.party_size
        )
        return self._after_menu_change(outcome)

    @Logger.io
    def deselect_menu(self, state: SelectionState, uid: int) -> SelectionOutcome:
        menu = self._lookup(uid, menu=True)
        if isinstance(menu, ReasonCode):
            return SelectionOutcome.reject(state, menu)
        return self._after_menu_change(self.strategy.deselect(state, menu))

    @Logger.io
    def set_menu_quantity(self, state: SelectionState, uid: int, quantity: int) -> SelectionOutcome:
        menu = self._lookup(uid, menu=True)
        if isinstance(menu, ReasonCode):
            return SelectionOutcome.reject(state, menu)
        if self.catalog.effective_policy == UsagePolicy.NONE:
            return SelectionOutcome.reject(state, ReasonCode.MENU_NOT_APPLICABLE)
        if quantity < 0:
            return SelectionOutcome.reject(state, ReasonCode.INVALID_QUANTITY)
        if quantity > 0 and not is_visible_for_party(menu, self.party_size):
            return SelectionOutcome.reject(state, ReasonCode.ADDON_NOT_AVAILABLE_FOR_PARTY_SIZE)
        outcome = self.strategy.set_quantity(
            state, menu, quantity, catalog=self.catalog, party_size=self.party_size
        )
        return self._after_menu_change(outcome)

    @Logger.io
    def set_option_quantity(
        self, state: SelectionState, uid: int, quantity: int
    ) -> SelectionOutcome:
        option = self._lookup(uid, menu=False)
        if isinstance(option, ReasonCode):
            return SelectionOutcome.reject(state, option)
        if quantity < 0:
            return SelectionOutcome.reject(state, ReasonCode.INVALID_QUANTITY)
        if quantity == 0:
            return SelectionOutcome.accept(state.with_option(uid, 0))
        if not is_visible_for_party(option, self.party_size):
            return SelectionOutcome.reject(state, ReasonCode.ADDON_NOT_AVAILABLE_FOR_PARTY_SIZE)

        clamped = clamp_option_quantity(self.catalog, state, option, quantity, self.party_size)
        if clamped == 0:
            reason = (
                ReasonCode.OPTION_PARENT_MISSING
                if parent_quantity(self.catalog, state, option) == 0
                else ReasonCode.OPTION_REMOVED
            )
            Logger.base.info(
                f'🧹 [ADDON] Option {option.name} ({uid}) not stored: '
                f'requested={quantity}, reason={reason}'
            )
            return SelectionOutcome.accept(state.with_option(uid, 0), reason=reason, adjusted=True)
        if clamped < quantity:
            return SelectionOutcome.accept(
                state.with_option(uid, clamped),
                reason=ReasonCode.OPTION_QUANTITY_CLAMPED,
                adjusted=True,
            )
        return SelectionOutcome.accept(state.with_option(uid, clamped))

    @Logger.io
    def reconcile(self, state: SelectionState) -> SelectionOutcome:
        """
        Repair a state after the party size or the menu selection changed.

        Menus no longer visible for the party size are dropped, then every
        option is re-clamped against its parent and the party size.
        """
        adjusted = False
        reason: ReasonCode | None = None

        kept_menus = tuple(
            entry
            for entry in state.menus
            if (addon := self.catalog.find(entry.uid)) is not None
            and is_visible_for_party(addon, self.party_size)
        )
        if kept_menus != state.menus:
            state = state.with_menus(kept_menus)
            adjusted, reason = True, ReasonCode.ADDON_NOT_AVAILABLE_FOR_PARTY_SIZE

        for uid, quantity in list(state.options.items()):
            option = self.catalog.find(uid)
            if option is None:
                state = state.with_option(uid, 0)
                adjusted, reason = True, ReasonCode.OPTION_REMOVED
                continue
            clamped = clamp_option_quantity(self.catalog, state, option, quantity, self.party_size)
            if clamped == quantity:
                continue
            adjusted = True
            if clamped == 0:
                reason = ReasonCode.OPTION_REMOVED
                Logger.base.info(
                    f'🧹 [ADDON] Removed option {option.name} ({uid}): '
                    f'quantity {quantity} fell below its minimum after re-clamp'
                )
            elif reason is None:
                reason = ReasonCode.OPTION_QUANTITY_CLAMPED
            state = state.with_option(uid, clamped)

        return SelectionOutcome.accept(state, reason=reason, adjusted=adjusted)

    def is_complete(self, state: SelectionState) -> CompletionVerdict:
        return is_selection_complete(self.catalog, self.party_size, state)

    def cost(self, state: SelectionState) -> SelectionCost:
        return compute_selection_cost(self.catalog, self.party_size, state)

    def _after_menu_change(self, outcome: SelectionOutcome) -> SelectionOutcome:
        if not outcome.accepted:
            Logger.base.debug(f'🚫 [ADDON] Menu mutation rejected: {outcome.reason}')
            return outcome
        repaired = self.reconcile(outcome.state)
        if repaired.adjusted:
            return repaired
        return outcome
