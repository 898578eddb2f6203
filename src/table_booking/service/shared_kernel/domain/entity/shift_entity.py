import attrs

from table_booking.service.shared_kernel.domain.entity.addon_entity import Addon
from table_booking.service.shared_kernel.domain.enum.usage_policy import UsagePolicy


EVENT_SHIFT_TYPE = 'Event'
DEPOSIT_CHARGE_FLAG = 2


@attrs.define(frozen=True)
class TimeSlot:
    time: float  # decimal hours, 18.5 == 18:30
    addons: tuple[Addon, ...] | None = None  # overrides the shift's list when set
    usage: UsagePolicy | None = None  # overrides the shift's policy when set

    @property
    def is_blocked(self) -> bool:
        return self.time < 0


@attrs.define(frozen=True)
class Shift:
    uid: int
    type: str
    name: str
    usage: UsagePolicy | None = None
    charge: int = 0
    max_menu_types: int = 0  # 0 == unlimited
    addons: tuple[Addon, ...] = ()
    times: tuple[TimeSlot, ...] = ()
    message: str | None = None

    @property
    def is_event(self) -> bool:
        return self.type == EVENT_SHIFT_TYPE

    @property
    def requires_deposit(self) -> bool:
        return self.charge == DEPOSIT_CHARGE_FLAG

    def find_slot(self, time: float) -> TimeSlot | None:
        return next((slot for slot in self.times if slot.time == time), None)


@attrs.define(frozen=True)
class Area:
    uid: int | str
    name: str
    times: tuple[float, ...] = ()

    def is_open_at(self, time: float) -> bool:
        return time in self.times


@attrs.define(frozen=True)
class SlotCatalog:
    """Resolved add-on context for one chosen time slot."""

    shift_uid: int
    shift_type: str
    shift_name: str
    time: float
    usage_policy: UsagePolicy | None
    max_menu_types: int = 0
    charge: int = 0
    addons: tuple[Addon, ...] = ()
    areas: tuple[Area, ...] = ()

    @property
    def effective_policy(self) -> UsagePolicy:
        return self.usage_policy if self.usage_policy is not None else UsagePolicy.NONE

    @property
    def menus(self) -> tuple[Addon, ...]:
        return tuple(addon for addon in self.addons if addon.is_menu)

    @property
    def options(self) -> tuple[Addon, ...]:
        return tuple(addon for addon in self.addons if addon.is_option)

    def find(self, uid: int) -> Addon | None:
        return next((addon for addon in self.addons if addon.uid == uid), None)

    def at_position(self, position: int) -> Addon | None:
        return next((addon for addon in self.addons if addon.position == position), None)
