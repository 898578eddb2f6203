import attrs

from table_booking.service.shared_kernel.domain.enum.addon_type import AddonType


UNLINKED_PARENT = -1
PER_GUEST = 'Guest'
PER_ITEM = 'Item'


@attrs.define(frozen=True)
class Addon:
    """
    A selectable Menu or Option item attached to a shift or time slot.

    ``min_guests``/``max_guests`` bound the party sizes the item is shown for.
    ``min_quantity``/``max_quantity`` bound how many of an Option may be chosen.
    ``parent`` is the ordinal position of a Menu in the same add-on list, or -1.
    """

    uid: int
    type: AddonType
    name: str
    price: int = 0  # minor currency units
    per: str = PER_ITEM
    desc: str = ''
    min_guests: int = 1
    max_guests: int | None = None
    min_quantity: int = 0
    max_quantity: int | None = None
    parent: int = UNLINKED_PARENT
    position: int = 0
    charge: int = 0

    @property
    def is_menu(self) -> bool:
        return self.type == AddonType.MENU

    @property
    def is_option(self) -> bool:
        return self.type == AddonType.OPTION

    @property
    def is_per_guest(self) -> bool:
        return self.per == PER_GUEST

    @property
    def has_parent(self) -> bool:
        return self.is_option and self.parent != UNLINKED_PARENT
