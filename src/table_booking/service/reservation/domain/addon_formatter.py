from table_booking.service.reservation.domain.value_object.selection_state import SelectionState
from table_booking.service.shared_kernel.domain.entity.shift_entity import SlotCatalog


def format_addons_for_api(state: SelectionState) -> str:
    """
    Wire encoding: ``uid`` or ``uid:quantity`` tokens joined by commas.

    Menus come first in insertion order, then options in mapping order.
    Menus without a quantity (policies 1 and 3) are sent as a bare uid.
    """
    tokens: list[str] = []
    for menu in state.menus:
        if menu.quantity is not None and menu.quantity > 0:
            tokens.append(f'{menu.uid}:{menu.quantity}')
        else:
            tokens.append(str(menu.uid))
    for uid, quantity in state.options.items():
        if quantity > 0:
            tokens.append(f'{uid}:{quantity}')
    return ','.join(tokens)


def format_addons_for_display(state: SelectionState, catalog: SlotCatalog) -> str:
    parts: list[str] = []
    for menu in state.menus:
        addon = catalog.find(menu.uid)
        name = addon.name if addon else str(menu.uid)
        parts.append(f'{name} x{menu.quantity}' if menu.quantity and menu.quantity > 1 else name)
    for uid, quantity in state.options.items():
        if quantity <= 0:
            continue
        addon = catalog.find(uid)
        name = addon.name if addon else str(uid)
        parts.append(f'{name} x{quantity}' if quantity > 1 else name)
    return ', '.join(parts)


def format_area_for_api(area: str | int | None) -> str:
    """'' when nothing was chosen, 'any' for no preference, otherwise the trimmed uid."""
    if area is None or area == '':
        return ''
    if isinstance(area, str) and area.strip().lower() == 'any':
        return 'any'
    return str(area).strip()
