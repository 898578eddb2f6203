"""Localized prompts for the proceed control."""

from typing import Mapping

from table_booking.service.reservation.domain.enum.reason_code import ReasonCode


# reason -> (language-string key, English fallback)
_HINTS: dict[ReasonCode, tuple[str, str]] = {
    ReasonCode.SELECT_MENU_POLICY_1: ('selectMenuPolicy1Prompt', 'Please select a menu option'),
    ReasonCode.TOTAL_MENU_QUANTITY_MISMATCH: (
        'totalMenuQuantityMismatchPrompt',
        'Total menu items must match guest count ({guests})',
    ),
    ReasonCode.TOTAL_MENU_QUANTITY_EXCEEDED: (
        'totalMenuQuantityExceededPrompt',
        'Total menu items cannot exceed guest count ({guests})',
    ),
    ReasonCode.MAX_MENU_TYPES_EXCEEDED: (
        'maxMenuTypesExceededPrompt',
        'You have selected too many menu types (max: {max_menu_types})',
    ),
    ReasonCode.SELECT_MENU_POLICY_2_GUESTS_0: (
        'selectMenuPolicy2Guests0Prompt',
        'Please select at least one menu item',
    ),
    ReasonCode.OPTION_PARENT_MISSING: (
        'optionParentMissingPrompt',
        'Select the main course for your chosen side/option',
    ),
    ReasonCode.OPTION_MIN_QUANTITY_NOT_MET: (
        'optionMinQuantityNotMetPrompt',
        'Adjust quantity for a selected option',
    ),
}

GENERIC_HINT = ('completeRequiredOptions', 'Please complete required options')
SELECT_TIME_HINT = ('selectTimePrompt', 'Select a Time to Proceed')
SELECT_AREA_HINT = ('selectAreaPrompt', 'Please select a seating area')
PROCEED_LABEL = ('proceedToBookingBtn', 'Proceed to Booking')


def localized(lng: Mapping[str, str], hint: tuple[str, str], **values: object) -> str:
    key, fallback = hint
    template = lng.get(key) or fallback
    try:
        return template.format(**values)
    except (KeyError, IndexError, ValueError):
        return template


def selection_hint(
    reason: ReasonCode | None,
    *,
    lng: Mapping[str, str] | None = None,
    guests: int = 0,
    max_menu_types: int = 0,
) -> str:
    hint = _HINTS.get(reason, GENERIC_HINT) if reason else GENERIC_HINT
    return localized(
        lng or {},
        hint,
        guests=guests,
        max_menu_types=max_menu_types if max_menu_types > 0 else 'N/A',
    )
