from enum import StrEnum


class ReasonCode(StrEnum):
    # Mutation rejections
    MENU_NOT_APPLICABLE = 'MENU_NOT_APPLICABLE'
    UNKNOWN_ADDON = 'UNKNOWN_ADDON'
    ADDON_TYPE_MISMATCH = 'ADDON_TYPE_MISMATCH'
    ADDON_NOT_AVAILABLE_FOR_PARTY_SIZE = 'ADDON_NOT_AVAILABLE_FOR_PARTY_SIZE'
    INVALID_QUANTITY = 'INVALID_QUANTITY'
    TOTAL_MENU_QUANTITY_EXCEEDED = 'TOTAL_MENU_QUANTITY_EXCEEDED'
    MAX_MENU_TYPES_EXCEEDED = 'MAX_MENU_TYPES_EXCEEDED'

    # Repairs (accepted, state adjusted)
    OPTION_QUANTITY_CLAMPED = 'OPTION_QUANTITY_CLAMPED'
    OPTION_REMOVED = 'OPTION_REMOVED'

    # Completion verdicts
    SELECT_MENU_POLICY_1 = 'SELECT_MENU_POLICY_1'
    TOTAL_MENU_QUANTITY_MISMATCH = 'TOTAL_MENU_QUANTITY_MISMATCH'
    SELECT_MENU_POLICY_2_GUESTS_0 = 'SELECT_MENU_POLICY_2_GUESTS_0'
    OPTION_PARENT_MISSING = 'OPTION_PARENT_MISSING'
    OPTION_MIN_QUANTITY_NOT_MET = 'OPTION_MIN_QUANTITY_NOT_MET'
