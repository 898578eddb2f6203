from enum import StrEnum


class AddonType(StrEnum):
    MENU = 'Menu'
    OPTION = 'Option'
