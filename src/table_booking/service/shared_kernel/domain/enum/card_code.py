from enum import IntEnum


class CardCode(IntEnum):
    NONE = 0
    NO_SHOW_PROTECTION = 1
    DEPOSIT = 2

    @property
    def requires_payment(self) -> bool:
        return self is not CardCode.NONE
