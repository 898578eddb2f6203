from enum import IntEnum


class UsagePolicy(IntEnum):
    """How menu add-ons for a shift or time slot must be selected."""

    NONE = 0
    SINGLE_SELECT = 1
    QUANTITY_EXACT = 2
    OPTIONAL_MULTI_SELECT = 3
    QUANTITY_CEILING = 4

    @property
    def is_quantity_based(self) -> bool:
        return self in (UsagePolicy.QUANTITY_EXACT, UsagePolicy.QUANTITY_CEILING)

    @classmethod
    def from_wire(cls, value: object) -> 'UsagePolicy | None':
        """Unknown or missing codes map to None so the caller can apply a fallback."""
        if value is None or isinstance(value, bool):
            return None
        try:
            return cls(int(value))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
