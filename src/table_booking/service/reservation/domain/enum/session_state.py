from enum import StrEnum


class SessionState(StrEnum):
    BROWSING = 'browsing'
    HELD = 'held'
    DETAILS_ENTRY = 'details_entry'
    PAYMENT_PENDING = 'payment_pending'
    CONFIRMED = 'confirmed'
    EXPIRED = 'expired'
    FAILED = 'failed'

    @property
    def is_active(self) -> bool:
        """States in which a hold is alive and the countdown is running."""
        return self in (SessionState.HELD, SessionState.DETAILS_ENTRY, SessionState.PAYMENT_PENDING)

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.CONFIRMED, SessionState.EXPIRED)
