from typing import Optional

import attrs
import uuid_utils
from uuid_utils import UUID

from table_booking.platform.exception.exceptions import (
    HoldExpiredError,
    InvalidSessionTransitionError,
)
from table_booking.service.reservation.domain.entity.customer_details import CustomerDetails
from table_booking.service.reservation.domain.entity.hold_entity import Hold, HoldRequest
from table_booking.service.reservation.domain.enum.session_state import SessionState
from table_booking.service.reservation.domain.value_object.payment import (
    BookingConfirmation,
    DepositInfo,
    PaymentCredentials,
)


@attrs.define(frozen=True)
class BookingSession:
    """
    Snapshot of one booking attempt.

    Transitions return a new snapshot and refuse moves the lifecycle does not
    allow. Once EXPIRED, every transition except restart raises
    HoldExpiredError.
    """

    id: UUID
    state: SessionState = SessionState.BROWSING
    hold_request: Optional[HoldRequest] = None
    hold: Optional[Hold] = None
    details: Optional[CustomerDetails] = None
    credentials: Optional[PaymentCredentials] = None
    deposit: Optional[DepositInfo] = None
    payment_reference: Optional[str] = None
    confirmation: Optional[BookingConfirmation] = None
    failed_from: Optional[SessionState] = None
    last_error: Optional[str] = None

    @classmethod
    def start(cls) -> 'BookingSession':
        return cls(id=uuid_utils.uuid7())

    def _require(self, *allowed: SessionState, action: str) -> None:
        if self.state == SessionState.EXPIRED:
            raise HoldExpiredError()
        if self.state not in allowed:
            raise InvalidSessionTransitionError(
                f'Cannot {action} while session is {self.state}'
            )

    def with_error(self, message: str | None) -> 'BookingSession':
        return attrs.evolve(self, last_error=message)

    def mark_held(self, *, hold: Hold, request: HoldRequest) -> 'BookingSession':
        self._require(SessionState.BROWSING, action='hold a table')
        return attrs.evolve(
            self, state=SessionState.HELD, hold=hold, hold_request=request, last_error=None
        )

    def begin_details(self) -> 'BookingSession':
        self._require(SessionState.HELD, action='collect details')
        return attrs.evolve(self, state=SessionState.DETAILS_ENTRY)

    def with_details(self, *, details: CustomerDetails) -> 'BookingSession':
        self._require(SessionState.DETAILS_ENTRY, action='record details')
        return attrs.evolve(self, details=details)

    def enter_payment(self, *, details: CustomerDetails) -> 'BookingSession':
        self._require(SessionState.DETAILS_ENTRY, action='start payment')
        if self.hold is None or not self.hold.requires_payment:
            raise InvalidSessionTransitionError('Hold does not require a card')
        return attrs.evolve(
            self, state=SessionState.PAYMENT_PENDING, details=details, last_error=None
        )

    def attach_credentials(
        self, *, credentials: PaymentCredentials, deposit: DepositInfo | None
    ) -> 'BookingSession':
        self._require(SessionState.PAYMENT_PENDING, action='attach payment credentials')
        return attrs.evolve(self, credentials=credentials, deposit=deposit)

    def return_to_details(self, *, error: str) -> 'BookingSession':
        self._require(SessionState.PAYMENT_PENDING, action='return to details')
        return attrs.evolve(
            self, state=SessionState.DETAILS_ENTRY, credentials=None, last_error=error
        )

    def record_payment(self, *, reference: str) -> 'BookingSession':
        self._require(SessionState.PAYMENT_PENDING, action='record a payment')
        return attrs.evolve(self, payment_reference=reference)

    def confirm(self, *, confirmation: BookingConfirmation) -> 'BookingSession':
        if self.state == SessionState.CONFIRMED:
            raise InvalidSessionTransitionError(
                f'Hold {self.hold.uid if self.hold else "?"} is already confirmed'
            )
        self._require(
            SessionState.DETAILS_ENTRY, SessionState.PAYMENT_PENDING, action='confirm'
        )
        return attrs.evolve(
            self, state=SessionState.CONFIRMED, confirmation=confirmation, last_error=None
        )

    def fail(self, *, error: str) -> 'BookingSession':
        self._require(
            SessionState.HELD,
            SessionState.DETAILS_ENTRY,
            SessionState.PAYMENT_PENDING,
            action='record a failure',
        )
        return attrs.evolve(
            self, state=SessionState.FAILED, failed_from=self.state, last_error=error
        )

    def retry(self) -> 'BookingSession':
        self._require(SessionState.FAILED, action='retry')
        target = self.failed_from or SessionState.DETAILS_ENTRY
        if target == SessionState.HELD:
            target = SessionState.DETAILS_ENTRY
        return attrs.evolve(self, state=target, failed_from=None)

    def expire(self) -> 'BookingSession':
        if not (self.state.is_active or self.state == SessionState.FAILED):
            raise InvalidSessionTransitionError(f'Nothing to expire while {self.state}')
        return attrs.evolve(
            self,
            state=SessionState.EXPIRED,
            credentials=None,
            failed_from=None,
            last_error=HoldExpiredError().message,
        )

    def restart(self) -> 'BookingSession':
        return BookingSession(id=self.id)
