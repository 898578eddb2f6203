"""
Booking Session State Machine

BROWSING → HELD → DETAILS_ENTRY → PAYMENT_PENDING → CONFIRMED
                      │                 │
                      └──── FAILED ─────┘   (retry re-enters while the hold lives)
any active state ──── countdown elapsed ───→ EXPIRED

Remote calls are the only suspension points. Hold, payment setup and
confirm are single-flight; a second call while one is outstanding is a
no-op, and concurrent callers share one credentials request.
"""

import asyncio
from typing import Any, Optional

from opentelemetry import trace

from table_booking.platform.config.core_setting import settings
from table_booking.platform.exception.exceptions import (
    ConfirmError,
    CustomBaseError,
    DetailsValidationError,
    HoldExpiredError,
    InvalidSessionTransitionError,
    PaymentError,
    RemoteTimeoutError,
    SelectionInvalidError,
)
from table_booking.platform.logging.loguru_io import Logger
from table_booking.service.reservation.app.interface.i_booking_api_gateway import (
    IBookingApiGateway,
)
from table_booking.service.reservation.app.interface.i_session_state_broadcaster import (
    ISessionStateBroadcaster,
)
from table_booking.service.reservation.app.payment_client_registry import PaymentClientRegistry
from table_booking.service.reservation.domain.addon_constraint_engine import (
    is_selection_complete,
)
from table_booking.service.reservation.domain.addon_formatter import format_addons_for_api
from table_booking.service.reservation.domain.charge_detection import detect_charge
from table_booking.service.reservation.domain.entity.booking_session_entity import BookingSession
from table_booking.service.reservation.domain.entity.customer_details import CustomerDetails
from table_booking.service.reservation.domain.entity.hold_entity import Hold
from table_booking.service.reservation.domain.enum.session_state import SessionState
from table_booking.service.reservation.domain.selection_hint import (
    SELECT_AREA_HINT,
    localized,
    selection_hint,
)
from table_booking.service.reservation.domain.value_object.booking_selection import (
    BookingSelection,
)
from table_booking.service.reservation.domain.value_object.payment import (
    BookingConfirmation,
    PaymentCapture,
)


class BookingSessionStateMachine:
    def __init__(
        self,
        *,
        est: str,
        booking_gateway: IBookingApiGateway,
        payment_registry: PaymentClientRegistry,
        broadcaster: Optional[ISessionStateBroadcaster] = None,
        language: str | None = None,
        lng: dict[str, str] | None = None,
        countdown_seconds: float | None = None,
        payment_safety_timeout_seconds: float | None = None,
    ) -> None:
        self.est = est
        self.booking_gateway = booking_gateway
        self.payment_registry = payment_registry
        self.broadcaster = broadcaster
        self.language = language or settings.DEFAULT_LANGUAGE
        self.lng = lng or {}
        self.countdown_seconds = countdown_seconds or settings.HOLD_COUNTDOWN_SECONDS
        self.payment_safety_timeout_seconds = (
            payment_safety_timeout_seconds or settings.PAYMENT_SAFETY_TIMEOUT_SECONDS
        )
        self.tracer = trace.get_tracer(__name__)

        self.session = BookingSession.start()
        self._booking_selection: BookingSelection | None = None
        self._hold_in_flight = False
        self._payment_in_flight = False
        self._confirm_in_flight = False
        self._expiry_deferred = False
        self._credentials_task: asyncio.Future[None] | None = None
        self._countdown_task: asyncio.Task[None] | None = None
        self._countdown_deadline: float | None = None
        self._background_tasks: set[asyncio.Task[Any]] = set()

    # =========================================================================
    # Read side
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def hold(self) -> Hold | None:
        return self.session.hold

    @property
    def is_processing(self) -> bool:
        return self._hold_in_flight or self._payment_in_flight or self._confirm_in_flight

    @property
    def remaining_seconds(self) -> float | None:
        """Seconds left on the hold countdown, None when no hold is running."""
        if self._countdown_deadline is None:
            return None
        return max(0.0, self._countdown_deadline - asyncio.get_running_loop().time())

    @property
    def charge_amount(self) -> int:
        return self.session.hold.charge_amount if self.session.hold else 0

    # =========================================================================
    # BROWSING → HELD → DETAILS_ENTRY
    # =========================================================================

    async def proceed_to_booking(self, *, booking: BookingSelection) -> Hold | None:
        """
        Request a hold for the chosen slot and add-ons.

        Args:
            booking: date, party size, slot catalog, add-on selection and area

        Returns:
            The effective Hold (deposit shifts carry the add-on total), or None
            when a hold request is already outstanding.

        Raises:
            SelectionInvalidError: selection incomplete or seating area missing
            HoldError / RemoteTimeoutError: remote rejection, surfaced verbatim
        """
        self._raise_if_expired()
        if self._hold_in_flight:
            Logger.base.info('⏳ [SESSION] Hold already in flight, ignoring proceed')
            return None
        if self.session.state != SessionState.BROWSING:
            raise InvalidSessionTransitionError(
                f'Cannot request a hold while session is {self.session.state}'
            )

        verdict = is_selection_complete(booking.catalog, booking.party_size, booking.selection)
        if not verdict.complete:
            raise SelectionInvalidError(
                selection_hint(
                    verdict.reason,
                    lng=self.lng,
                    guests=booking.party_size,
                    max_menu_types=booking.catalog.max_menu_types,
                ),
                reason=verdict.reason,
            )
        if booking.area_required and not booking.area:
            raise SelectionInvalidError(localized(self.lng, SELECT_AREA_HINT), reason='AREA')

        request = booking.to_hold_request(est=self.est, language=self.language)

        self._hold_in_flight = True
        with self.tracer.start_as_current_span(
            'session.proceed_to_booking',
            attributes={
                'booking.est': self.est,
                'booking.covers': booking.party_size,
                'booking.time': booking.catalog.time,
            },
        ):
            try:
                hold = await self.booking_gateway.hold(request=request)
            except Exception as e:
                self.session = self.session.with_error(getattr(e, 'message', str(e)))
                await self._publish()
                raise
            finally:
                self._hold_in_flight = False

        charge = detect_charge(hold, booking.catalog, booking.party_size, booking.selection)
        Logger.base.info(
            f'🔒 [SESSION] Hold {hold.uid} acquired: card={charge.hold.card}, '
            f'amount={charge.amount}, reason={charge.reason}'
        )

        self._booking_selection = booking
        self.session = self.session.mark_held(hold=charge.hold, request=request)
        await self._publish()
        self._start_countdown()

        self.session = self.session.begin_details()
        await self._publish()
        return charge.hold

    # =========================================================================
    # DETAILS_ENTRY → CONFIRMED | PAYMENT_PENDING
    # =========================================================================

    async def submit_details(self, *, details: CustomerDetails) -> BookingSession | None:
        """
        Validate contact details, then confirm directly (no card) or open payment.

        Returns:
            The session snapshot after the step, or None when a confirm is in flight.

        Raises:
            HoldExpiredError: countdown elapsed (no request is sent)
            DetailsValidationError: missing fields or malformed email
            ConfirmError: the update request was rejected (session FAILED)
            PaymentError: payment credentials could not be obtained (back to details)
        """
        self._raise_if_expired()
        if self.session.state == SessionState.CONFIRMED:
            raise InvalidSessionTransitionError(f'Hold {self._hold_uid()} is already confirmed')
        if self._confirm_in_flight:
            Logger.base.info('⏳ [SESSION] Confirm already in flight, ignoring details submit')
            return None
        if self.session.state != SessionState.DETAILS_ENTRY:
            raise InvalidSessionTransitionError(
                f'Cannot submit details while session is {self.session.state}'
            )

        if errors := details.validate():
            self.session = self.session.with_error('Please complete all required fields')
            await self._publish()
            raise DetailsValidationError(errors)

        with self.tracer.start_as_current_span(
            'session.submit_details',
            attributes={'booking.hold_uid': self._hold_uid(), 'booking.card': int(self._card())},
        ):
            if not self.session.hold or not self.session.hold.requires_payment:
                self.session = self.session.with_details(details=details)
                await self._confirm_unpaid(details=details)
                return self.session

            self.session = self.session.enter_payment(details=details)
            await self._publish()
            await self._ensure_payment_credentials()
            return self.session

    async def _confirm_unpaid(self, *, details: CustomerDetails) -> None:
        self._confirm_in_flight = True
        try:
            confirmation = await self._update(details=details)
        except RemoteTimeoutError as e:
            self.session = self.session.with_error(e.message)
            await self._publish()
            raise
        except Exception as e:
            await self._fail(e)
            raise self._as_confirm_error(e) from e
        else:
            await self._mark_confirmed(confirmation)
        finally:
            self._confirm_in_flight = False
            await self._run_deferred_expiry()

    async def _ensure_payment_credentials(self) -> None:
        """Run pi-get + deposit-get once; concurrent callers await the same request."""
        task = self._credentials_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._acquire_payment_credentials())
            self._credentials_task = task
        await asyncio.shield(task)

    async def _acquire_payment_credentials(self) -> None:
        """pi-get + deposit-get scoped to this hold, and a processor client for its key."""
        hold = self.session.hold
        assert hold is not None
        details = self.session.details
        description = f'{details.first_name} {details.last_name}' if details else 'Customer'
        try:
            credentials = await self.booking_gateway.fetch_payment_credentials(
                est=self.est, hold=hold, description=description
            )
            deposit = await self.booking_gateway.fetch_deposit_info(
                est=self.est, hold=hold, language=self.language
            )
            await self.payment_registry.get(public_key=credentials.public_key)
        except Exception as e:
            message = getattr(e, 'message', None) or 'Failed to initialise payment'
            if self.session.state == SessionState.PAYMENT_PENDING:
                self.session = self.session.return_to_details(error=message)
                await self._publish()
            if isinstance(e, PaymentError):
                raise
            raise PaymentError(message) from e

        if self.session.state != SessionState.PAYMENT_PENDING:
            self._raise_if_expired()
            return
        self.session = self.session.attach_credentials(credentials=credentials, deposit=deposit)
        await self._publish()

    # =========================================================================
    # PAYMENT_PENDING → CONFIRMED
    # =========================================================================

    async def submit_payment(self, *, capture: PaymentCapture) -> BookingSession | None:
        """
        Charge or store the card, attach it to the hold, then confirm the booking.

        Once the processor has accepted the card, a safety timer bounds the wait
        for the booking service: if it does not answer in time the session is
        CONFIRMED (unacknowledged) and the request keeps running in the
        background.

        Returns:
            The session snapshot, or None when a payment is already in flight.

        Raises:
            HoldExpiredError: countdown elapsed (no request is sent)
            PaymentError: capture incomplete or card declined (stays PAYMENT_PENDING)
            ConfirmError: booking service rejected the paid booking (session FAILED,
                payment reference kept so a retry does not charge again)
        """
        self._raise_if_expired()
        if self.session.state == SessionState.CONFIRMED:
            raise InvalidSessionTransitionError(f'Hold {self._hold_uid()} is already confirmed')
        if self._payment_in_flight or self._confirm_in_flight:
            Logger.base.info('⏳ [SESSION] Payment already in flight, ignoring submit')
            return None
        if self.session.state != SessionState.PAYMENT_PENDING:
            raise InvalidSessionTransitionError(
                f'Cannot submit payment while session is {self.session.state}'
            )
        self._payment_in_flight = True
        try:
            if self.session.credentials is None:
                await self._ensure_payment_credentials()
                self._raise_if_expired()
                if self.session.credentials is None:
                    raise PaymentError('Payment is not ready, please try again')

            self._confirm_in_flight = True
            with self.tracer.start_as_current_span(
                'session.submit_payment',
                attributes={
                    'booking.hold_uid': self._hold_uid(),
                    'payment.reused_reference': self.session.payment_reference is not None,
                },
            ):
                if self.session.payment_reference is None:
                    await self._charge(capture)
                await self._finalize_paid_booking()
        finally:
            self._payment_in_flight = False
            self._confirm_in_flight = False
            await self._run_deferred_expiry()
        return self.session

    async def _charge(self, capture: PaymentCapture) -> None:
        if not capture.complete or not capture.payment_method:
            error = PaymentError('Please complete your card details')
            self.session = self.session.with_error(error.message)
            await self._publish()
            raise error

        credentials = self.session.credentials
        assert credentials is not None
        try:
            processor = await self.payment_registry.get(public_key=credentials.public_key)
            result = await processor.confirm_intent(
                client_secret=credentials.client_secret,
                payment_method=capture.payment_method,
                billing_details=capture.billing_details,
            )
            if not result.succeeded:
                raise PaymentError(f'Payment was not completed (status: {result.status})')
        except Exception as e:
            message = getattr(e, 'message', None) or 'Payment processing failed'
            self.session = self.session.with_error(message)
            await self._publish()
            if isinstance(e, CustomBaseError):
                raise
            raise PaymentError(message) from e

        Logger.base.info(
            f'💳 [SESSION] {result.intent_type} {result.intent_id} {result.status} '
            f'for hold {self._hold_uid()}'
        )
        self.session = self.session.record_payment(reference=result.payment_method)
        await self._publish()

    async def _finalize_paid_booking(self) -> None:
        task = asyncio.ensure_future(self._attach_and_update())
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

        done, _ = await asyncio.wait({task}, timeout=self.payment_safety_timeout_seconds)
        if task not in done:
            Logger.base.warning(
                f'⏰ [SESSION] Booking service silent {self.payment_safety_timeout_seconds}s '
                f'after payment for hold {self._hold_uid()}, confirming locally'
            )
            task.add_done_callback(self._log_late_confirmation)
            await self._mark_confirmed(self._unacknowledged_confirmation())
            return

        try:
            confirmation = task.result()
        except RemoteTimeoutError:
            Logger.base.warning(
                f'⏰ [SESSION] Update timed out after payment for hold {self._hold_uid()}, '
                'confirming locally'
            )
            confirmation = self._unacknowledged_confirmation()
        except Exception as e:
            await self._fail(e)
            raise self._as_confirm_error(e) from e

        await self._mark_confirmed(confirmation)

    async def _attach_and_update(self) -> BookingConfirmation:
        hold = self.session.hold
        reference = self.session.payment_reference
        assert hold is not None and reference is not None
        deposit = self.session.deposit
        total = deposit.total if deposit and deposit.total > 0 else hold.charge_amount

        await self.booking_gateway.restore(est=self.est, hold=hold)
        attachment = await self.booking_gateway.attach_payment_method(
            est=self.est, hold=hold, payment_method=reference, total=total
        )
        if not attachment.ok:
            raise ConfirmError('Failed to attach payment method to booking')

        details = self.session.details
        assert details is not None
        confirmation = await self._update(details=details)
        return BookingConfirmation(
            hold_uid=confirmation.hold_uid,
            acknowledged=confirmation.acknowledged,
            message=confirmation.message,
            payment_reference=reference,
        )

    def _unacknowledged_confirmation(self) -> BookingConfirmation:
        return BookingConfirmation(
            hold_uid=self._hold_uid(),
            acknowledged=False,
            payment_reference=self.session.payment_reference,
        )

    def _log_late_confirmation(self, task: 'asyncio.Future[BookingConfirmation]') -> None:
        if task.cancelled():
            Logger.base.warning(f'⚠️ [SESSION] Late confirm for hold {self._hold_uid()} cancelled')
        elif (error := task.exception()) is not None:
            Logger.base.error(
                f'❌ [SESSION] Late confirm for paid hold {self._hold_uid()} failed: {error}'
            )
        else:
            Logger.base.info(f'✅ [SESSION] Late confirm for hold {self._hold_uid()} acknowledged')

    # =========================================================================
    # FAILED / EXPIRED / restart
    # =========================================================================

    async def retry(self) -> BookingSession:
        """Re-enter the step that failed, reusing the same hold while it is alive."""
        self._raise_if_expired()
        if self.session.state != SessionState.FAILED:
            raise InvalidSessionTransitionError(
                f'Nothing to retry while session is {self.session.state}'
            )
        self.session = self.session.retry()
        await self._publish()
        return self.session

    async def restart(self) -> BookingSession:
        self._cancel_countdown()
        if self._credentials_task is not None and not self._credentials_task.done():
            self._credentials_task.cancel()
        self._credentials_task = None
        self._expiry_deferred = False
        self._booking_selection = None
        self.session = self.session.restart()
        await self._publish()
        return self.session

    async def close(self) -> None:
        """Cancel every timer. Background confirms of paid bookings keep running."""
        self._cancel_countdown()

    def _start_countdown(self) -> None:
        self._cancel_countdown()
        loop = asyncio.get_running_loop()
        self._countdown_deadline = loop.time() + self.countdown_seconds
        self._countdown_task = asyncio.create_task(self._run_countdown())

    def _cancel_countdown(self) -> None:
        task, self._countdown_task = self._countdown_task, None
        self._countdown_deadline = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _run_countdown(self) -> None:
        await asyncio.sleep(self.countdown_seconds)
        self._countdown_task = None
        if self._confirm_in_flight:
            Logger.base.info(
                f'⏳ [SESSION] Hold {self._hold_uid()} countdown elapsed during confirm, deferring'
            )
            self._expiry_deferred = True
            return
        await self._expire()

    async def _run_deferred_expiry(self) -> None:
        if not self._expiry_deferred:
            return
        self._expiry_deferred = False
        if self.session.state != SessionState.CONFIRMED:
            await self._expire()

    async def _expire(self) -> None:
        if not (self.session.state.is_active or self.session.state == SessionState.FAILED):
            return
        Logger.base.warning(f'⌛ [SESSION] Hold {self._hold_uid()} expired')
        self._countdown_deadline = None
        self.session = self.session.expire()
        await self._publish()

    def _raise_if_expired(self) -> None:
        if self.session.state == SessionState.EXPIRED:
            raise HoldExpiredError()
        if (
            self._countdown_deadline is not None
            and (self.session.state.is_active or self.session.state == SessionState.FAILED)
            and asyncio.get_running_loop().time() >= self._countdown_deadline
            and not self._confirm_in_flight
        ):
            # Deadline passed but the timer callback has not run yet
            self._cancel_countdown()
            self.session = self.session.expire()
            self._schedule(self._publish())
            raise HoldExpiredError()

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _update(self, *, details: CustomerDetails) -> BookingConfirmation:
        hold = self.session.hold
        assert hold is not None
        addons = (
            format_addons_for_api(self._booking_selection.selection)
            if self._booking_selection
            else ''
        )
        return await self.booking_gateway.update(
            est=self.est, hold=hold, details=details, addons=addons, language=self.language
        )

    async def _mark_confirmed(self, confirmation: BookingConfirmation) -> None:
        self._cancel_countdown()
        self.session = self.session.confirm(confirmation=confirmation)
        Logger.base.info(
            f'🎉 [SESSION] Booking confirmed for hold {confirmation.hold_uid} '
            f'(acknowledged={confirmation.acknowledged})'
        )
        await self._publish()

    async def _fail(self, error: Exception) -> None:
        message = getattr(error, 'message', None) or str(error)
        if self.session.state.is_active:
            self.session = self.session.fail(error=message)
            await self._publish()

    @staticmethod
    def _as_confirm_error(error: Exception) -> CustomBaseError:
        if isinstance(error, CustomBaseError) and not isinstance(error, RemoteTimeoutError):
            return error if isinstance(error, ConfirmError) else ConfirmError(error.message)
        return ConfirmError(str(error) or 'Update request failed')

    def _hold_uid(self) -> int:
        return self.session.hold.uid if self.session.hold else 0

    def _card(self) -> int:
        return self.session.hold.card if self.session.hold else 0

    def _schedule(self, coro: Any) -> None:
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _publish(self) -> None:
        if self.broadcaster is None:
            return
        await self.broadcaster.broadcast(
            session_id=self.session.id,
            event_data={
                'event_type': 'session_state_changed',
                'state': str(self.session.state),
                'hold_uid': self.session.hold.uid if self.session.hold else None,
                'card': int(self.session.hold.card) if self.session.hold else 0,
                'error': self.session.last_error,
            },
        )
