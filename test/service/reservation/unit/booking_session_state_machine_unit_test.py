"""
Unit tests for BookingSessionStateMachine

Tests:
- Hold acquisition, selection gating and single-flight proceed
- Countdown expiry and its deferral while a confirm is in flight
- Direct confirm, payment confirm and the safety timeout
- Failure, retry with a kept payment reference, and restart
"""

import asyncio
from typing import Any, Callable

import pytest

from table_booking.platform.exception.exceptions import (
    ConfirmError,
    DetailsValidationError,
    HoldError,
    HoldExpiredError,
    InvalidSessionTransitionError,
    PaymentError,
    RemoteTimeoutError,
    SelectionInvalidError,
)
from table_booking.service.reservation.app.booking_session_state_machine import (
    BookingSessionStateMachine,
)
from table_booking.service.reservation.domain.entity.customer_details import CustomerDetails
from table_booking.service.reservation.domain.enum.reason_code import ReasonCode
from table_booking.service.reservation.domain.enum.session_state import SessionState
from table_booking.service.reservation.domain.value_object.booking_selection import (
    BookingSelection,
)
from table_booking.service.reservation.domain.value_object.payment import PaymentCapture
from table_booking.service.reservation.domain.value_object.selection_state import (
    MenuSelection,
    SelectionState,
)
from table_booking.service.reservation.driven_adapter.session_state_broadcaster_impl import (
    InMemorySessionStateBroadcasterImpl,
)
from table_booking.service.shared_kernel.domain.entity.addon_entity import Addon
from table_booking.service.shared_kernel.domain.entity.shift_entity import Area, SlotCatalog
from table_booking.service.shared_kernel.domain.enum.usage_policy import UsagePolicy


CARD_CAPTURE = PaymentCapture(payment_method='pm_card_visa', complete=True)


@pytest.mark.unit
class TestProceedToBooking:
    @pytest.mark.asyncio
    async def test_hold_moves_session_to_details_entry(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
    ) -> None:
        # Given
        gateway = make_booking_gateway()
        machine = make_state_machine(gateway)

        # When
        hold = await machine.proceed_to_booking(booking=make_booking(party_size=2))

        # Then
        assert hold is not None and hold.uid == 9001
        assert machine.state == SessionState.DETAILS_ENTRY
        assert 0 < machine.remaining_seconds <= 30.0
        assert gateway.calls == ['hold']
        await machine.close()

    @pytest.mark.asyncio
    async def test_hold_request_carries_addons_and_area(
        self,
        make_addon: Callable[..., Addon],
        make_catalog: Callable[..., SlotCatalog],
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
    ) -> None:
        gateway = make_booking_gateway()
        machine = make_state_machine(gateway)
        catalog = make_catalog([make_addon(11)], time=19.5)
        selection = SelectionState(
            menus=(MenuSelection(uid=11, position=0, usage_policy=UsagePolicy.SINGLE_SELECT),),
        )

        await machine.proceed_to_booking(
            booking=make_booking(catalog=catalog, selection=selection, area=' 1004 ')
        )

        request = gateway.hold_requests[0]
        assert request.addons == '11'
        assert request.area == '1004'
        assert request.time == 19.5
        assert request.covers == 2
        await machine.close()

    @pytest.mark.asyncio
    async def test_incomplete_selection_sends_nothing(
        self,
        make_addon: Callable[..., Addon],
        make_catalog: Callable[..., SlotCatalog],
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
    ) -> None:
        gateway = make_booking_gateway()
        machine = make_state_machine(gateway)
        catalog = make_catalog([make_addon(11)], usage_policy=UsagePolicy.SINGLE_SELECT)

        with pytest.raises(SelectionInvalidError) as exc_info:
            await machine.proceed_to_booking(booking=make_booking(catalog=catalog))

        assert exc_info.value.reason == ReasonCode.SELECT_MENU_POLICY_1
        assert exc_info.value.message == 'Please select a menu option'
        assert gateway.calls == []
        assert machine.state == SessionState.BROWSING

    @pytest.mark.asyncio
    async def test_required_area_must_be_chosen(
        self,
        make_catalog: Callable[..., SlotCatalog],
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
    ) -> None:
        gateway = make_booking_gateway()
        machine = make_state_machine(gateway, lng={'selectAreaPrompt': 'Choose where to sit'})
        catalog = make_catalog(
            usage_policy=UsagePolicy.NONE, areas=(Area(uid=1004, name='Terrace', times=(19.0,)),)
        )

        with pytest.raises(SelectionInvalidError, match='Choose where to sit'):
            await machine.proceed_to_booking(
                booking=make_booking(catalog=catalog, area_required=True)
            )

        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_second_proceed_while_hold_in_flight_is_ignored(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
    ) -> None:
        # Given: the hold request is parked until the gate opens
        gateway = make_booking_gateway()
        gateway.hold_gate = asyncio.Event()
        machine = make_state_machine(gateway)
        first = asyncio.create_task(machine.proceed_to_booking(booking=make_booking()))
        await asyncio.sleep(0)

        # When
        second = await machine.proceed_to_booking(booking=make_booking())
        gateway.hold_gate.set()
        hold = await first

        # Then
        assert machine.is_processing is False
        assert second is None
        assert hold is not None
        assert gateway.calls == ['hold']
        await machine.close()

    @pytest.mark.asyncio
    async def test_hold_rejection_is_surfaced_and_session_stays_browsing(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
    ) -> None:
        gateway = make_booking_gateway()
        gateway.hold_error = HoldError('That time is no longer available')
        machine = make_state_machine(gateway)

        with pytest.raises(HoldError, match='no longer available'):
            await machine.proceed_to_booking(booking=make_booking())

        assert machine.state == SessionState.BROWSING
        assert machine.session.last_error == 'That time is no longer available'
        assert machine.is_processing is False

    @pytest.mark.asyncio
    async def test_deposit_amount_presented_from_hold(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
    ) -> None:
        gateway = make_booking_gateway(card=2, per_head=2000, covers=3)
        machine = make_state_machine(gateway)

        await machine.proceed_to_booking(booking=make_booking(party_size=3))

        assert machine.hold.requires_payment
        assert machine.charge_amount == 6000
        await machine.close()

    @pytest.mark.asyncio
    async def test_state_changes_are_broadcast(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
    ) -> None:
        broadcaster = InMemorySessionStateBroadcasterImpl()
        machine = make_state_machine(make_booking_gateway(), broadcaster=broadcaster)
        stream = await broadcaster.subscribe(session_id=machine.session.id)

        await machine.proceed_to_booking(booking=make_booking())

        events = [stream.receive_nowait(), stream.receive_nowait()]
        assert [event['state'] for event in events] == ['held', 'details_entry']
        assert events[0]['hold_uid'] == 9001
        await broadcaster.unsubscribe(session_id=machine.session.id, stream=stream)
        await machine.close()


@pytest.mark.unit
class TestCountdownExpiry:
    @pytest.mark.asyncio
    async def test_expired_hold_rejects_continue_without_network_call(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        # Given: a hold with a very short countdown
        gateway = make_booking_gateway()
        machine = make_state_machine(gateway, countdown_seconds=0.05)
        await machine.proceed_to_booking(booking=make_booking())

        # When: the countdown elapses in DETAILS_ENTRY
        await asyncio.sleep(0.1)

        # Then
        assert machine.state == SessionState.EXPIRED
        assert machine.remaining_seconds is None
        with pytest.raises(HoldExpiredError):
            await machine.submit_details(details=customer_details)
        assert gateway.calls == ['hold']

    @pytest.mark.asyncio
    async def test_expiry_deferred_while_confirm_in_flight(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        # Given: the update answers after the countdown has elapsed
        gateway = make_booking_gateway()
        gateway.update_delay = 0.15
        machine = make_state_machine(gateway, countdown_seconds=0.05)
        await machine.proceed_to_booking(booking=make_booking())

        # When
        session = await machine.submit_details(details=customer_details)

        # Then
        assert session is not None
        assert session.state == SessionState.CONFIRMED
        assert machine.state == SessionState.CONFIRMED

    @pytest.mark.asyncio
    async def test_restart_after_expiry_allows_a_new_hold(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
    ) -> None:
        gateway = make_booking_gateway()
        machine = make_state_machine(gateway, countdown_seconds=0.05)
        await machine.proceed_to_booking(booking=make_booking())
        await asyncio.sleep(0.1)
        session_id = machine.session.id

        restarted = await machine.restart()
        await machine.proceed_to_booking(booking=make_booking())

        assert restarted.id == session_id
        assert restarted.state == SessionState.BROWSING
        assert machine.state == SessionState.DETAILS_ENTRY
        assert gateway.calls == ['hold', 'hold']
        await machine.close()


@pytest.mark.unit
class TestConfirmWithoutCard:
    @pytest.mark.asyncio
    async def test_details_confirm_directly(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_addon: Callable[..., Addon],
        make_catalog: Callable[..., SlotCatalog],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        gateway = make_booking_gateway()
        machine = make_state_machine(gateway)
        catalog = make_catalog([make_addon(31, 'Option')], usage_policy=UsagePolicy.NONE)
        booking = make_booking(catalog=catalog, selection=SelectionState(options={31: 2}))
        await machine.proceed_to_booking(booking=booking)

        session = await machine.submit_details(details=customer_details)

        assert session.state == SessionState.CONFIRMED
        assert session.confirmation.acknowledged
        assert session.details == customer_details
        assert gateway.calls == ['hold', 'update']
        assert gateway.update_addons == ['31:2']
        assert machine.remaining_seconds is None

    @pytest.mark.asyncio
    async def test_confirm_twice_is_rejected_without_second_booking(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        gateway = make_booking_gateway()
        machine = make_state_machine(gateway)
        await machine.proceed_to_booking(booking=make_booking())
        await machine.submit_details(details=customer_details)

        with pytest.raises(InvalidSessionTransitionError, match='already confirmed'):
            await machine.submit_details(details=customer_details)

        assert gateway.calls.count('update') == 1

    @pytest.mark.asyncio
    async def test_concurrent_submit_is_single_flight(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        gateway = make_booking_gateway()
        gateway.update_delay = 0.05
        machine = make_state_machine(gateway)
        await machine.proceed_to_booking(booking=make_booking())

        first = asyncio.create_task(machine.submit_details(details=customer_details))
        await asyncio.sleep(0.01)
        second = await machine.submit_details(details=customer_details)
        await first

        assert second is None
        assert gateway.calls.count('update') == 1
        assert machine.state == SessionState.CONFIRMED

    @pytest.mark.asyncio
    async def test_invalid_details_stay_in_details_entry(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
    ) -> None:
        gateway = make_booking_gateway()
        machine = make_state_machine(gateway)
        await machine.proceed_to_booking(booking=make_booking())
        details = CustomerDetails(first_name='Aroha', last_name='', email='x', phone='1')

        with pytest.raises(DetailsValidationError):
            await machine.submit_details(details=details)

        assert machine.state == SessionState.DETAILS_ENTRY
        assert gateway.calls == ['hold']
        await machine.close()

    @pytest.mark.asyncio
    async def test_rejected_update_fails_and_retry_confirms(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        # Given: the first update is rejected by the booking service
        gateway = make_booking_gateway()
        gateway.update_errors = [ConfirmError('Booking could not be saved')]
        machine = make_state_machine(gateway)
        await machine.proceed_to_booking(booking=make_booking())

        # When
        with pytest.raises(ConfirmError):
            await machine.submit_details(details=customer_details)
        failed_state = machine.state
        failed_details = machine.session.details
        await machine.retry()
        session = await machine.submit_details(details=customer_details)

        # Then
        assert failed_state == SessionState.FAILED
        assert failed_details == customer_details
        assert session.state == SessionState.CONFIRMED
        assert gateway.calls == ['hold', 'update', 'update']

    @pytest.mark.asyncio
    async def test_update_timeout_keeps_details_entry(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        gateway = make_booking_gateway()
        gateway.update_errors = [RemoteTimeoutError('Update request timed out')]
        machine = make_state_machine(gateway)
        await machine.proceed_to_booking(booking=make_booking())

        with pytest.raises(RemoteTimeoutError):
            await machine.submit_details(details=customer_details)

        assert machine.state == SessionState.DETAILS_ENTRY
        assert machine.session.last_error == 'Update request timed out'
        await machine.close()

    @pytest.mark.asyncio
    async def test_retry_outside_failed_is_rejected(
        self,
        make_booking_gateway: Callable[..., Any],
        make_state_machine: Callable[..., BookingSessionStateMachine],
    ) -> None:
        machine = make_state_machine(make_booking_gateway())

        with pytest.raises(InvalidSessionTransitionError):
            await machine.retry()


@pytest.mark.unit
class TestConfirmWithCard:
    @pytest.fixture
    def card_gateway(self, make_booking_gateway: Callable[..., Any]) -> Any:
        return make_booking_gateway(card=1)

    @pytest.mark.asyncio
    async def test_details_open_payment_with_credentials(
        self,
        card_gateway: Any,
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        machine = make_state_machine(card_gateway)
        await machine.proceed_to_booking(booking=make_booking())

        session = await machine.submit_details(details=customer_details)

        assert session.state == SessionState.PAYMENT_PENDING
        assert session.credentials.public_key == 'pk_test_123'
        assert card_gateway.calls == ['hold', 'pi-get', 'deposit-get']
        await machine.close()

    @pytest.mark.asyncio
    async def test_credentials_failure_returns_to_details(
        self,
        card_gateway: Any,
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        card_gateway.credentials_error = PaymentError('Missing Stripe keys in pi-get response')
        machine = make_state_machine(card_gateway)
        await machine.proceed_to_booking(booking=make_booking())

        with pytest.raises(PaymentError, match='Missing Stripe keys'):
            await machine.submit_details(details=customer_details)

        assert machine.state == SessionState.DETAILS_ENTRY
        assert machine.session.last_error == 'Missing Stripe keys in pi-get response'
        await machine.close()

    @pytest.mark.asyncio
    async def test_payment_then_attach_then_update(
        self,
        card_gateway: Any,
        fake_payment_processor: Any,
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        # Given
        machine = make_state_machine(card_gateway)
        await machine.proceed_to_booking(booking=make_booking())
        await machine.submit_details(details=customer_details)

        # When
        session = await machine.submit_payment(capture=CARD_CAPTURE)

        # Then
        assert session.state == SessionState.CONFIRMED
        assert session.confirmation.payment_reference == 'pm_card_visa'
        assert fake_payment_processor.confirm_calls == ['pm_card_visa']
        assert card_gateway.calls == [
            'hold',
            'pi-get',
            'deposit-get',
            'restore',
            'pm-id',
            'update',
        ]
        assert card_gateway.attached_payment_methods == ['pm_card_visa']

    @pytest.mark.asyncio
    async def test_concurrent_payment_while_credentials_pending_is_single_flight(
        self,
        card_gateway: Any,
        fake_payment_processor: Any,
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        # Given: details opened the payment step and pi-get has not answered yet
        card_gateway.credentials_gate = asyncio.Event()
        machine = make_state_machine(card_gateway)
        await machine.proceed_to_booking(booking=make_booking())
        details_task = asyncio.create_task(machine.submit_details(details=customer_details))
        await asyncio.sleep(0.01)
        assert machine.state == SessionState.PAYMENT_PENDING
        assert machine.session.credentials is None

        # When: the card form is submitted twice before credentials arrive
        first = asyncio.create_task(machine.submit_payment(capture=CARD_CAPTURE))
        second = asyncio.create_task(machine.submit_payment(capture=CARD_CAPTURE))
        await asyncio.sleep(0.01)
        card_gateway.credentials_gate.set()
        _, first_result, second_result = await asyncio.gather(details_task, first, second)

        # Then: one credentials request, one charge and one confirm for the hold
        assert second_result is None
        assert first_result.state == SessionState.CONFIRMED
        assert fake_payment_processor.confirm_calls == ['pm_card_visa']
        assert card_gateway.calls == [
            'hold',
            'pi-get',
            'deposit-get',
            'restore',
            'pm-id',
            'update',
        ]

    @pytest.mark.asyncio
    async def test_incomplete_card_form_is_rejected_locally(
        self,
        card_gateway: Any,
        fake_payment_processor: Any,
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        machine = make_state_machine(card_gateway)
        await machine.proceed_to_booking(booking=make_booking())
        await machine.submit_details(details=customer_details)

        with pytest.raises(PaymentError, match='complete your card details'):
            await machine.submit_payment(capture=PaymentCapture(complete=False))

        assert machine.state == SessionState.PAYMENT_PENDING
        assert fake_payment_processor.confirm_calls == []
        await machine.close()

    @pytest.mark.asyncio
    async def test_declined_card_stays_in_payment(
        self,
        card_gateway: Any,
        fake_payment_processor: Any,
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        fake_payment_processor.error = PaymentError(
            'Your card was declined.', code='card_declined', decline_code='generic_decline'
        )
        machine = make_state_machine(card_gateway)
        await machine.proceed_to_booking(booking=make_booking())
        await machine.submit_details(details=customer_details)

        with pytest.raises(PaymentError) as exc_info:
            await machine.submit_payment(capture=CARD_CAPTURE)

        assert exc_info.value.decline_code == 'generic_decline'
        assert machine.state == SessionState.PAYMENT_PENDING
        assert machine.session.last_error == 'Your card was declined.'
        assert 'update' not in card_gateway.calls
        await machine.close()

    @pytest.mark.asyncio
    async def test_retry_after_failed_update_does_not_charge_again(
        self,
        card_gateway: Any,
        fake_payment_processor: Any,
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        # Given: the card is accepted but the first update is rejected
        card_gateway.update_errors = [ConfirmError('Update request failed with API error')]
        machine = make_state_machine(card_gateway)
        await machine.proceed_to_booking(booking=make_booking())
        await machine.submit_details(details=customer_details)
        with pytest.raises(ConfirmError):
            await machine.submit_payment(capture=CARD_CAPTURE)
        assert machine.state == SessionState.FAILED
        assert machine.session.payment_reference == 'pm_card_visa'

        # When
        await machine.retry()
        session = await machine.submit_payment(capture=PaymentCapture())

        # Then
        assert session.state == SessionState.CONFIRMED
        assert fake_payment_processor.confirm_calls == ['pm_card_visa']
        assert card_gateway.calls.count('update') == 2

    @pytest.mark.asyncio
    async def test_silent_booking_service_confirms_after_safety_timeout(
        self,
        card_gateway: Any,
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        # Given: the update answers long after the safety timer
        card_gateway.update_delay = 0.2
        machine = make_state_machine(card_gateway, payment_safety_timeout_seconds=0.05)
        await machine.proceed_to_booking(booking=make_booking())
        await machine.submit_details(details=customer_details)

        # When
        session = await machine.submit_payment(capture=CARD_CAPTURE)

        # Then: confirmed locally, the late update still lands
        assert session.state == SessionState.CONFIRMED
        assert session.confirmation.acknowledged is False
        assert session.confirmation.payment_reference == 'pm_card_visa'
        await asyncio.sleep(0.25)
        assert card_gateway.calls[-1] == 'update'

    @pytest.mark.asyncio
    async def test_update_timeout_after_payment_confirms_unacknowledged(
        self,
        card_gateway: Any,
        make_state_machine: Callable[..., BookingSessionStateMachine],
        make_booking: Callable[..., BookingSelection],
        customer_details: CustomerDetails,
    ) -> None:
        card_gateway.update_errors = [RemoteTimeoutError('Update request timed out')]
        machine = make_state_machine(card_gateway)
        await machine.proceed_to_booking(booking=make_booking())
        await machine.submit_details(details=customer_details)

        session = await machine.submit_payment(capture=CARD_CAPTURE)

        assert session.state == SessionState.CONFIRMED
        assert session.confirmation.acknowledged is False
