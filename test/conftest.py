"""
Test Configuration and Fixtures

This module provides:
- Test environment variables set before application modules read settings
- Factory fixtures for add-ons, slot catalogs, holds and customer details
- In-memory stand-ins for the booking service gateway and payment processor
- A state machine factory with short timers
"""

# =============================================================================
# Environment setup MUST happen before application imports read settings
# =============================================================================
import os
from pathlib import Path


def _early_setup_test_environment() -> None:
    test_log_dir = Path(__file__).parent / 'test_log'
    test_log_dir.mkdir(exist_ok=True)
    os.environ['TEST_LOG_DIR'] = str(test_log_dir)
    os.environ.setdefault('LOG_FILE_ENABLED', 'false')
    os.environ.setdefault('DEPLOY_ENV', 'test')


_early_setup_test_environment()

import asyncio  # noqa: E402
from datetime import date  # noqa: E402
from typing import Any, Callable  # noqa: E402

import attrs  # noqa: E402
import pytest  # noqa: E402

from table_booking.service.availability.app.interface.i_availability_gateway import (  # noqa: E402
    IAvailabilityGateway,
)
from table_booking.service.reservation.app.booking_session_state_machine import (  # noqa: E402
    BookingSessionStateMachine,
)
from table_booking.service.reservation.app.interface.i_booking_api_gateway import (  # noqa: E402
    IBookingApiGateway,
)
from table_booking.service.reservation.app.interface.i_payment_processor import (  # noqa: E402
    IPaymentProcessor,
)
from table_booking.service.reservation.app.payment_client_registry import (  # noqa: E402
    PaymentClientRegistry,
)
from table_booking.service.reservation.domain.entity.customer_details import (  # noqa: E402
    CustomerDetails,
)
from table_booking.service.reservation.domain.entity.hold_entity import (  # noqa: E402
    Hold,
    HoldRequest,
)
from table_booking.service.reservation.domain.value_object.booking_selection import (  # noqa: E402
    BookingSelection,
)
from table_booking.service.reservation.domain.value_object.payment import (  # noqa: E402
    BookingConfirmation,
    DepositInfo,
    PaymentAttachment,
    PaymentCredentials,
    PaymentResult,
    intent_id_from_secret,
    intent_type_from_secret,
)
from table_booking.service.reservation.domain.value_object.selection_state import (  # noqa: E402
    SelectionState,
)
from table_booking.service.reservation.driven_adapter.session_state_broadcaster_impl import (  # noqa: E402
    InMemorySessionStateBroadcasterImpl,
)
from table_booking.service.shared_kernel.domain.entity.addon_entity import Addon  # noqa: E402
from table_booking.service.shared_kernel.domain.entity.availability_entity import (  # noqa: E402
    DayAvailability,
    MonthAvailability,
)
from table_booking.service.shared_kernel.domain.entity.establishment_config import (  # noqa: E402
    EstablishmentConfig,
)
from table_booking.service.shared_kernel.domain.entity.shift_entity import (  # noqa: E402
    Area,
    SlotCatalog,
)
from table_booking.service.shared_kernel.domain.enum.addon_type import AddonType  # noqa: E402
from table_booking.service.shared_kernel.domain.enum.usage_policy import (  # noqa: E402
    UsagePolicy,
)


BOOKING_DAY = date(2026, 11, 20)
EST = 'testnz'


# =============================================================================
# Stand-ins for the remote services
# =============================================================================


class FakeBookingApiGateway(IBookingApiGateway):
    """Records every remote step; responses and failures are set per test."""

    def __init__(self, *, hold: Hold) -> None:
        self.hold_result = hold
        self.hold_error: Exception | None = None
        self.hold_gate: asyncio.Event | None = None
        self.update_errors: list[Exception] = []
        self.update_delay = 0.0
        self.credentials = PaymentCredentials(
            client_secret='seti_123_secret_abc', public_key='pk_test_123'
        )
        self.credentials_error: Exception | None = None
        self.credentials_gate: asyncio.Event | None = None
        self.deposit = DepositInfo(code=1, total=0)
        self.attachment = PaymentAttachment(ok=True)

        self.calls: list[str] = []
        self.hold_requests: list[HoldRequest] = []
        self.update_addons: list[str] = []
        self.attached_payment_methods: list[str] = []

    async def hold(self, *, request: HoldRequest) -> Hold:
        self.calls.append('hold')
        self.hold_requests.append(request)
        if self.hold_gate is not None:
            await self.hold_gate.wait()
        if self.hold_error is not None:
            raise self.hold_error
        return self.hold_result

    async def update(
        self,
        *,
        est: str,
        hold: Hold,
        details: CustomerDetails,
        addons: str,
        language: str,
    ) -> BookingConfirmation:
        self.calls.append('update')
        self.update_addons.append(addons)
        if self.update_delay:
            await asyncio.sleep(self.update_delay)
        if self.update_errors:
            raise self.update_errors.pop(0)
        return BookingConfirmation(hold_uid=hold.uid, message='Booking confirmed')

    async def restore(self, *, est: str, hold: Hold) -> bool:
        self.calls.append('restore')
        return True

    async def fetch_payment_credentials(
        self, *, est: str, hold: Hold, description: str
    ) -> PaymentCredentials:
        self.calls.append('pi-get')
        if self.credentials_gate is not None:
            await self.credentials_gate.wait()
        if self.credentials_error is not None:
            raise self.credentials_error
        return self.credentials

    async def fetch_deposit_info(self, *, est: str, hold: Hold, language: str) -> DepositInfo:
        self.calls.append('deposit-get')
        return self.deposit

    async def attach_payment_method(
        self, *, est: str, hold: Hold, payment_method: str, total: int
    ) -> PaymentAttachment:
        self.calls.append('pm-id')
        self.attached_payment_methods.append(payment_method)
        return self.attachment


class FakePaymentProcessor(IPaymentProcessor):
    def __init__(self) -> None:
        self.status = 'succeeded'
        self.error: Exception | None = None
        self.confirm_calls: list[str] = []
        self.closed = False

    async def confirm_intent(
        self,
        *,
        client_secret: str,
        payment_method: str,
        billing_details: dict[str, Any] | None = None,
    ) -> PaymentResult:
        self.confirm_calls.append(payment_method)
        if self.error is not None:
            raise self.error
        return PaymentResult(
            intent_id=intent_id_from_secret(client_secret),
            intent_type=intent_type_from_secret(client_secret),
            status=self.status,
            payment_method=payment_method,
        )

    async def aclose(self) -> None:
        self.closed = True


class FakeAvailabilityGateway(IAvailabilityGateway):
    def __init__(self) -> None:
        self.day_results: dict[tuple[date, int], DayAvailability] = {}
        self.month_results: dict[tuple[int, int], MonthAvailability] = {}
        self.day_calls: list[tuple[date, int]] = []
        self.month_calls: list[dict[str, Any]] = []
        self.month_delay = 0.0
        self.day_gate: asyncio.Event | None = None

    async def fetch_day_availability(self, *, est: str, covers: int, day: date) -> DayAvailability:
        self.day_calls.append((day, covers))
        if self.day_gate is not None:
            await self.day_gate.wait()
        return self.day_results.get((day, covers), DayAvailability(day=day, covers=covers))

    async def fetch_month_availability(
        self,
        *,
        est: str,
        year: int,
        month: int,
        covers: int,
        time: float | None = None,
        event: int | None = None,
    ) -> MonthAvailability:
        self.month_calls.append(
            {'year': year, 'month': month, 'covers': covers, 'time': time, 'event': event}
        )
        if self.month_delay:
            await asyncio.sleep(self.month_delay)
        return self.month_results.get((year, month), MonthAvailability(year=year, month=month))


# =============================================================================
# Domain factories
# =============================================================================


@pytest.fixture
def make_addon() -> Callable[..., Addon]:
    """Factory for add-ons: ``make_addon(11, 'Menu', price=1000)``"""

    def _create(uid: int, addon_type: str = 'Menu', **kwargs: Any) -> Addon:
        kwargs.setdefault('name', f'{addon_type} {uid}')
        return Addon(uid=uid, type=AddonType(addon_type), **kwargs)

    return _create


@pytest.fixture
def make_catalog() -> Callable[..., SlotCatalog]:
    """Factory for slot catalogs; add-on positions follow list order."""

    def _create(
        addons: tuple[Addon, ...] | list[Addon] = (),
        *,
        usage_policy: UsagePolicy | None = UsagePolicy.SINGLE_SELECT,
        max_menu_types: int = 0,
        charge: int = 0,
        areas: tuple[Area, ...] = (),
        time: float = 19.0,
        shift_uid: int = 1,
        shift_type: str = 'Dinner',
    ) -> SlotCatalog:
        return SlotCatalog(
            shift_uid=shift_uid,
            shift_type=shift_type,
            shift_name=shift_type,
            time=time,
            usage_policy=usage_policy,
            max_menu_types=max_menu_types,
            charge=charge,
            addons=tuple(
                attrs.evolve(addon, position=position) for position, addon in enumerate(addons)
            ),
            areas=areas,
        )

    return _create


@pytest.fixture
def make_hold() -> Callable[..., Hold]:
    def _create(
        uid: int = 9001, card: int = 0, per_head: int = 0, total: int = 0, covers: int = 2
    ) -> Hold:
        return Hold.create(
            uid=uid, created=1763600000, card=card, per_head=per_head, total=total, covers=covers
        )

    return _create


@pytest.fixture
def customer_details() -> CustomerDetails:
    return CustomerDetails.create(
        first_name='Aroha',
        last_name='Ngata',
        email='aroha@example.co.nz',
        phone='+64 21 555 0101',
    )


@pytest.fixture
def establishment_config() -> EstablishmentConfig:
    return EstablishmentConfig(est=EST, est_full='Test Bistro', party_min=1, party_max=8)


@pytest.fixture
def make_booking(make_catalog: Callable[..., SlotCatalog]) -> Callable[..., BookingSelection]:
    def _create(
        *,
        catalog: SlotCatalog | None = None,
        party_size: int = 2,
        selection: SelectionState | None = None,
        area: str = '',
        area_required: bool = False,
        event: int | None = None,
    ) -> BookingSelection:
        return BookingSelection(
            day=BOOKING_DAY,
            party_size=party_size,
            catalog=catalog or make_catalog(usage_policy=UsagePolicy.NONE),
            selection=selection or SelectionState.empty(),
            area=area,
            area_required=area_required,
            event=event,
        )

    return _create


# =============================================================================
# Remote stand-ins and the state machine
# =============================================================================


@pytest.fixture
def fake_payment_processor() -> FakePaymentProcessor:
    return FakePaymentProcessor()


@pytest.fixture
def make_booking_gateway(make_hold: Callable[..., Hold]) -> Callable[..., FakeBookingApiGateway]:
    def _create(**hold_kwargs: Any) -> FakeBookingApiGateway:
        return FakeBookingApiGateway(hold=make_hold(**hold_kwargs))

    return _create


@pytest.fixture
def fake_availability_gateway() -> FakeAvailabilityGateway:
    return FakeAvailabilityGateway()


@pytest.fixture
def make_state_machine(
    fake_payment_processor: FakePaymentProcessor,
) -> Callable[..., BookingSessionStateMachine]:
    """Factory for state machines wired to in-memory stand-ins with short timers."""

    def _create(
        gateway: IBookingApiGateway,
        *,
        processor: IPaymentProcessor | None = None,
        countdown_seconds: float = 30.0,
        payment_safety_timeout_seconds: float = 5.0,
        broadcaster: InMemorySessionStateBroadcasterImpl | None = None,
        lng: dict[str, str] | None = None,
    ) -> BookingSessionStateMachine:
        payment_processor = processor or fake_payment_processor

        async def _factory(public_key: str) -> IPaymentProcessor:
            return payment_processor

        return BookingSessionStateMachine(
            est=EST,
            booking_gateway=gateway,
            payment_registry=PaymentClientRegistry(factory=_factory),
            broadcaster=broadcaster,
            language='english',
            lng=lng,
            countdown_seconds=countdown_seconds,
            payment_safety_timeout_seconds=payment_safety_timeout_seconds,
        )

    return _create
