"""
Eveve API Gateway

httpx client over the remote booking service:
- Booking base (establishment ``dapi`` or the default region): day-avail,
  month-avail, hold, update
- Payment base: pi-get, deposit-get, pm-id, restore

Responses are decoded with orjson and validated with the wire schemas before
being mapped onto domain entities.
"""

from datetime import date
from typing import Any, TypeVar

import httpx
import orjson
from pydantic import BaseModel, ValidationError

from table_booking.platform.config.core_setting import settings
from table_booking.platform.exception.exceptions import (
    AvailabilityError,
    ConfirmError,
    CustomBaseError,
    DomainError,
    HoldError,
    PaymentError,
    RemoteTimeoutError,
)
from table_booking.platform.logging.loguru_io import Logger
from table_booking.platform.observability.tracing import inject_trace_context
from table_booking.service.availability.app.interface.i_availability_gateway import (
    IAvailabilityGateway,
)
from table_booking.service.reservation.app.interface.i_booking_api_gateway import (
    IBookingApiGateway,
)
from table_booking.service.reservation.domain.entity.customer_details import CustomerDetails
from table_booking.service.reservation.domain.entity.hold_entity import Hold, HoldRequest
from table_booking.service.reservation.domain.value_object.payment import (
    BookingConfirmation,
    DepositInfo,
    PaymentAttachment,
    PaymentCredentials,
)
from table_booking.service.shared_kernel.domain.entity.addon_entity import Addon
from table_booking.service.shared_kernel.domain.entity.availability_entity import (
    DayAvailability,
    MonthAvailability,
)
from table_booking.service.shared_kernel.domain.entity.establishment_config import (
    EstablishmentConfig,
)
from table_booking.service.shared_kernel.domain.entity.shift_entity import Area, Shift, TimeSlot
from table_booking.service.shared_kernel.domain.enum.addon_type import AddonType
from table_booking.service.shared_kernel.domain.enum.usage_policy import UsagePolicy
from table_booking.service.shared_kernel.driven_adapter.schema.eveve_schema import (
    AddonWire,
    AreaWire,
    DayAvailabilityWire,
    DepositWire,
    HoldWire,
    MonthAvailabilityWire,
    PaymentIntentWire,
    PaymentMethodAttachWire,
    ShiftWire,
    StatusWire,
    TimeSlotWire,
)


SchemaT = TypeVar('SchemaT', bound=BaseModel)

# Payment endpoints take a fixed booking type
BOOKING_TYPE = 0


def format_wire_number(value: float) -> str:
    """19.0 -> '19', 19.5 -> '19.5'"""
    number = float(value)
    return str(int(number)) if number.is_integer() else str(number)


# =============================================================================
# Wire -> domain mapping
# =============================================================================


def _addon_type(value: str) -> AddonType:
    try:
        return AddonType(value)
    except ValueError:
        return AddonType.OPTION


def to_addon(wire: AddonWire, position: int) -> Addon:
    """``min``/``max`` bound guests for a Menu and quantity for an Option."""
    addon_type = _addon_type(wire.type)
    lower = int(wire.min) if wire.min is not None else None
    upper = int(wire.max) if wire.max is not None else None
    bounds: dict[str, Any]
    if addon_type == AddonType.MENU:
        bounds = {'min_guests': lower if lower is not None else 1, 'max_guests': upper}
    else:
        bounds = {'min_quantity': lower if lower is not None else 0, 'max_quantity': upper}
    return Addon(
        uid=wire.uid,
        type=addon_type,
        name=wire.name,
        price=int(round(wire.price)),
        per=wire.per,
        desc=wire.desc or '',
        parent=wire.parent,
        position=position,
        charge=wire.charge or 0,
        **bounds,
    )


def to_addons(wires: list[AddonWire]) -> tuple[Addon, ...]:
    return tuple(to_addon(wire, position) for position, wire in enumerate(wires))


def to_time_slot(wire: float | TimeSlotWire) -> TimeSlot:
    if isinstance(wire, TimeSlotWire):
        return TimeSlot(
            time=wire.time,
            addons=to_addons(wire.addons) if wire.addons is not None else None,
            usage=UsagePolicy.from_wire(wire.usage),
        )
    return TimeSlot(time=float(wire))


def to_shift(wire: ShiftWire) -> Shift:
    return Shift(
        uid=wire.uid,
        type=wire.type,
        name=wire.name,
        usage=UsagePolicy.from_wire(wire.usage),
        charge=wire.charge or 0,
        max_menu_types=wire.max_menu_types or 0,
        addons=to_addons(wire.addons),
        times=tuple(to_time_slot(slot) for slot in wire.times),
        message=wire.message,
    )


def to_area(wire: AreaWire) -> Area:
    return Area(uid=wire.identifier, name=wire.name, times=tuple(wire.times))


def to_day_availability(wire: DayAvailabilityWire, *, day: date, covers: int) -> DayAvailability:
    return DayAvailability(
        day=day,
        covers=covers,
        shifts=tuple(to_shift(shift) for shift in wire.shifts),
        areas=tuple(to_area(area) for area in wire.areas),
        message=wire.message,
    )


# =============================================================================
# Gateway
# =============================================================================


class EveveApiGatewayImpl(IAvailabilityGateway, IBookingApiGateway):
    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        booking_base_url: str | None = None,
        payment_base_url: str | None = None,
    ) -> None:
        self.client = client
        self.booking_base_url = (booking_base_url or settings.EVEVE_BOOKING_BASE_URL).rstrip('/')
        self.payment_base_url = (payment_base_url or settings.EVEVE_PAYMENT_BASE_URL).rstrip('/')

    def for_establishment(self, config: EstablishmentConfig) -> 'EveveApiGatewayImpl':
        """Same client, booking calls routed to the establishment's own API host when it has one."""
        if not config.dapi:
            return self
        return EveveApiGatewayImpl(
            client=self.client,
            booking_base_url=config.dapi,
            payment_base_url=self.payment_base_url,
        )

    async def _get(
        self,
        *,
        step: str,
        url: str,
        params: dict[str, Any],
        schema: type[SchemaT],
        error: type[CustomBaseError],
    ) -> SchemaT:
        """
        Raises:
            RemoteTimeoutError: no answer within the client timeout
            error: non-2xx status, unreadable body or payload failing validation
        """
        headers = inject_trace_context(headers={'Accept': 'application/json'})
        try:
            response = await self.client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise RemoteTimeoutError(f'{step} request timed out') from e
        except httpx.HTTPError as e:
            raise error(f'{step} request failed: {e}') from e

        if response.status_code >= 400:
            raise error(f'{step} request failed: {response.status_code} {response.text}')

        try:
            return schema.model_validate(orjson.loads(response.content))
        except orjson.JSONDecodeError as e:
            raise error(f'{step} response was not valid JSON') from e
        except ValidationError as e:
            Logger.base.warning(f'⚠️ [EVEVE] {step} payload rejected: {e.error_count()} errors')
            raise error(f'{step} response was malformed') from e

    # =========================================================================
    # Availability
    # =========================================================================

    @Logger.io
    async def fetch_day_availability(self, *, est: str, covers: int, day: date) -> DayAvailability:
        wire = await self._get(
            step='Day availability',
            url=f'{self.booking_base_url}/web/day-avail',
            params={'est': est, 'covers': covers, 'date': day.isoformat()},
            schema=DayAvailabilityWire,
            error=AvailabilityError,
        )
        return to_day_availability(wire, day=day, covers=covers)

    @Logger.io
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
        params: dict[str, Any] = {
            'est': est,
            'covers': covers,
            'date': date(year, month, 1).isoformat(),
        }
        if time is not None:
            params['time'] = format_wire_number(time)
        if event is not None:
            params['event'] = event

        wire = await self._get(
            step='Month availability',
            url=f'{self.booking_base_url}/web/month-avail',
            params=params,
            schema=MonthAvailabilityWire,
            error=AvailabilityError,
        )
        return MonthAvailability(
            year=year,
            month=month,
            days=tuple(wire.times),
            events={event_wire.uid: tuple(event_wire.avail) for event_wire in wire.events},
        )

    # =========================================================================
    # Hold / update
    # =========================================================================

    @Logger.io
    async def hold(self, *, request: HoldRequest) -> Hold:
        params: dict[str, Any] = {
            'est': request.est,
            'lng': request.language,
            'covers': request.covers,
            'date': request.day.isoformat(),
            'time': format_wire_number(request.time),
        }
        if request.addons:
            params['addons'] = request.addons
        if request.area and request.area != 'any':
            params['area'] = request.area
        if request.event is not None:
            params['event'] = request.event

        wire = await self._get(
            step='Hold',
            url=f'{self.booking_base_url}/web/hold',
            params=params,
            schema=HoldWire,
            error=HoldError,
        )
        if not wire.ok:
            raise HoldError(wire.message or 'Hold request failed with API error')

        card = wire.normalized_card()
        try:
            return Hold.create(
                uid=wire.uid or 0,
                created=wire.created or 0,
                card=card.code,
                per_head=card.per_head,
                total=card.total,
                covers=wire.covers or request.covers,
                card_message=card.msg or '',
                event=wire.event if wire.event is not None else request.event,
            )
        except DomainError as e:
            raise HoldError(e.message) from e

    @Logger.io
    async def update(
        self,
        *,
        est: str,
        hold: Hold,
        details: CustomerDetails,
        addons: str,
        language: str,
    ) -> BookingConfirmation:
        params: dict[str, Any] = {
            'est': est,
            'uid': hold.uid,
            'lng': language,
            **details.to_update_params(),
        }
        if addons:
            params['addons'] = addons

        wire = await self._get(
            step='Update',
            url=f'{self.booking_base_url}/web/update',
            params=params,
            schema=StatusWire,
            error=ConfirmError,
        )
        if not wire.ok:
            raise ConfirmError(wire.message or 'Update request failed with API error')
        return BookingConfirmation(hold_uid=hold.uid, message=wire.message or '')

    # =========================================================================
    # Payment endpoints
    # =========================================================================

    @Logger.io
    async def restore(self, *, est: str, hold: Hold) -> bool:
        wire = await self._get(
            step='Restore',
            url=f'{self.payment_base_url}/api/restore',
            params={'est': est, 'uid': hold.uid, 'type': BOOKING_TYPE},
            schema=StatusWire,
            error=ConfirmError,
        )
        if not wire.ok:
            Logger.base.warning(f'⚠️ [EVEVE] Restore did not validate hold {hold.uid}')
        return wire.ok

    @Logger.io
    async def fetch_payment_credentials(
        self, *, est: str, hold: Hold, description: str
    ) -> PaymentCredentials:
        wire = await self._get(
            step='pi-get',
            url=f'{self.payment_base_url}/int/pi-get',
            params={
                'est': est,
                'uid': hold.uid,
                'type': BOOKING_TYPE,
                'desc': description or 'Customer',
                'created': hold.created,
            },
            schema=PaymentIntentWire,
            error=PaymentError,
        )
        if not wire.client_secret or not wire.public_key:
            raise PaymentError('Missing Stripe keys in pi-get response')
        return PaymentCredentials(
            client_secret=wire.client_secret, public_key=wire.public_key, customer=wire.cust
        )

    @Logger.io
    async def fetch_deposit_info(self, *, est: str, hold: Hold, language: str) -> DepositInfo:
        wire = await self._get(
            step='deposit-get',
            url=f'{self.payment_base_url}/int/deposit-get',
            params={
                'est': est,
                'UID': hold.uid,
                'created': hold.created,
                'lang': language,
                'type': BOOKING_TYPE,
            },
            schema=DepositWire,
            error=PaymentError,
        )
        if not wire.ok:
            raise PaymentError('Deposit-get request failed')
        return DepositInfo(
            code=wire.code,
            total=wire.total,
            amount=wire.amount,
            currency=wire.currency or '',
            message=wire.message or '',
        )

    @Logger.io
    async def attach_payment_method(
        self, *, est: str, hold: Hold, payment_method: str, total: int
    ) -> PaymentAttachment:
        wire = await self._get(
            step='pm-id',
            url=f'{self.payment_base_url}/int/pm-id',
            params={
                'est': est,
                'uid': hold.uid,
                'created': hold.created,
                'pm': payment_method,
                'total': total,
                'totalFloat': format_wire_number(total / 100),
                'type': BOOKING_TYPE,
            },
            schema=PaymentMethodAttachWire,
            error=ConfirmError,
        )
        return PaymentAttachment(
            ok=wire.ok, code=wire.code, total=wire.total, currency=wire.currency or ''
        )
