"""
https://python-dependency-injector.ets-labs.org/index.html
"""

import httpx
from dependency_injector import containers, providers

from table_booking.platform.config.core_setting import Settings
from table_booking.platform.observability.tracing import TracingConfig
from table_booking.service.availability.app.availability_cache import AvailabilityCache
from table_booking.service.reservation.app.booking_session_state_machine import (
    BookingSessionStateMachine,
)
from table_booking.service.reservation.app.payment_client_registry import PaymentClientRegistry
from table_booking.service.reservation.app.reservation_flow import ReservationFlow
from table_booking.service.reservation.driven_adapter.session_state_broadcaster_impl import (
    InMemorySessionStateBroadcasterImpl,
)
from table_booking.service.reservation.driven_adapter.stripe_payment_processor_impl import (
    create_stripe_processor,
)
from table_booking.service.shared_kernel.driven_adapter.establishment_config_loader_impl import (
    EstablishmentConfigLoaderImpl,
)
from table_booking.service.shared_kernel.driven_adapter.eveve_api_gateway_impl import (
    EveveApiGatewayImpl,
)


class Container(containers.DeclarativeContainer):
    # Configuration
    config_service = providers.Singleton(Settings)

    tracing = providers.Singleton(
        TracingConfig,
        service_name=config_service.provided.PROJECT_NAME,
        enable_console=config_service.provided.OTEL_CONSOLE_EXPORT,
    )

    # Shared HTTP client for the remote booking service
    http_client = providers.Singleton(
        httpx.AsyncClient,
        timeout=config_service.provided.HTTP_TIMEOUT_SECONDS,
    )

    eveve_gateway = providers.Singleton(
        EveveApiGatewayImpl,
        client=http_client,
        booking_base_url=config_service.provided.EVEVE_BOOKING_BASE_URL,
        payment_base_url=config_service.provided.EVEVE_PAYMENT_BASE_URL,
    )
    config_loader = providers.Singleton(
        EstablishmentConfigLoaderImpl,
        client=http_client,
        base_url=config_service.provided.EVEVE_FORM_BASE_URL,
    )

    session_broadcaster = providers.Singleton(InMemorySessionStateBroadcasterImpl)

    # Per widget instance: one processor client per publishable key
    payment_registry = providers.Factory(
        PaymentClientRegistry,
        factory=providers.Object(create_stripe_processor),
    )


container = Container()


def setup() -> None:
    container.config_service()
    container.tracing().setup()


async def cleanup() -> None:
    await container.http_client().aclose()
    container.tracing().shutdown()
    container.reset_singletons()


async def create_reservation_flow(*, est: str) -> ReservationFlow:
    """Load the establishment configuration and assemble one widget instance."""
    settings = container.config_service()
    config = await container.config_loader().load(est=est)
    gateway = container.eveve_gateway().for_establishment(config)

    availability = AvailabilityCache(
        gateway=gateway,
        est=config.est,
        config=config,
        debounce_seconds=settings.AVAILABILITY_DEBOUNCE_SECONDS,
        month_covers=settings.MONTH_AVAIL_DEFAULT_COVERS,
    )
    session = BookingSessionStateMachine(
        est=config.est,
        booking_gateway=gateway,
        payment_registry=container.payment_registry(),
        broadcaster=container.session_broadcaster(),
        language=config.usr_lang,
        lng=config.lng,
        countdown_seconds=settings.HOLD_COUNTDOWN_SECONDS,
        payment_safety_timeout_seconds=settings.PAYMENT_SAFETY_TIMEOUT_SECONDS,
    )
    return ReservationFlow(config=config, availability=availability, session=session)
