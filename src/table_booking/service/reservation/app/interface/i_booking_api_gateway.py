from abc import ABC, abstractmethod

from table_booking.service.reservation.domain.entity.customer_details import CustomerDetails
from table_booking.service.reservation.domain.entity.hold_entity import Hold, HoldRequest
from table_booking.service.reservation.domain.value_object.payment import (
    BookingConfirmation,
    DepositInfo,
    PaymentAttachment,
    PaymentCredentials,
)


class IBookingApiGateway(ABC):
    """Hold, update and payment-credential endpoints of the remote booking service."""

    @abstractmethod
    async def hold(self, *, request: HoldRequest) -> Hold:
        pass

    @abstractmethod
    async def update(
        self,
        *,
        est: str,
        hold: Hold,
        details: CustomerDetails,
        addons: str,
        language: str,
    ) -> BookingConfirmation:
        pass

    @abstractmethod
    async def restore(self, *, est: str, hold: Hold) -> bool:
        pass

    @abstractmethod
    async def fetch_payment_credentials(
        self, *, est: str, hold: Hold, description: str
    ) -> PaymentCredentials:
        pass

    @abstractmethod
    async def fetch_deposit_info(self, *, est: str, hold: Hold, language: str) -> DepositInfo:
        pass

    @abstractmethod
    async def attach_payment_method(
        self, *, est: str, hold: Hold, payment_method: str, total: int
    ) -> PaymentAttachment:
        pass
