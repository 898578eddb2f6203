from abc import ABC, abstractmethod
from typing import Any

from table_booking.service.reservation.domain.value_object.payment import PaymentResult


class IPaymentProcessor(ABC):
    @abstractmethod
    async def confirm_intent(
        self,
        *,
        client_secret: str,
        payment_method: str,
        billing_details: dict[str, Any] | None = None,
    ) -> PaymentResult:
        """
        Confirm the intent behind ``client_secret`` with a tokenised payment method.

        Raises:
            PaymentError: card declined or processor error (definitive)
            RemoteTimeoutError: no answer in time
        """
        pass

    @abstractmethod
    async def aclose(self) -> None:
        pass
