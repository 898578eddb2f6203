"""
Stripe Payment Processor

Confirms setup intents (card on file for no-show protection) and payment
intents (deposits) client-side, authenticated with the establishment's
publishable key.
"""

from typing import Any

import httpx
import orjson

from table_booking.platform.config.core_setting import settings
from table_booking.platform.exception.exceptions import PaymentError, RemoteTimeoutError
from table_booking.platform.logging.loguru_io import Logger
from table_booking.platform.observability.tracing import inject_trace_context
from table_booking.service.reservation.app.interface.i_payment_processor import IPaymentProcessor
from table_booking.service.reservation.domain.value_object.payment import (
    PAYMENT_INTENT,
    PaymentResult,
    intent_id_from_secret,
    intent_type_from_secret,
)


INTENT_PATHS = {
    PAYMENT_INTENT: 'payment_intents',
}
SETUP_INTENT_PATH = 'setup_intents'

GENERIC_PAYMENT_ERROR = 'Payment could not be processed. Please check your card details.'


def payment_error_from_response(body: dict[str, Any], status_code: int) -> PaymentError:
    error = body.get('error')
    if not isinstance(error, dict):
        return PaymentError(f'Payment request failed: {status_code}')
    return PaymentError(
        error.get('message') or GENERIC_PAYMENT_ERROR,
        code=error.get('code'),
        error_type=error.get('type'),
        decline_code=error.get('decline_code'),
        param=error.get('param'),
    )


class StripePaymentProcessorImpl(IPaymentProcessor):
    def __init__(
        self,
        *,
        public_key: str,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
    ) -> None:
        if not public_key:
            raise PaymentError('Stripe public key is required')
        self.public_key = public_key
        self.base_url = (base_url or settings.STRIPE_API_BASE_URL).rstrip('/')
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    @Logger.io
    async def confirm_intent(
        self,
        *,
        client_secret: str,
        payment_method: str,
        billing_details: dict[str, Any] | None = None,
    ) -> PaymentResult:
        """
        ``billing_details`` travel with the tokenised payment method; they are
        only logged here.
        """
        intent_type = intent_type_from_secret(client_secret)
        intent_id = intent_id_from_secret(client_secret)
        path = INTENT_PATHS.get(intent_type, SETUP_INTENT_PATH)
        if billing_details:
            Logger.base.debug(f'💳 [STRIPE] Billing fields present: {sorted(billing_details)}')

        headers = inject_trace_context(headers={'Authorization': f'Bearer {self.public_key}'})
        try:
            response = await self.client.post(
                f'{self.base_url}/{path}/{intent_id}/confirm',
                data={'client_secret': client_secret, 'payment_method': payment_method},
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise RemoteTimeoutError('Payment confirmation timed out') from e
        except httpx.HTTPError as e:
            raise PaymentError(f'Payment request failed: {e}') from e

        try:
            body = orjson.loads(response.content)
        except orjson.JSONDecodeError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code >= 400:
            raise payment_error_from_response(body, response.status_code)

        status = body.get('status') or ''
        result = PaymentResult(
            intent_id=body.get('id') or intent_id,
            intent_type=intent_type,
            status=status,
            payment_method=body.get('payment_method') or payment_method,
        )
        if not result.succeeded:
            raise PaymentError(f'Payment was not completed (status: {status or "unknown"})')
        return result

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


async def create_stripe_processor(public_key: str) -> IPaymentProcessor:
    """Factory for PaymentClientRegistry: one processor per publishable key."""
    return StripePaymentProcessorImpl(public_key=public_key)
