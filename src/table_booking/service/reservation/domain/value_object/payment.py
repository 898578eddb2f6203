from typing import Any

import attrs


SETUP_INTENT = 'setup_intent'
PAYMENT_INTENT = 'payment_intent'


def intent_type_from_secret(client_secret: str) -> str:
    """Card-on-file authorisations use setup intents, charges use payment intents."""
    if client_secret.startswith('seti_'):
        return SETUP_INTENT
    if client_secret.startswith('pi_'):
        return PAYMENT_INTENT
    return SETUP_INTENT if '_seti_' in client_secret else PAYMENT_INTENT


def intent_id_from_secret(client_secret: str) -> str:
    """``pi_123_secret_abc`` -> ``pi_123``"""
    return client_secret.split('_secret_', 1)[0]


@attrs.define(frozen=True)
class PaymentCredentials:
    client_secret: str = attrs.field(repr=False)
    public_key: str
    customer: str | None = None

    @property
    def intent_type(self) -> str:
        return intent_type_from_secret(self.client_secret)


@attrs.define(frozen=True)
class DepositInfo:
    code: int
    total: int
    amount: int = 0
    currency: str = ''
    message: str = ''


@attrs.define(frozen=True)
class PaymentCapture:
    """Tokenised payment method collected by the card form."""

    payment_method: str | None = attrs.field(default=None, repr=False)
    complete: bool = False
    billing_details: dict[str, Any] = attrs.field(factory=dict, repr=False)


@attrs.define(frozen=True)
class PaymentResult:
    intent_id: str
    intent_type: str
    status: str
    payment_method: str = attrs.field(repr=False)

    @property
    def succeeded(self) -> bool:
        return self.status in ('succeeded', 'processing', 'requires_capture')


@attrs.define(frozen=True)
class PaymentAttachment:
    ok: bool
    code: int = 0
    total: int = 0
    currency: str = ''


@attrs.define(frozen=True)
class BookingConfirmation:
    hold_uid: int
    acknowledged: bool = True
    message: str = ''
    payment_reference: str | None = None
