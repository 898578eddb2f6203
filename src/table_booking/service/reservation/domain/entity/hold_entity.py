from datetime import date

import attrs

from table_booking.platform.exception.exceptions import DomainError
from table_booking.platform.logging.loguru_io import Logger
from table_booking.service.shared_kernel.domain.enum.card_code import CardCode


@attrs.define(frozen=True)
class HoldRequest:
    est: str
    covers: int
    day: date
    time: float
    addons: str = ''
    area: str = ''  # '' or 'any' are not sent as a concrete area
    event: int | None = None
    language: str = 'english'


@attrs.define(frozen=True)
class Hold:
    """Server-issued, time-boxed table lock. Replaced, never mutated."""

    uid: int
    created: int
    card: CardCode = CardCode.NONE
    per_head: int = 0
    total: int = 0
    covers: int = 0
    card_message: str = ''
    event: int | None = None

    @classmethod
    @Logger.io
    def create(
        cls,
        *,
        uid: int,
        created: int,
        card: int = 0,
        per_head: int = 0,
        total: int = 0,
        covers: int = 0,
        card_message: str = '',
        event: int | None = None,
    ) -> 'Hold':
        if not uid:
            raise DomainError('Hold response did not include a hold id')
        try:
            card_code = CardCode(card)
        except ValueError:
            raise DomainError(f'Unknown card requirement code: {card}')
        return cls(
            uid=uid,
            created=created,
            card=card_code,
            per_head=max(per_head, 0),
            total=max(total, 0),
            covers=covers,
            card_message=card_message,
            event=event,
        )

    @property
    def requires_payment(self) -> bool:
        return self.card.requires_payment

    @property
    def charge_amount(self) -> int:
        """Amount presented to the user: the service total when given, else per head x covers."""
        if self.total > 0:
            return self.total
        return self.per_head * self.covers

    def as_deposit(self, amount: int) -> 'Hold':
        return attrs.evolve(self, card=CardCode.DEPOSIT, per_head=amount, total=amount)
