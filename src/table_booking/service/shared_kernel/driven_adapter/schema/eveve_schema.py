"""
Wire payloads of the remote booking service.

Validated leniently: unknown keys are ignored and most fields default, since
establishments configure very different subsets of the payloads.
"""

from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _WireModel(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)


# =============================================================================
# day-avail / month-avail
# =============================================================================


class AddonWire(_WireModel):
    uid: int
    type: str = 'Option'
    name: str = ''
    price: float = 0
    per: str = 'Item'
    desc: Optional[str] = ''
    min: Optional[float] = None
    max: Optional[float] = None
    parent: int = -1
    charge: Optional[int] = 0


class TimeSlotWire(_WireModel):
    time: float
    addons: Optional[List[AddonWire]] = None
    usage: Optional[Any] = None


class ShiftWire(_WireModel):
    uid: int = 0
    type: str = ''
    name: str = ''
    usage: Optional[Any] = None
    charge: Optional[int] = 0
    max_menu_types: Optional[int] = Field(default=0, alias='maxMenuTypes')
    addons: List[AddonWire] = []
    times: List[Union[float, TimeSlotWire]] = []
    message: Optional[str] = None


class AreaWire(_WireModel):
    uid: Optional[Union[int, str]] = None
    id: Optional[Union[int, str]] = None
    name: str = ''
    times: List[float] = []

    @property
    def identifier(self) -> Union[int, str]:
        return self.uid if self.uid is not None else (self.id if self.id is not None else '')


class DayAvailabilityWire(_WireModel):
    shifts: List[ShiftWire] = []
    areas: List[AreaWire] = []
    message: Optional[str] = None

    @field_validator('message', mode='before')
    @classmethod
    def blank_message_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v if isinstance(v, str) or v is None else str(v)


class EventAvailabilityWire(_WireModel):
    uid: int
    avail: List[int] = []


class MonthAvailabilityWire(_WireModel):
    times: List[Any] = []
    events: List[EventAvailabilityWire] = []


# =============================================================================
# hold / update
# =============================================================================


class CardWire(_WireModel):
    code: int = 0
    per_head: int = Field(default=0, alias='perHead')
    total: int = 0
    msg: Optional[str] = ''


class HoldWire(_WireModel):
    """``card`` is either a bare code (legacy) or an object carrying the amounts."""

    ok: bool = False
    message: Optional[str] = None
    uid: Optional[int] = None
    created: Optional[int] = None
    card: Union[int, CardWire, None] = 0
    per_head: int = Field(default=0, alias='perHead')
    total: int = 0
    msg: Optional[str] = ''
    covers: int = 0
    event: Optional[int] = None

    def normalized_card(self) -> CardWire:
        if isinstance(self.card, CardWire):
            return self.card
        return CardWire(code=self.card or 0, per_head=self.per_head, total=self.total, msg=self.msg)


class StatusWire(_WireModel):
    ok: bool = False
    message: Optional[str] = None


# =============================================================================
# pi-get / deposit-get / pm-id
# =============================================================================


class PaymentIntentWire(_WireModel):
    client_secret: Optional[str] = None
    public_key: Optional[str] = None
    cust: Optional[str] = None


class DepositWire(_WireModel):
    ok: bool = False
    code: int = 0
    total: int = 0
    amount: int = 0
    currency: Optional[str] = ''
    message: Optional[str] = ''


class PaymentMethodAttachWire(_WireModel):
    ok: bool = False
    code: int = 0
    total: int = 0
    currency: Optional[str] = ''
