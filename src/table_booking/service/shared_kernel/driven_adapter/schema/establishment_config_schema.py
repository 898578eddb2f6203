from typing import Any, Dict, List, Optional

import orjson
from pydantic import BaseModel, ConfigDict, Field, field_validator


CURRENCY_ENTITIES = {
    '&amp;#36;': '$',
    '&#36;': '$',
    '&amp;euro;': '€',
    '&euro;': '€',
    '&amp;pound;': '£',
    '&pound;': '£',
}


def decode_currency_symbol(value: str) -> str:
    for entity, symbol in CURRENCY_ENTITIES.items():
        value = value.replace(entity, symbol)
    return value


class EventDefinitionWire(BaseModel):
    model_config = ConfigDict(extra='ignore')

    uid: int
    name: str = ''
    usage: Optional[int] = None
    avail: List[float] = []
    early: Optional[float] = None
    late: Optional[float] = None


class EstablishmentConfigWire(BaseModel):
    """Variables declared by the establishment's hosted booking form script."""

    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    est_full: Optional[str] = Field(default=None, alias='estFull')
    est_name: Optional[str] = Field(default='', alias='estName')
    party_min: int = Field(default=1, alias='partyMin')
    party_max: int = Field(default=20, alias='partyMax')
    area_any: bool = Field(default=False, alias='areaAny')
    ar_select: bool = Field(default=False, alias='arSelect')
    allergy: bool = False
    usr_lang: Optional[str] = Field(default='english', alias='usrLang')
    curr_sym: Optional[str] = Field(default='$', alias='currSym')
    dapi: Optional[str] = None
    events: List[EventDefinitionWire] = Field(default=[], alias='eventsB')
    lng: Dict[str, Any] = {}

    @field_validator('curr_sym', mode='before')
    @classmethod
    def decode_entities(cls, v):
        return decode_currency_symbol(v) if isinstance(v, str) else v

    @field_validator('events', mode='before')
    @classmethod
    def parse_event_json(cls, v):
        # Some forms declare eventsB as a JSON string
        if isinstance(v, str):
            try:
                v = orjson.loads(v)
            except orjson.JSONDecodeError:
                return []
        return v if isinstance(v, list) else []

    @field_validator('lng', mode='before')
    @classmethod
    def lng_must_be_mapping(cls, v):
        return v if isinstance(v, dict) else {}

    @field_validator('dapi', mode='before')
    @classmethod
    def blank_dapi_is_none(cls, v):
        if isinstance(v, str):
            v = v.strip().rstrip('/')
            return v or None
        return None

    @field_validator('party_min', 'party_max', 'area_any', 'ar_select', 'allergy', mode='before')
    @classmethod
    def none_uses_default(cls, v, info):
        if v is None or v == '':
            return cls.model_fields[info.field_name].default
        return v
