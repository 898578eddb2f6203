"""
Establishment Config Loader

The establishment's settings live in the inline script of its hosted booking
form (``/web/form?est=``). The script is located by the ``lng`` and
``weekDays`` declarations, each wanted variable is cut out of it, and the
JavaScript literal is converted to JSON and decoded with orjson.
"""

import re
from typing import Any

import httpx
import orjson
from pydantic import ValidationError

from table_booking.platform.config.core_setting import settings
from table_booking.platform.exception.exceptions import ConfigurationError
from table_booking.platform.logging.loguru_io import Logger
from table_booking.platform.observability.tracing import inject_trace_context
from table_booking.service.shared_kernel.app.interface.i_establishment_config_loader import (
    IEstablishmentConfigLoader,
)
from table_booking.service.shared_kernel.domain.entity.establishment_config import (
    EstablishmentConfig,
    EventDefinition,
)
from table_booking.service.shared_kernel.driven_adapter.schema.establishment_config_schema import (
    EstablishmentConfigWire,
)


SCRIPT_PATTERN = re.compile(r'<script\b[^>]*>(.*?)</script>', re.IGNORECASE | re.DOTALL)
CONFIG_SCRIPT_MARKERS = ('const lng = {', 'const weekDays = [')

CONFIG_VARIABLES = (
    'estName',
    'estFull',
    'lng',
    'partyMin',
    'partyMax',
    'areaAny',
    'arSelect',
    'allergy',
    'usrLang',
    'currSym',
    'eventsB',
    'dapi',
)

_IDENTIFIER = re.compile(r'[A-Za-z_$][\w$]*')
_NUMBER = re.compile(r'-?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
_JS_KEYWORDS = {'true': 'true', 'false': 'false', 'null': 'null', 'undefined': 'null'}
_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', 'b': '\b', 'f': '\f', '0': '\0'}


def find_config_script(html: str) -> str | None:
    for match in SCRIPT_PATTERN.finditer(html):
        script = match.group(1)
        if all(marker in script for marker in CONFIG_SCRIPT_MARKERS):
            return script
    return None


def _skip_string(source: str, start: int) -> int:
    """Index just past the string literal opening at ``start``."""
    quote = source[start]
    i = start + 1
    while i < len(source):
        if source[i] == '\\':
            i += 2
            continue
        if source[i] == quote:
            return i + 1
        i += 1
    return len(source)


def _balanced_end(source: str, start: int) -> int:
    """Index just past the bracket closing the one at ``start``; string contents are skipped."""
    depth = 0
    i = start
    while i < len(source):
        ch = source[i]
        if ch in '\'"`':
            i = _skip_string(source, i)
            continue
        if ch in '{[':
            depth += 1
        elif ch in '}]':
            depth -= 1
            if depth == 0:
                return i + 1
        i += 1
    return -1


def extract_variable(script: str, name: str) -> str | None:
    """Raw literal text assigned to ``name`` by a const/let/var declaration."""
    declaration = re.search(rf'\b(?:const|var|let)\s+{re.escape(name)}\s*=\s*', script)
    if declaration is None:
        return None
    start = declaration.end()
    if start < len(script) and script[start] in '{[':
        end = _balanced_end(script, start)
        return script[start:end] if end > 0 else None
    if start < len(script) and script[start] in '\'"`':
        return script[start : _skip_string(script, start)]

    value = re.match(r'([^;\n]+)', script[start:])
    if value is None:
        return None
    return value.group(1).strip().rstrip(',')


def _read_string(source: str, start: int) -> tuple[str, int]:
    quote = source[start]
    chars: list[str] = []
    i = start + 1
    while i < len(source) and source[i] != quote:
        if source[i] == '\\' and i + 1 < len(source):
            escaped = source[i + 1]
            if escaped == 'u' and re.fullmatch(r'[0-9a-fA-F]{4}', source[i + 2 : i + 6]):
                chars.append(chr(int(source[i + 2 : i + 6], 16)))
                i += 6
                continue
            chars.append(_ESCAPES.get(escaped, escaped))
            i += 2
            continue
        chars.append(source[i])
        i += 1
    return ''.join(chars), i + 1


def js_literal_to_json(source: str) -> str:
    """
    Convert a JavaScript object/array/scalar literal to JSON text.

    Single-quoted and template strings become JSON strings, bare keys are
    quoted, trailing commas dropped and ``undefined`` read as null.
    """
    out: list[str] = []
    i = 0
    while i < len(source):
        ch = source[i]
        if ch.isspace():
            i += 1
        elif ch in '\'"`':
            text, i = _read_string(source, i)
            out.append(orjson.dumps(text).decode())
        elif ch in '}]':
            if out and out[-1] == ',':
                out.pop()
            out.append(ch)
            i += 1
        elif (number := _NUMBER.match(source, i)) is not None:
            out.append(number.group(0))
            i = number.end()
        elif (identifier := _IDENTIFIER.match(source, i)) is not None:
            word = identifier.group(0)
            out.append(_JS_KEYWORDS.get(word) or orjson.dumps(word).decode())
            i = identifier.end()
        else:
            out.append(ch)
            i += 1
    return ''.join(out)


def parse_js_value(raw: str) -> Any:
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError:
        pass
    try:
        return orjson.loads(js_literal_to_json(raw))
    except orjson.JSONDecodeError:
        Logger.base.warning(f'⚠️ [CONFIG] Could not parse literal, keeping raw text: {raw[:60]}')
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in '\'"':
        return raw[1:-1]
    return raw


def parse_form_variables(script: str) -> dict[str, Any]:
    variables: dict[str, Any] = {}
    for name in CONFIG_VARIABLES:
        raw = extract_variable(script, name)
        if raw is None:
            Logger.base.debug(f'🔧 [CONFIG] Variable {name} not declared')
            continue
        variables[name] = parse_js_value(raw)
    return variables


def to_establishment_config(est: str, variables: dict[str, Any]) -> EstablishmentConfig:
    """
    Raises:
        ConfigurationError: estFull missing or variables of the wrong shape
    """
    try:
        wire = EstablishmentConfigWire.model_validate(variables)
    except ValidationError as e:
        raise ConfigurationError(f'Invalid configuration for establishment {est}') from e
    if not wire.est_full:
        raise ConfigurationError(f'Establishment {est} is not configured for online booking')

    return EstablishmentConfig(
        est=est,
        est_full=wire.est_full,
        est_name=wire.est_name or '',
        party_min=wire.party_min,
        party_max=wire.party_max,
        area_any=wire.area_any,
        ar_select=wire.ar_select,
        allergy=wire.allergy,
        usr_lang=wire.usr_lang or settings.DEFAULT_LANGUAGE,
        curr_sym=wire.curr_sym or '$',
        dapi=wire.dapi,
        events=tuple(
            EventDefinition(
                uid=event.uid,
                name=event.name,
                usage=event.usage,
                avail=tuple(event.avail),
                early=event.early,
                late=event.late,
            )
            for event in wire.events
        ),
        lng={key: value for key, value in wire.lng.items() if isinstance(value, str)},
    )


class EstablishmentConfigLoaderImpl(IEstablishmentConfigLoader):
    def __init__(self, *, client: httpx.AsyncClient, base_url: str | None = None) -> None:
        self.client = client
        self.base_url = (base_url or settings.EVEVE_FORM_BASE_URL).rstrip('/')

    @Logger.io
    async def load(self, *, est: str) -> EstablishmentConfig:
        est = (est or '').strip()
        if not est:
            raise ConfigurationError('Establishment ID is required')

        url = f'{self.base_url}/web/form'
        try:
            response = await self.client.get(
                url, params={'est': est}, headers=inject_trace_context()
            )
        except httpx.HTTPError as e:
            raise ConfigurationError(f'Failed to fetch configuration for {est}: {e}') from e
        if response.status_code >= 400:
            raise ConfigurationError(
                f'Failed to fetch configuration: {response.status_code} {response.reason_phrase}'
            )

        script = find_config_script(response.text)
        if script is None:
            raise ConfigurationError(
                f'Could not find the main configuration script block in the form for {est}'
            )

        config = to_establishment_config(est, parse_form_variables(script))
        Logger.base.info(
            f'🔧 [CONFIG] Loaded {config.est_full} (party {config.party_min}-{config.party_max}, '
            f'events={len(config.events)}, dapi={config.dapi or "default"})'
        )
        return config
