from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping, Optional


class ValueKind(Enum):
    BOOLEAN = 'boolean'
    NUMBER = 'number'
    DATETIME = 'datetime'
    LIST = 'list'
    MAP = 'map'
    STRING = 'string'
    NULL = 'null'


@dataclass(frozen=True)
class CoercedValue:
    """A raw filter value tagged with its inferred kind.

    LIST values hold a tuple of ``CoercedValue`` and MAP values a dict of them,
    so the shape of the raw input is kept exactly.
    """

    kind: ValueKind
    value: Any
    # original request text for values inferred from a string
    source: Optional[str] = field(default=None, compare=False, repr=False)

    def unwrap(self) -> Any:
        """Return the plain Python value (recursively for lists and maps)."""
        if self.kind is ValueKind.LIST:
            return [item.unwrap() for item in self.value]
        if self.kind is ValueKind.MAP:
            return {k: v.unwrap() for k, v in self.value.items()}
        return self.value

    @classmethod
    def string(cls, text: str) -> "CoercedValue":
        return cls(ValueKind.STRING, text)

    def __repr__(self) -> str:
        return f"{self.kind.name}({self.value!r})"


_BOOL_TEXT = {'true': True, 'false': False}
_INT_RE = re.compile(r'^[+-]?[0-9]+$')
_FLOAT_RE = re.compile(r'^[+-]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?$')
# shapes accepted on every supported interpreter (fromisoformat widened in 3.11)
_DATETIME_RE = re.compile(
    r'^[0-9]{4}-[0-9]{2}-[0-9]{2}'
    r'(?:[T ][0-9]{2}:[0-9]{2}(?::[0-9]{2}(?:\.[0-9]{3}(?:[0-9]{3})?)?)?(?:[+-][0-9]{2}:[0-9]{2})?)?$'
)


def _parse_number(text: str):
    s = text.strip()
    if _INT_RE.match(s):
        return int(s)
    if not _FLOAT_RE.match(s):
        return None
    num = float(s)
    if not math.isfinite(num):
        return None
    return num


def parse_datetime(text: str):
    s = text.strip()
    if s.endswith(('Z', 'z')):
        s = s[:-1] + '+00:00'
    if not _DATETIME_RE.match(s):
        return None
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


def coerce(raw: Any) -> CoercedValue:
    """Infer the semantic type of a raw parameter value.

    Precedence for strings: boolean, finite number, ISO date/time, string.
    Lists and mappings are coerced element by element. Never raises.
    """
    if isinstance(raw, CoercedValue):
        return raw
    if raw is None:
        return CoercedValue(ValueKind.NULL, None)
    if isinstance(raw, str):
        lowered = raw.lower()
        if lowered in _BOOL_TEXT:
            return CoercedValue(ValueKind.BOOLEAN, _BOOL_TEXT[lowered], raw)
        num = _parse_number(raw)
        if num is not None:
            return CoercedValue(ValueKind.NUMBER, num, raw)
        dt = parse_datetime(raw)
        if dt is not None:
            return CoercedValue(ValueKind.DATETIME, dt, raw)
        return CoercedValue(ValueKind.STRING, raw)
    if isinstance(raw, bool):
        return CoercedValue(ValueKind.BOOLEAN, raw)
    if isinstance(raw, (int, float)):
        return CoercedValue(ValueKind.NUMBER, raw)
    if isinstance(raw, datetime):
        return CoercedValue(ValueKind.DATETIME, raw)
    if isinstance(raw, date):
        return CoercedValue(ValueKind.DATETIME, datetime(raw.year, raw.month, raw.day))
    if isinstance(raw, (list, tuple)):
        return CoercedValue(ValueKind.LIST, tuple(coerce(v) for v in raw))
    if isinstance(raw, Mapping):
        return CoercedValue(ValueKind.MAP, {str(k): coerce(v) for k, v in raw.items()})
    # anything else is passed through untouched
    return CoercedValue(ValueKind.STRING, raw)


def coerce_list(raw: Any) -> CoercedValue:
    """Coerce a value expected to be a list; ``"a,b"`` becomes ``["a", "b"]``."""
    if isinstance(raw, CoercedValue):
        if raw.kind is ValueKind.LIST:
            return raw
        if raw.kind is ValueKind.STRING and isinstance(raw.value, str):
            return coerce_list(raw.value)
        return CoercedValue(ValueKind.LIST, (raw,))
    if isinstance(raw, str):
        return coerce([part.strip() for part in raw.split(',') if part.strip()])
    if isinstance(raw, (list, tuple)):
        return coerce(raw)
    return CoercedValue(ValueKind.LIST, (coerce(raw),))


def to_text(value: CoercedValue) -> str:
    """Canonical text form of a scalar value (used for re-coercion)."""
    if value.kind is ValueKind.BOOLEAN:
        return 'true' if value.value else 'false'
    if value.kind is ValueKind.DATETIME:
        return value.value.isoformat()
    if value.kind is ValueKind.NULL:
        return ''
    return str(value.value)
