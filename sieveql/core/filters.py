from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .values import CoercedValue, ValueKind, coerce, coerce_list

logger = logging.getLogger(__name__)

# Canonical operator names understood by the bundled stores
OPERATORS = frozenset({
    'eq', 'ne', 'lt', 'lte', 'gt', 'gte',
    'in', 'not_in',
    'contains', 'starts_with', 'ends_with',
    'like', 'not_like', 'ilike', 'not_ilike',
    'between', 'not_between',
    'is_null',
})

OPERATOR_ALIASES: Dict[str, str] = {
    'equals': 'eq',
    'not': 'ne',
    'neq': 'ne',
    'notIn': 'not_in',
    'notin': 'not_in',
    'nin': 'not_in',
    'startsWith': 'starts_with',
    'endsWith': 'ends_with',
    'isnull': 'is_null',
    'isNull': 'is_null',
    'notBetween': 'not_between',
}

LIST_OPERATORS = frozenset({'in', 'not_in', 'between', 'not_between'})


def normalize_operator(name: str) -> str:
    return OPERATOR_ALIASES.get(name, name)


def register_operator_alias(alias: str, canonical: str) -> None:
    if canonical not in OPERATORS:
        raise ValueError(f"Unknown operator: {canonical}")
    OPERATOR_ALIASES[alias] = canonical


class Connective(Enum):
    AND = 'AND'
    OR = 'OR'


@dataclass(frozen=True)
class FieldPredicate:
    field: str
    operator: Optional[str]
    value: CoercedValue
    insensitive: bool = False

    def to_where(self) -> Dict[str, Any]:
        raw = self.value.unwrap()
        if self.operator is None:
            return {self.field: raw}
        cond: Dict[str, Any] = {self.operator: raw}
        if self.insensitive:
            cond['mode'] = 'insensitive'
        return {self.field: cond}


@dataclass(frozen=True)
class Composite:
    connective: Connective
    children: Tuple["Filter", ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.children:
            raise ValueError("Composite filter requires at least one child")

    def to_where(self) -> Dict[str, Any]:
        return {self.connective.value: [c.to_where() for c in self.children]}


Filter = Union[FieldPredicate, Composite]


def conjoin(clauses: Sequence[Filter]) -> Optional[Filter]:
    """AND together ``clauses``; ``None`` (match all) when there are none."""
    items = [c for c in clauses if c is not None]
    if not items:
        return None
    if len(items) == 1:
        return items[0]
    return Composite(Connective.AND, tuple(items))


def where_dict(flt: Optional[Filter]) -> Dict[str, Any]:
    return {} if flt is None else flt.to_where()


# --- operator keys ------------------------------------------------------------

def _is_operator_name(text: str) -> bool:
    return bool(text) and all(ch.isascii() and (ch.isalnum() or ch == '_') for ch in text)


def parse_operator_key(key: str) -> Optional[Tuple[str, str]]:
    """Split ``field[operator]`` into ``(field, operator)``.

    Returns ``None`` when ``key`` is not exactly that shape, in which case the
    whole key is a literal field name.
    """
    if not key.endswith(']'):
        return None
    open_at = key.find('[')
    if open_at <= 0:
        return None
    field_name = key[:open_at]
    operator = key[open_at + 1:-1]
    if '[' in operator or ']' in operator or ']' in field_name:
        return None
    if not _is_operator_name(operator):
        return None
    return field_name, normalize_operator(operator)


def _is_blank(value: Any) -> bool:
    if isinstance(value, CoercedValue):
        return value.kind is ValueKind.NULL or (value.kind is ValueKind.STRING and value.value == '')
    return value is None or (isinstance(value, str) and value == '')


def _operator_map(value: Any) -> Optional[Mapping[str, Any]]:
    # already-coerced maps (nested relation filters) carry their entries on .value
    if isinstance(value, CoercedValue):
        value = value.value if value.kind is ValueKind.MAP else None
    if not isinstance(value, Mapping) or not value:
        return None
    if all(isinstance(k, str) and normalize_operator(k) in OPERATORS for k in value):
        return value
    return None


def _coerce_operand(operator: str, raw: Any) -> CoercedValue:
    if operator in LIST_OPERATORS:
        return coerce_list(raw)
    return coerce(raw)


# --- assembly -----------------------------------------------------------------

def build_search(term: Any, fields: Sequence[str]) -> Optional[Composite]:
    """OR group matching ``term`` (case-insensitive contains) on any of ``fields``."""
    if term is None:
        return None
    text = str(term).strip()
    if not text or not fields:
        return None
    return Composite(
        Connective.OR,
        tuple(FieldPredicate(f, 'contains', CoercedValue.string(text), insensitive=True) for f in fields),
    )


def build_field_filters(params: Mapping[str, Any], reserved: Iterable[str]) -> List[Filter]:
    """Turn every non-reserved parameter into field predicates.

    ``field[op]=v`` keys (and qs-style ``{field: {op: v}}`` values) merge into
    the field's operator map; bare keys are equality and replace it.
    """
    skip = set(reserved)
    per_field: Dict[str, Union[CoercedValue, Dict[str, CoercedValue]]] = {}
    for key, value in params.items():
        if key in skip:
            continue
        if _is_blank(value):
            continue
        parsed = parse_operator_key(key)
        if parsed is not None:
            field_name, operator = parsed
            ops = per_field.get(field_name)
            if not isinstance(ops, dict):
                ops = {}
            ops[operator] = _coerce_operand(operator, value)
            per_field[field_name] = ops
            continue
        op_map = _operator_map(value)
        if op_map is not None:
            ops = per_field.get(key)
            if not isinstance(ops, dict):
                ops = {}
            for op_name, op_value in op_map.items():
                if _is_blank(op_value):
                    continue
                operator = normalize_operator(op_name)
                ops[operator] = _coerce_operand(operator, op_value)
            if ops:
                per_field[key] = ops
            continue
        per_field[key] = coerce(value)

    clauses: List[Filter] = []
    for field_name, spec in per_field.items():
        if isinstance(spec, dict):
            for operator, operand in spec.items():
                clauses.append(FieldPredicate(field_name, operator, operand))
        else:
            clauses.append(FieldPredicate(field_name, None, spec))
    logger.debug(f"Assembled {len(clauses)} field predicate(s) from {len(per_field)} field(s)")
    return clauses


def nested_filter(value: CoercedValue) -> Optional[Filter]:
    """Nested filter for a MAP value, e.g. ``{"profile": {"bio": "x"}}``."""
    if value.kind is not ValueKind.MAP:
        return None
    return conjoin(build_field_filters(value.value, ()))


__all__ = [
    'OPERATORS',
    'OPERATOR_ALIASES',
    'LIST_OPERATORS',
    'Connective',
    'FieldPredicate',
    'Composite',
    'Filter',
    'conjoin',
    'where_dict',
    'normalize_operator',
    'register_operator_alias',
    'parse_operator_key',
    'build_search',
    'build_field_filters',
    'nested_filter',
]
