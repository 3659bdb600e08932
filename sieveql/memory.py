"""In-memory record store over lists of dicts.

Useful for tests, fixtures and small read-only datasets. Filters, ordering,
projection and paging are evaluated in Python with the same semantics the SQL
store pushes down to the database.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .core.filters import Composite, Connective, FieldPredicate, Filter, nested_filter
from .core.ordering import SortDirective
from .core.projection import Projection, ProjectionMode
from .core.values import CoercedValue, ValueKind, parse_datetime
from .errors import UnknownEntityError, UnknownOperatorError
from .naming import resolve_name
from .store import FindPlan, RecordStore

logger = logging.getLogger(__name__)

_MISSING = object()


def get_path(record: Any, path: str) -> Any:
    """Read a dot-notated field from nested dicts; missing parts give ``None``.

    Each part falls back to its camelCase or snake_case spelling, so
    ``created_at`` reads a ``createdAt`` key and vice versa.
    """
    current = record
    for part in path.split('.'):
        if not isinstance(current, Mapping):
            return None
        if part not in current:
            part = resolve_name(part, current.keys())
            if part is None:
                return None
        current = current[part]
    return current


def _comparable(value: Any) -> Any:
    # ISO strings in records compare against coerced datetimes
    if isinstance(value, str):
        parsed = parse_datetime(value)
        return value if parsed is None else parsed
    return value


def _ordered(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def _cmp(actual, expected):
        if actual is None or expected is None:
            return False
        a, e = actual, expected
        if isinstance(e, datetime):
            a = _comparable(a)
            if isinstance(a, datetime) and (a.tzinfo is None) != (e.tzinfo is None):
                a, e = a.replace(tzinfo=None), e.replace(tzinfo=None)
        try:
            return op(a, e)
        except TypeError:
            return False
    return _cmp


def _like(pattern: str, insensitive: bool) -> re.Pattern:
    rx = ''.join('.*' if ch == '%' else '.' if ch == '_' else re.escape(ch) for ch in str(pattern))
    return re.compile(f'^{rx}$', re.IGNORECASE | re.DOTALL if insensitive else re.DOTALL)


def _text_op(fn: Callable[[str, str], bool]) -> Callable[[Any, Any, bool], bool]:
    def _apply(actual, expected, insensitive=False):
        if actual is None:
            return False
        a, e = str(actual), str(expected)
        if insensitive:
            a, e = a.lower(), e.lower()
        return fn(a, e)
    return _apply


def _as_list(v: Any) -> List[Any]:
    return list(v) if isinstance(v, (list, tuple, set)) else [v]


def _between(actual, bounds) -> bool:
    b = _as_list(bounds)
    if len(b) < 2:
        return False
    return _ordered(lambda a, e: a >= e)(actual, b[0]) and _ordered(lambda a, e: a <= e)(actual, b[1])


def _equals(actual, expected) -> bool:
    if isinstance(expected, datetime):
        return _ordered(lambda a, e: a == e)(actual, expected)
    return actual == expected


_TEXT_OPS = {
    'contains': _text_op(lambda a, e: e in a),
    'starts_with': _text_op(lambda a, e: a.startswith(e)),
    'ends_with': _text_op(lambda a, e: a.endswith(e)),
    'like': lambda a, e, i=False: a is not None and bool(_like(e, i).match(str(a))),
    'ilike': lambda a, e, i=False: a is not None and bool(_like(e, True).match(str(a))),
}

_VALUE_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    'eq': _equals,
    'ne': lambda a, e: not _equals(a, e),
    'lt': _ordered(lambda a, e: a < e),
    'lte': _ordered(lambda a, e: a <= e),
    'gt': _ordered(lambda a, e: a > e),
    'gte': _ordered(lambda a, e: a >= e),
    'in': lambda a, e: any(_equals(a, x) for x in _as_list(e)),
    'not_in': lambda a, e: not any(_equals(a, x) for x in _as_list(e)),
    'between': _between,
    'not_between': lambda a, e: not _between(a, e),
    'not_like': lambda a, e: not _TEXT_OPS['like'](a, e),
    'not_ilike': lambda a, e: not _TEXT_OPS['ilike'](a, e),
    'is_null': lambda a, e: (a is None) == bool(e),
}


def _operand(actual: Any, value: CoercedValue) -> Any:
    # text fields compare against the text the request carried ("007", not 7)
    if value.kind is ValueKind.LIST:
        return [_operand(actual, v) for v in value.value]
    if isinstance(actual, str) and value.source is not None and value.kind is not ValueKind.DATETIME:
        return value.source
    return value.unwrap()


def matches(record: Mapping[str, Any], flt: Optional[Filter]) -> bool:
    """Evaluate a filter tree against one record."""
    if flt is None:
        return True
    if isinstance(flt, Composite):
        results = (matches(record, child) for child in flt.children)
        return all(results) if flt.connective is Connective.AND else any(results)
    return _match_predicate(record, flt)


def _match_predicate(record: Mapping[str, Any], pred: FieldPredicate) -> bool:
    actual = get_path(record, pred.field)
    if pred.operator is None:
        if pred.value.kind is ValueKind.MAP:
            nested = nested_filter(pred.value)
            related = actual if isinstance(actual, list) else [actual]
            return any(isinstance(r, Mapping) and matches(r, nested) for r in related)
        return _equals(actual, _operand(actual, pred.value))
    expected = pred.value.unwrap() if pred.operator == 'is_null' else _operand(actual, pred.value)
    if pred.operator in _TEXT_OPS:
        return _TEXT_OPS[pred.operator](actual, expected, pred.insensitive)
    op = _VALUE_OPS.get(pred.operator)
    if op is None:
        raise UnknownOperatorError(f"Unknown where operator: {pred.operator}")
    return op(actual, expected)


def _sort_keys(values: List[Any]) -> List[Any]:
    # ISO strings order as datetimes only when every value parses as one
    as_dates = [_comparable(v) for v in values]
    if all(isinstance(d, datetime) for d in as_dates):
        if len({d.tzinfo is None for d in as_dates}) > 1:
            as_dates = [d.replace(tzinfo=None) for d in as_dates]
        return as_dates
    try:
        sorted(values)
    except TypeError:
        return [str(v) for v in values]
    return list(values)


def _sort_records(records: List[Dict[str, Any]], order_by: Sequence[SortDirective]) -> List[Dict[str, Any]]:
    # stable sorts applied last key first; None always sorts last
    for directive in reversed(list(order_by)):
        present = [r for r in records if get_path(r, directive.field) is not None]
        missing = [r for r in records if get_path(r, directive.field) is None]
        keys = _sort_keys([get_path(r, directive.field) for r in present])
        order = sorted(range(len(present)), key=keys.__getitem__, reverse=directive.descending)
        records = [present[i] for i in order] + missing
    return records


def project(record: Mapping[str, Any], projection: Optional[Projection], keep: Iterable[str] = ()) -> Dict[str, Any]:
    if projection is None or projection.mode is ProjectionMode.ALL:
        return dict(record)
    keep = set(keep)
    names = projection.include if projection.mode is ProjectionMode.INCLUDE else projection.exclude
    listed = {resolve_name(n, record.keys()) or n for n in names}
    if projection.mode is ProjectionMode.INCLUDE:
        wanted = listed | keep
        return {k: v for k, v in record.items() if k in wanted}
    dropped = listed - keep
    return {k: v for k, v in record.items() if k not in dropped}


class InMemoryStore(RecordStore):
    """Record store over ``{entity: [record, ...]}``.

    Relations are nested dicts (or lists of dicts) stored under the relation
    name; they are stripped from results unless requested through ``relations``.
    """

    def __init__(self, collections: Mapping[str, Sequence[Mapping[str, Any]]], relation_names: Mapping[str, Iterable[str]] | None = None):
        self.collections = {name: [dict(r) for r in rows] for name, rows in collections.items()}
        self.relation_names = {name: set(rels) for name, rels in (relation_names or {}).items()}

    def _rows(self, entity: str) -> List[Dict[str, Any]]:
        rows = self.collections.get(entity, _MISSING)
        if rows is _MISSING:
            raise UnknownEntityError(f"Unknown entity: {entity}")
        return rows

    async def find(self, entity: str, plan: FindPlan) -> List[Dict[str, Any]]:
        rows = [r for r in self._rows(entity) if matches(r, plan.where)]
        rows = _sort_records(rows, plan.order_by)
        end = None if plan.take is None else plan.skip + plan.take
        rows = rows[plan.skip:end]
        rel_names = self.relation_names.get(entity, set())
        out = []
        for row in rows:
            base = {k: v for k, v in row.items() if k not in rel_names or k in plan.relations}
            item = project(base, plan.projection, keep=plan.relations.keys())
            for rel, rel_projection in plan.relations.items():
                value = row.get(rel)
                if isinstance(value, list):
                    item[rel] = [project(v, rel_projection) for v in value]
                elif isinstance(value, Mapping):
                    item[rel] = project(value, rel_projection)
                else:
                    item[rel] = value
            out.append(item)
        logger.debug(f"InMemoryStore.find({entity}) -> {len(out)} record(s)")
        return out

    async def count(self, entity: str, where: Optional[Filter]) -> int:
        return sum(1 for r in self._rows(entity) if matches(r, where))
