from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import and_, inspect as sa_inspect, or_
from sqlalchemy.orm import RelationshipProperty
from sqlalchemy.sql.sqltypes import Boolean, Date, DateTime, Integer, String

from ..core.filters import Composite, Connective, FieldPredicate, Filter, nested_filter
from ..core.values import CoercedValue, ValueKind, to_text
from ..errors import UnknownFieldError, UnknownOperatorError
from ..naming import name_candidates


def _seq(v: Any) -> list:
    return list(v) if isinstance(v, (list, tuple, set)) else [v]


def _between(col, v):
    bounds = _seq(v)
    if len(bounds) < 2:
        raise UnknownOperatorError(f"between expects two values, got {v!r}")
    return col.between(bounds[0], bounds[1])


# Operator registry (extensible): name -> fn(column, value)
OPERATOR_REGISTRY: Dict[str, Callable[[Any, Any], Any]] = {
    'eq': lambda col, v: col.is_(None) if v is None else col == v,
    'ne': lambda col, v: col.is_not(None) if v is None else col != v,
    'lt': lambda col, v: col < v,
    'lte': lambda col, v: col <= v,
    'gt': lambda col, v: col > v,
    'gte': lambda col, v: col >= v,
    'like': lambda col, v: col.like(v),
    'not_like': lambda col, v: ~col.like(v),
    'ilike': lambda col, v: col.ilike(v),
    'not_ilike': lambda col, v: ~col.ilike(v),
    'in': lambda col, v: col.in_(_seq(v)),
    'not_in': lambda col, v: ~col.in_(_seq(v)),
    'between': _between,
    'not_between': lambda col, v: ~_between(col, v),
    'contains': lambda col, v: col.contains(v, autoescape=True),
    'starts_with': lambda col, v: col.startswith(v, autoescape=True),
    'ends_with': lambda col, v: col.endswith(v, autoescape=True),
    'is_null': lambda col, v: col.is_(None) if v else col.is_not(None),
}

# Case-insensitive variants used when a predicate carries ``insensitive=True``
INSENSITIVE_OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    'contains': lambda col, v: col.icontains(v, autoescape=True),
    'starts_with': lambda col, v: col.istartswith(v, autoescape=True),
    'ends_with': lambda col, v: col.iendswith(v, autoescape=True),
}


def register_operator(name: str, fn: Callable[[Any, Any], Any]) -> None:
    OPERATOR_REGISTRY[name] = fn


def adapt_value(column, value: CoercedValue) -> Any:
    """Bring a coerced value in line with the column's SQL type.

    Digit-only strings coerce to numbers, so text columns get the request
    text back; datetimes lose their tzinfo for naive columns.
    """
    if value.kind is ValueKind.LIST:
        return [adapt_value(column, v) for v in value.value]
    if value.kind in (ValueKind.NULL, ValueKind.MAP):
        return value.unwrap()
    ctype = getattr(column, 'type', None)
    raw = value.value
    if isinstance(ctype, String) and value.kind in (ValueKind.NUMBER, ValueKind.BOOLEAN, ValueKind.DATETIME):
        return value.source if value.source is not None else to_text(value)
    if isinstance(ctype, DateTime) and isinstance(raw, datetime):
        if not getattr(ctype, 'timezone', False) and raw.tzinfo is not None:
            return raw.replace(tzinfo=None)
        return raw
    if isinstance(ctype, Date) and isinstance(raw, datetime):
        return raw.date()
    if isinstance(ctype, Boolean) and value.kind is ValueKind.NUMBER:
        return bool(raw)
    if isinstance(ctype, Integer) and value.kind is ValueKind.NUMBER and isinstance(raw, float) and raw.is_integer():
        return int(raw)
    return raw


def _lookup(model_cls, name: str) -> Tuple[str, Any]:
    mapper = sa_inspect(model_cls)
    for cand in name_candidates(name):
        prop = mapper.attrs.get(cand)
        if prop is not None:
            return cand, prop
    raise UnknownFieldError(f"Unknown field '{name}' on {model_cls.__name__}")


def resolve_column(model_cls, name: str):
    key, prop = _lookup(model_cls, name)
    if isinstance(prop, RelationshipProperty):
        raise UnknownFieldError(f"'{name}' is a relation on {model_cls.__name__}, not a column")
    return getattr(model_cls, key)


def resolve_relationship(model_cls, name: str) -> Tuple[Any, RelationshipProperty]:
    key, prop = _lookup(model_cls, name)
    if not isinstance(prop, RelationshipProperty):
        raise UnknownFieldError(f"Unknown relation '{name}' on {model_cls.__name__}")
    return getattr(model_cls, key), prop


def _relation_criterion(rel_attr, rel_prop: RelationshipProperty, inner):
    if rel_prop.uselist:
        return rel_attr.any(inner) if inner is not None else rel_attr.any()
    return rel_attr.has(inner) if inner is not None else rel_attr.has()


def compile_predicate(model_cls, pred: FieldPredicate):
    head, dot, rest = pred.field.partition('.')
    key, prop = _lookup(model_cls, head)
    if isinstance(prop, RelationshipProperty):
        rel_attr = getattr(model_cls, key)
        target = prop.mapper.class_
        if dot:
            inner = compile_predicate(target, FieldPredicate(rest, pred.operator, pred.value, pred.insensitive))
            return _relation_criterion(rel_attr, prop, inner)
        if pred.operator is None and pred.value.kind is ValueKind.MAP:
            nested = nested_filter(pred.value)
            return _relation_criterion(rel_attr, prop, compile_filter(target, nested))
        raise UnknownFieldError(f"Relation '{head}' on {model_cls.__name__} only accepts nested filters")
    if dot:
        raise UnknownFieldError(f"Unknown field '{pred.field}' on {model_cls.__name__}")
    col = getattr(model_cls, key)
    operator = pred.operator or 'eq'
    # is_null takes a flag, not a column value
    value = pred.value.unwrap() if operator == 'is_null' else adapt_value(col, pred.value)
    if pred.insensitive and operator in INSENSITIVE_OPERATORS:
        return INSENSITIVE_OPERATORS[operator](col, value)
    op_fn = OPERATOR_REGISTRY.get(operator)
    if op_fn is None:
        raise UnknownOperatorError(f"Unknown where operator: {operator}")
    return op_fn(col, value)


def compile_filter(model_cls, flt: Optional[Filter]):
    """Compile a filter tree to a SQLAlchemy boolean expression (``None`` = match all)."""
    if flt is None:
        return None
    if isinstance(flt, Composite):
        parts = [compile_filter(model_cls, child) for child in flt.children]
        parts = [p for p in parts if p is not None]
        if not parts:
            return None
        return and_(*parts) if flt.connective is Connective.AND else or_(*parts)
    return compile_predicate(model_cls, flt)


def compile_order_by(model_cls, directives) -> List[Any]:
    out: List[Any] = []
    for directive in directives or ():
        try:
            col = resolve_column(model_cls, directive.field)
        except UnknownFieldError:
            raise UnknownFieldError(f"Unknown order_by column: {directive.field}")
        out.append(col.desc() if directive.descending else col.asc())
    return out
