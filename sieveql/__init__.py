"""SieveQL public API.

Turns request-style parameters (search term, ``field[op]`` filters, sort,
page/limit, fields, relations) into a paged query against a record store.

Exposes:
- QueryBuilder, build_query
- QueryConfig, DEFAULT_CONFIG
- RecordStore, FindPlan
- core types: CoercedValue, Filter nodes, SortDirective, Projection, PageResult
- errors: QueryError and subclasses
- Lazy attributes: SQLAlchemyStore (pulls in SQLAlchemy), InMemoryStore
"""
from __future__ import annotations

from .builder import QueryBuilder, build_query
from .config import DEFAULT_CONFIG, QueryConfig
from .core import (
    CoercedValue,
    Composite,
    Connective,
    Direction,
    FieldPredicate,
    PageMeta,
    PageResult,
    PaginationSpec,
    Projection,
    ProjectionMode,
    SortDirective,
    ValueKind,
    coerce,
    paginate,
    parse_sort,
    select_fields,
    total_pages,
)
from .errors import (
    InvalidPageSizeError,
    MixedProjectionError,
    QueryError,
    QueryExecutionError,
    UnknownEntityError,
    UnknownFieldError,
    UnknownOperatorError,
)
from .store import FindPlan, RecordStore


def __getattr__(name: str):  # PEP 562 lazy exports
    import importlib as _importlib
    if name == 'SQLAlchemyStore':
        return _importlib.import_module(__name__ + '.sql').SQLAlchemyStore
    if name == 'InMemoryStore':
        return _importlib.import_module(__name__ + '.memory').InMemoryStore
    raise AttributeError(name)


__all__ = [
    'QueryBuilder', 'build_query',
    'QueryConfig', 'DEFAULT_CONFIG',
    'RecordStore', 'FindPlan', 'SQLAlchemyStore', 'InMemoryStore',
    'CoercedValue', 'ValueKind', 'coerce',
    'Composite', 'Connective', 'FieldPredicate',
    'Direction', 'SortDirective', 'parse_sort',
    'PageMeta', 'PageResult', 'PaginationSpec', 'paginate', 'total_pages',
    'Projection', 'ProjectionMode', 'select_fields',
    'QueryError', 'InvalidPageSizeError', 'MixedProjectionError', 'QueryExecutionError',
    'UnknownEntityError', 'UnknownFieldError', 'UnknownOperatorError',
]
