from __future__ import annotations

from .values import CoercedValue, ValueKind, coerce, coerce_list
from .filters import (
    Composite,
    Connective,
    FieldPredicate,
    Filter,
    build_field_filters,
    build_search,
    conjoin,
    parse_operator_key,
    where_dict,
)
from .ordering import Direction, SortDirective, parse_sort
from .pagination import PageMeta, PageResult, PaginationSpec, paginate, total_pages
from .projection import Projection, ProjectionMode, normalize_relations, select_fields

__all__ = [
    'CoercedValue', 'ValueKind', 'coerce', 'coerce_list',
    'Composite', 'Connective', 'FieldPredicate', 'Filter',
    'build_field_filters', 'build_search', 'conjoin', 'parse_operator_key', 'where_dict',
    'Direction', 'SortDirective', 'parse_sort',
    'PageMeta', 'PageResult', 'PaginationSpec', 'paginate', 'total_pages',
    'Projection', 'ProjectionMode', 'normalize_relations', 'select_fields',
]
