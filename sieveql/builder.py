"""Immutable query builder turning request parameters into a paged store query.

Typical use::

    result = await (
        QueryBuilder(store, 'user', request.query_params)
        .search(['name', 'email'])
        .filter()
        .sort()
        .paginate()
        .fields()
        .with_relations({'profile': True})
        .execute()
    )
    return result.to_dict()

Every stage returns a new builder; the original is left untouched.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Sequence, Tuple

from .config import DEFAULT_CONFIG, QueryConfig
from .core.filters import Filter, build_field_filters, build_search, conjoin, where_dict
from .core.ordering import SortDirective, parse_sort
from .core.pagination import PageResult, PaginationSpec, paginate
from .core.projection import ALL_FIELDS, Projection, normalize_relations, select_fields
from .errors import InvalidPageSizeError, QueryExecutionError
from .store import FindPlan, RecordStore

logger = logging.getLogger(__name__)


async def _all_or_nothing(*aws: Awaitable[Any]) -> List[Any]:
    """Await every awaitable concurrently; on the first failure cancel the rest and re-raise."""
    tasks = [asyncio.ensure_future(a) for a in aws]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for t in tasks:
            t.cancel()
        raise
    if pending:
        for t in pending:
            t.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
    for t in tasks:
        if t in done and not t.cancelled() and t.exception() is not None:
            raise t.exception()
    return [t.result() for t in tasks]


@dataclass(frozen=True)
class QueryBuilder:
    store: RecordStore
    entity: str
    query: Mapping[str, Any] = field(default_factory=dict)
    config: QueryConfig = DEFAULT_CONFIG
    clauses: Tuple[Filter, ...] = ()
    order_by: Tuple[SortDirective, ...] = ()
    pagination: Optional[PaginationSpec] = None
    projection: Projection = ALL_FIELDS
    relations: Mapping[str, Optional[Projection]] = field(default_factory=dict)

    def __post_init__(self):
        # snapshot the caller's params so later mutation on their side cannot leak in
        object.__setattr__(self, 'query', MappingProxyType(dict(self.query or {})))
        if self.pagination is None:
            object.__setattr__(self, 'pagination', paginate(None, None, self.config))

    @classmethod
    def from_params(
        cls,
        store: RecordStore,
        entity: str,
        params: Optional[Mapping[str, Any]],
        config: QueryConfig = DEFAULT_CONFIG,
    ) -> "QueryBuilder":
        """Start a builder from request params; ``None`` means no params."""
        return cls(store, entity, dict(params or {}), config)

    # --- stages --------------------------------------------------------------
    def search(self, searchable_fields: Sequence[str]) -> "QueryBuilder":
        group = build_search(self.query.get(self.config.search_key), list(searchable_fields or []))
        if group is None:
            return self
        return replace(self, clauses=self.clauses + (group,))

    def filter(self) -> "QueryBuilder":
        found = build_field_filters(self.query, self.config.reserved_keys)
        if not found:
            return self
        return replace(self, clauses=self.clauses + tuple(found))

    def sort(self) -> "QueryBuilder":
        return replace(self, order_by=parse_sort(self.query.get(self.config.sort_key), self.config.default_sort))

    def paginate(self) -> "QueryBuilder":
        spec = paginate(self.query.get(self.config.page_key), self.query.get(self.config.limit_key), self.config)
        logger.debug(f"Pagination for {self.entity}: page={spec.page} limit={spec.limit} skip={spec.skip}")
        return replace(self, pagination=spec)

    def fields(self) -> "QueryBuilder":
        return replace(self, projection=select_fields(self.query.get(self.config.fields_key)))

    def with_relations(self, relations: Optional[Mapping[str, Any]]) -> "QueryBuilder":
        return replace(self, relations=MappingProxyType(normalize_relations(relations)))

    # --- accessors -----------------------------------------------------------
    @property
    def where(self) -> Optional[Filter]:
        return conjoin(self.clauses)

    def where_dict(self) -> Dict[str, Any]:
        return where_dict(self.where)

    def plan(self) -> FindPlan:
        return FindPlan(
            where=self.where,
            order_by=self.order_by,
            projection=self.projection,
            relations=dict(self.relations),
            skip=self.pagination.skip,
            take=self.pagination.take,
        )

    def _validate(self) -> None:
        if not self.pagination.valid:
            raise InvalidPageSizeError(self.pagination.limit)
        self.projection.validate()
        for rel_projection in self.relations.values():
            if rel_projection is not None:
                rel_projection.validate()

    # --- execution -----------------------------------------------------------
    async def execute(self) -> PageResult:
        """Fetch one page and the total count, concurrently, against the same filter.

        Raises:
            InvalidPageSizeError: limit is not positive (nothing is sent to the store).
            MixedProjectionError: a projection both includes and excludes fields.
            QueryExecutionError: the store failed; the original error is on ``cause``.
        """
        self._validate()
        plan = self.plan()
        logger.info(f"Executing query on {self.entity} (skip={plan.skip}, take={plan.take})")
        logger.debug(f"where={self.where_dict()} order_by={[str(d) for d in plan.order_by]}")
        try:
            records, total = await _all_or_nothing(
                self.store.find(self.entity, plan),
                self.store.count(self.entity, plan.where),
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(f"Query execution failed for {self.entity}: {exc}")
            raise QueryExecutionError(exc) from exc
        return PageResult.build(self.pagination, int(total), list(records))


def build_query(
    store: RecordStore,
    entity: str,
    params: Mapping[str, Any],
    *,
    searchable_fields: Sequence[str] = (),
    relations: Optional[Mapping[str, Any]] = None,
    config: QueryConfig = DEFAULT_CONFIG,
) -> QueryBuilder:
    """Run every stage in the canonical order and return the ready builder."""
    builder = (
        QueryBuilder.from_params(store, entity, params, config)
        .search(searchable_fields)
        .filter()
        .sort()
        .paginate()
        .fields()
    )
    if relations:
        builder = builder.with_relations(relations)
    return builder
