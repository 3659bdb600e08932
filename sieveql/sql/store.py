"""
Async SQLAlchemy implementation of :class:`~sieveql.store.RecordStore`.

Each ``find``/``count`` runs in its own ``AsyncSession`` taken from the
session factory, so the builder can run both at once. When a single shared
``AsyncSession`` is passed instead, operations on it are serialized.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import func, inspect as sa_inspect, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import defer, load_only, selectinload

from ..core.filters import Filter
from ..core.projection import Projection, ProjectionMode
from ..errors import UnknownEntityError
from ..naming import snake_to_camel
from ..store import FindPlan, RecordStore
from .compiler import compile_filter, compile_order_by, resolve_column, resolve_relationship

logger = logging.getLogger(__name__)


def _column_keys(model_cls) -> List[str]:
    return [attr.key for attr in sa_inspect(model_cls).column_attrs]


def _pk_keys(model_cls) -> List[str]:
    mapper = sa_inspect(model_cls)
    return [mapper.get_property_by_column(c).key for c in mapper.primary_key]


def _local_keys(model_cls, rel_prop) -> List[str]:
    mapper = sa_inspect(model_cls)
    return [mapper.get_property_by_column(c).key for c in rel_prop.local_columns]


def _emitted_columns(model_cls, projection: Optional[Projection]) -> List[str]:
    """Column keys to read from an instance for ``projection`` (validated names)."""
    keys = _column_keys(model_cls)
    if projection is None or projection.mode is ProjectionMode.ALL:
        return keys
    if projection.mode is ProjectionMode.INCLUDE:
        wanted = {resolve_column(model_cls, n).key for n in projection.include}
        pks = set(_pk_keys(model_cls))
        return [k for k in keys if k in wanted or k in pks]
    dropped = {resolve_column(model_cls, n).key for n in projection.exclude}
    return [k for k in keys if k not in dropped]


def _loader_columns(model_cls, projection: Optional[Projection]):
    """``load_only``/``defer`` arguments for a projection, or ``None``."""
    if projection is None or projection.mode is ProjectionMode.ALL:
        return None
    if projection.mode is ProjectionMode.INCLUDE:
        return 'only', [resolve_column(model_cls, n) for n in projection.include]
    pks = set(_pk_keys(model_cls))
    cols = [resolve_column(model_cls, n) for n in projection.exclude]
    return 'defer', [c for c in cols if c.key not in pks]


class SQLAlchemyStore(RecordStore):
    """Record store over SQLAlchemy declarative models.

    Args:
        session_source: an ``async_sessionmaker``, an ``AsyncEngine`` or a
            shared ``AsyncSession``.
        models: mapping of entity name to model class.
        base: declarative base whose mapped classes are all registered.
        auto_camel_case: emit camelCase keys in returned records.
    """

    def __init__(
        self,
        session_source: Any,
        models: Optional[Mapping[str, type]] = None,
        *,
        base: Any = None,
        auto_camel_case: bool = False,
    ):
        self._shared_session: Optional[AsyncSession] = None
        self._lock: Optional[asyncio.Lock] = None
        if isinstance(session_source, AsyncSession):
            self._shared_session = session_source
            self._lock = asyncio.Lock()
            self.session_factory = None
        elif isinstance(session_source, AsyncEngine):
            self.session_factory = async_sessionmaker(session_source, class_=AsyncSession, expire_on_commit=False)
        else:
            self.session_factory = session_source
        self.auto_camel_case = auto_camel_case
        self._models: Dict[str, type] = {}
        if base is not None:
            for mapper in base.registry.mappers:
                self.register(mapper.class_)
        for name, model in (models or {}).items():
            self.register(model, name)

    def register(self, model_cls: type, name: Optional[str] = None) -> None:
        self._models[name or model_cls.__name__] = model_cls

    def resolve_model(self, entity: str) -> type:
        model = self._models.get(entity)
        if model is not None:
            return model
        wanted = entity.lower()
        for name, model_cls in self._models.items():
            table = getattr(model_cls, '__tablename__', None)
            if wanted in {name.lower(), model_cls.__name__.lower(), (table or '').lower()}:
                return model_cls
        raise UnknownEntityError(f"Unknown entity: {entity}")

    @asynccontextmanager
    async def _session(self):
        if self._shared_session is not None:
            async with self._lock:
                yield self._shared_session
            return
        async with self.session_factory() as session:
            yield session

    # --- serialization -------------------------------------------------------
    def _key(self, name: str) -> str:
        return snake_to_camel(name) if self.auto_camel_case else name

    def _to_record(self, obj: Any, columns: Iterable[str]) -> Dict[str, Any]:
        return {self._key(k): getattr(obj, k) for k in columns}

    # --- RecordStore ---------------------------------------------------------
    async def find(self, entity: str, plan: FindPlan) -> List[Dict[str, Any]]:
        model_cls = self.resolve_model(entity)
        stmt = select(model_cls)
        criterion = compile_filter(model_cls, plan.where)
        if criterion is not None:
            stmt = stmt.where(criterion)
        order = compile_order_by(model_cls, plan.order_by)
        if order:
            stmt = stmt.order_by(*order)

        options = []
        relation_specs = []
        # parent-side join columns the relation loaders need even when not projected
        join_columns: Dict[str, Any] = {}
        for rel_name, rel_projection in plan.relations.items():
            rel_attr, rel_prop = resolve_relationship(model_cls, rel_name)
            target = rel_prop.mapper.class_
            opt = selectinload(rel_attr)
            rel_loader = _loader_columns(target, rel_projection)
            if rel_loader is not None:
                kind, cols = rel_loader
                if kind == 'only':
                    opt = opt.load_only(*cols)
                elif cols:
                    opt = opt.options(*[defer(c) for c in cols])
            options.append(opt)
            for local_key in _local_keys(model_cls, rel_prop):
                join_columns[local_key] = getattr(model_cls, local_key)
            relation_specs.append((rel_prop.key, rel_prop.uselist, _emitted_columns(target, rel_projection)))
        loader = _loader_columns(model_cls, plan.projection)
        if loader is not None:
            kind, cols = loader
            if kind == 'only':
                chosen = {c.key for c in cols}
                options.append(load_only(*cols, *[c for k, c in join_columns.items() if k not in chosen]))
            else:
                options.extend(defer(c) for c in cols if c.key not in join_columns)
        columns = _emitted_columns(model_cls, plan.projection)
        if options:
            stmt = stmt.options(*options)

        if plan.skip:
            stmt = stmt.offset(plan.skip)
        if plan.take is not None:
            stmt = stmt.limit(plan.take)

        async with self._session() as session:
            result = await session.execute(stmt)
            rows = result.scalars().unique().all()
            records = []
            for obj in rows:
                record = self._to_record(obj, columns)
                for rel_key, uselist, rel_columns in relation_specs:
                    related = getattr(obj, rel_key)
                    if uselist:
                        record[self._key(rel_key)] = [self._to_record(r, rel_columns) for r in related]
                    else:
                        record[self._key(rel_key)] = None if related is None else self._to_record(related, rel_columns)
                records.append(record)
        logger.debug(f"SQLAlchemyStore.find({entity}) -> {len(records)} row(s)")
        return records

    async def count(self, entity: str, where: Optional[Filter]) -> int:
        model_cls = self.resolve_model(entity)
        stmt = select(func.count()).select_from(model_cls)
        criterion = compile_filter(model_cls, where)
        if criterion is not None:
            stmt = stmt.where(criterion)
        async with self._session() as session:
            total = await session.scalar(stmt)
        return int(total or 0)


__all__ = ['SQLAlchemyStore']
