from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

from ..config import DEFAULT_CONFIG, QueryConfig
from ..errors import InvalidPageSizeError

logger = logging.getLogger(__name__)

T = TypeVar('T')

_INT_TEXT = re.compile(r'^[+-]?[0-9]+$')


@dataclass(frozen=True)
class PaginationSpec:
    page: int
    limit: int

    @property
    def skip(self) -> int:
        return max(self.page - 1, 0) * max(self.limit, 0)

    @property
    def take(self) -> int:
        return self.limit

    @property
    def valid(self) -> bool:
        return self.limit >= 1


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    if _INT_TEXT.match(text):
        return int(text)
    return None


def paginate(page: Any = None, limit: Any = None, config: QueryConfig = DEFAULT_CONFIG) -> PaginationSpec:
    """Resolve raw page/limit values; never raises.

    Non-integer or missing values fall back to the configured defaults. A page
    below 1 is clamped to 1. A non-positive limit is kept as-is so that
    ``execute`` can reject it as an invalid page size.
    """
    p = _as_int(page)
    if p is None:
        if page not in (None, ''):
            logger.warning(f"Ignoring non-integer page {page!r}; using {config.default_page}")
        p = config.default_page
    if p < 1:
        p = 1
    lim = _as_int(limit)
    if lim is None:
        if limit not in (None, ''):
            logger.warning(f"Ignoring non-integer limit {limit!r}; using {config.default_limit}")
        lim = config.default_limit
    if config.max_limit is not None and lim > config.max_limit:
        lim = config.max_limit
    return PaginationSpec(page=p, limit=lim)


def total_pages(total: int, limit: int) -> int:
    if limit is None or limit <= 0:
        raise InvalidPageSizeError(limit)
    return math.ceil(total / limit)


@dataclass(frozen=True)
class PageMeta:
    page: int
    limit: int
    total: int
    total_pages: int

    def to_dict(self) -> Dict[str, int]:
        return {
            'page': self.page,
            'limit': self.limit,
            'total': self.total,
            'totalPage': self.total_pages,
        }


@dataclass
class PageResult(Generic[T]):
    meta: PageMeta
    data: List[T] = field(default_factory=list)

    @classmethod
    def build(cls, pagination: PaginationSpec, total: int, data: List[T]) -> "PageResult[T]":
        return cls(
            meta=PageMeta(
                page=pagination.page,
                limit=pagination.limit,
                total=total,
                total_pages=total_pages(total, pagination.limit),
            ),
            data=list(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'meta': self.meta.to_dict(), 'data': list(self.data)}
