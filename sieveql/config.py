"""Query defaults and reserved parameter names.

``QueryConfig.from_env`` lets deployments tune defaults without code changes::

    SIEVEQL_DEFAULT_LIMIT=25
    SIEVEQL_MAX_LIMIT=200
    SIEVEQL_DEFAULT_SORT=-updatedAt
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import FrozenSet, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryConfig:
    search_key: str = 'searchTerm'
    sort_key: str = 'sort'
    page_key: str = 'page'
    limit_key: str = 'limit'
    fields_key: str = 'fields'
    default_page: int = 1
    default_limit: int = 10
    # None disables the cap
    max_limit: Optional[int] = None
    default_sort: str = '-createdAt'

    @property
    def reserved_keys(self) -> FrozenSet[str]:
        """Control keys that are never treated as filter fields."""
        return frozenset({self.search_key, self.sort_key, self.page_key, self.limit_key, self.fields_key})

    def with_overrides(self, **overrides) -> "QueryConfig":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_env(cls, prefix: str = 'SIEVEQL_', environ: Mapping[str, str] | None = None) -> "QueryConfig":
        """Build a config from environment variables, ignoring invalid values."""
        env = os.environ if environ is None else environ
        overrides = {}
        for name in ('default_limit', 'max_limit', 'default_page'):
            raw = env.get(prefix + name.upper())
            if raw is None or not raw.strip():
                continue
            try:
                value = int(raw)
            except ValueError:
                logger.warning(f"Ignoring {prefix}{name.upper()}={raw!r}: not an integer")
                continue
            if value < 1:
                logger.warning(f"Ignoring {prefix}{name.upper()}={raw!r}: must be >= 1")
                continue
            overrides[name] = value
        default_sort = env.get(prefix + 'DEFAULT_SORT')
        if default_sort and default_sort.strip():
            overrides['default_sort'] = default_sort.strip()
        return cls().with_overrides(**overrides)


DEFAULT_CONFIG = QueryConfig()
