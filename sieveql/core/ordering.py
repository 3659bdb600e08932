from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


class Direction(Enum):
    ASC = 'asc'
    DESC = 'desc'


@dataclass(frozen=True)
class SortDirective:
    field: str
    direction: Direction = Direction.ASC

    @property
    def descending(self) -> bool:
        return self.direction is Direction.DESC

    def __str__(self) -> str:
        return f"-{self.field}" if self.descending else self.field


DEFAULT_SORT = '-createdAt'


def _parse_tokens(sort_string: str) -> List[SortDirective]:
    positions: dict[str, int] = {}
    out: List[SortDirective] = []
    for token in sort_string.split(','):
        token = token.strip()
        direction = Direction.ASC
        if token.startswith('-'):
            direction = Direction.DESC
            token = token[1:].strip()
        elif token.startswith('+'):
            token = token[1:].strip()
        if not token:
            continue
        if token in positions:
            # later mention keeps the original position, takes the new direction
            out[positions[token]] = SortDirective(token, direction)
            continue
        positions[token] = len(out)
        out.append(SortDirective(token, direction))
    return out


def parse_sort(sort_string: Optional[str], default: str = DEFAULT_SORT) -> Tuple[SortDirective, ...]:
    """Parse ``"-createdAt,name"`` into ordered sort directives.

    Missing or blank input yields the ``default`` sort. Field names are not
    validated here; the store rejects unknown ones at execution time.
    """
    directives: List[SortDirective] = []
    if sort_string is not None:
        directives = _parse_tokens(str(sort_string))
    if not directives:
        directives = _parse_tokens(default)
    logger.debug(f"Sort {sort_string!r} -> {[str(d) for d in directives]}")
    return tuple(directives)
