"""
Record store boundary.

A store is an opaque collection of named entities. The query builder only
needs two read operations from it, both parameterized by the same filter tree.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Tuple

from .core.filters import Filter
from .core.ordering import SortDirective
from .core.projection import ALL_FIELDS, Projection


@dataclass(frozen=True)
class FindPlan:
    """Everything a store needs to fetch one page of records."""

    where: Optional[Filter] = None
    order_by: Tuple[SortDirective, ...] = ()
    projection: Projection = ALL_FIELDS
    relations: Dict[str, Optional[Projection]] = field(default_factory=dict)
    skip: int = 0
    take: Optional[int] = None


class RecordStore(ABC):
    """Abstract base class for stores the query builder can execute against."""

    @abstractmethod
    async def find(self, entity: str, plan: FindPlan) -> Sequence[Any]:
        """Return the records of ``entity`` selected by ``plan``, in order."""
        pass

    @abstractmethod
    async def count(self, entity: str, where: Optional[Filter]) -> int:
        """Return how many records of ``entity`` match ``where`` (no paging)."""
        pass
