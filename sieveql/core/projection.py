from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from ..errors import MixedProjectionError


class ProjectionMode(Enum):
    ALL = 'all'
    INCLUDE = 'include'
    EXCLUDE = 'exclude'
    MIXED = 'mixed'


@dataclass(frozen=True)
class Projection:
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()

    @property
    def mode(self) -> ProjectionMode:
        if self.include and self.exclude:
            return ProjectionMode.MIXED
        if self.include:
            return ProjectionMode.INCLUDE
        if self.exclude:
            return ProjectionMode.EXCLUDE
        return ProjectionMode.ALL

    def validate(self) -> "Projection":
        if self.mode is ProjectionMode.MIXED:
            raise MixedProjectionError(self.include, self.exclude)
        return self

    def __bool__(self) -> bool:
        return self.mode is not ProjectionMode.ALL


ALL_FIELDS = Projection()


def select_fields(fields_string: Optional[str]) -> Projection:
    """Parse ``"name,-password"`` into include/exclude sets.

    Both sets are kept even when they conflict; ``Projection.validate`` decides.
    """
    if not fields_string:
        return ALL_FIELDS
    include: list[str] = []
    exclude: list[str] = []
    for token in str(fields_string).split(','):
        token = token.strip()
        if token.startswith('-'):
            name = token[1:].strip()
            target, other = exclude, include
        else:
            name = token
            target, other = include, exclude
        if not name:
            continue
        # last mention of a field wins
        if name in other:
            other.remove(name)
        if name not in target:
            target.append(name)
    return Projection(tuple(include), tuple(exclude))


def _projection_from_select(select: Mapping[str, Any]) -> Projection:
    include = tuple(k for k, v in select.items() if v)
    exclude = tuple(k for k, v in select.items() if not v)
    return Projection(include, exclude)


def normalize_relations(relations: Optional[Mapping[str, Any]]) -> Dict[str, Optional[Projection]]:
    """Normalize a relation include map.

    Values may be ``True`` (whole relation), ``False`` (dropped), a fields
    string, a ``Projection``, or a Prisma-style ``{"select": {...}}`` mapping.
    Relation names are not checked against any schema here.
    """
    out: Dict[str, Optional[Projection]] = {}
    for name, spec in (relations or {}).items():
        if spec is None or spec is False:
            continue
        if spec is True:
            out[name] = None
        elif isinstance(spec, Projection):
            out[name] = spec or None
        elif isinstance(spec, str):
            out[name] = select_fields(spec) or None
        elif isinstance(spec, Mapping):
            select = spec.get('select')
            if isinstance(select, Mapping) and select:
                out[name] = _projection_from_select(select)
            elif isinstance(spec.get('fields'), str):
                out[name] = select_fields(spec['fields']) or None
            else:
                out[name] = None
        else:
            raise TypeError(f"Unsupported relation include for {name!r}: {spec!r}")
    return out
