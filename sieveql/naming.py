"""Field-name resolution between request parameters and stored attributes.

Request parameters usually arrive in camelCase (``createdAt``) while Python
models use snake_case (``created_at``). Stores call :func:`name_candidates` to
find the attribute a parameter refers to.
"""
from __future__ import annotations

import re
from typing import Iterable, List, Optional

__all__ = ["camel_to_snake", "snake_to_camel", "name_candidates", "resolve_name"]

_CAMEL_HEAD = re.compile(r"(.)([A-Z][a-z]+)")
_CAMEL_TAIL = re.compile(r"([a-z0-9])([A-Z])")


def camel_to_snake(name: str) -> str:
    """``createdAt`` -> ``created_at``; snake_case input is returned unchanged."""
    if not name:
        return name
    return _CAMEL_TAIL.sub(r"\1_\2", _CAMEL_HEAD.sub(r"\1_\2", name)).lower()


def snake_to_camel(name: str) -> str:
    """``created_at`` -> ``createdAt``; names without underscores are returned unchanged."""
    if not name or '_' not in name:
        return name
    head, *rest = [p for p in name.split('_') if p] or ['']
    return head.lower() + ''.join(p.capitalize() for p in rest)


def name_candidates(name: str) -> List[str]:
    """Names to try, most specific first."""
    out = [name]
    for alt in (camel_to_snake(name), snake_to_camel(name)):
        if alt and alt not in out:
            out.append(alt)
    return out


def resolve_name(name: str, available: Iterable[str]) -> Optional[str]:
    """Return the entry of ``available`` that ``name`` refers to, or ``None``."""
    known = set(available)
    for cand in name_candidates(name):
        if cand in known:
            return cand
    return None
