"""Exception types raised by SieveQL.

Everything derives from :class:`QueryError` (itself a ``ValueError``) so callers
can catch one type at their request boundary.
"""
from __future__ import annotations

from typing import Any


class QueryError(ValueError):
    """Base class for all SieveQL errors."""


class InvalidPageSizeError(QueryError):
    """Raised when the page size is not a positive integer."""

    def __init__(self, limit: Any):
        self.limit = limit
        super().__init__(f"Invalid page size: {limit!r}. limit must be a positive integer")


class MixedProjectionError(QueryError):
    """Raised when one fields string both includes and excludes fields."""

    def __init__(self, include, exclude):
        self.include = tuple(include)
        self.exclude = tuple(exclude)
        super().__init__(
            "Cannot mix included and excluded fields in one projection: "
            f"include={list(self.include)} exclude={list(self.exclude)}"
        )


class UnknownEntityError(QueryError):
    pass


class UnknownFieldError(QueryError):
    pass


class UnknownOperatorError(QueryError):
    pass


class QueryExecutionError(QueryError):
    """Store failure during ``execute``; the original exception is kept on ``cause``."""

    prefix = "Query execution failed"

    def __init__(self, cause: BaseException):
        self.cause = cause
        detail = str(cause) or type(cause).__name__
        super().__init__(f"{self.prefix}: {detail}")


__all__ = [
    'QueryError',
    'InvalidPageSizeError',
    'MixedProjectionError',
    'UnknownEntityError',
    'UnknownFieldError',
    'UnknownOperatorError',
    'QueryExecutionError',
]
