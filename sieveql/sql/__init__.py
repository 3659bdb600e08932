from __future__ import annotations

from .compiler import OPERATOR_REGISTRY, adapt_value, compile_filter, compile_order_by, register_operator
from .store import SQLAlchemyStore

__all__ = [
    'OPERATOR_REGISTRY',
    'SQLAlchemyStore',
    'adapt_value',
    'compile_filter',
    'compile_order_by',
    'register_operator',
]
