from __future__ import annotations
from typing import Any, Optional, Dict, Protocol
from functools import lru_cache
import threading
import math

from py_expression_eval import Parser

class CapView(Protocol):
    def stack_count(self, name: str) -> int: ...
    def held_in_group(self, group: str) -> int: ...
    def has(self, name: str) -> bool: ...
    def skill_level(self, skill_id: str) -> int: ...

# Thread-local evaluation context so function implementations can read the character dynamically
class _EvalTLS(threading.local):
    def __init__(self):
        self.view: Optional[CapView] = None
        self.extra: Dict[str, Any] = {}

_TLS = _EvalTLS()

_parser = Parser()

def _get_view() -> Optional[CapView]:
    return _TLS.view

# Allowed math helpers
_parser.functions["min"] = min
_parser.functions["max"] = max
_parser.functions["floor"] = math.floor
_parser.functions["ceil"] = math.ceil

# Character functions (look up the view each call from thread-local)
def _stack_count(name: Any) -> int:
    view = _get_view()
    return int(view.stack_count(str(name))) if view else 0

def _held_in_group(group: Any) -> int:
    view = _get_view()
    return int(view.held_in_group(str(group))) if view else 0

def _has(name: Any) -> int:
    view = _get_view()
    return 1 if view and view.has(str(name)) else 0

def _skill_level(skill_id: Any) -> int:
    view = _get_view()
    return int(view.skill_level(str(skill_id))) if view else 0

_parser.functions["stack_count"] = _stack_count
_parser.functions["held_in_group"] = _held_in_group
_parser.functions["has"] = _has
_parser.functions["skill_level"] = _skill_level

ALLOWED_FUNCTIONS = frozenset({"min", "max", "floor", "ceil", "stack_count", "held_in_group", "has", "skill_level"})

# LRU-compiled AST cache
@lru_cache(maxsize=1024)
def compile_expr(expr: str):
    return _parser.parse(expr)

def eval_expr(expr: str | int | float,
              view: Optional[CapView] = None,
              extra: Optional[Dict[str, Any]] = None) -> int | float:
    """
    Evaluate a cap formula (or numeric literal) against `view`.
    """
    if isinstance(expr, (int, float)):
        return expr
    prev_view, prev_extra = _TLS.view, _TLS.extra
    _TLS.view, _TLS.extra = view, (extra or {})
    try:
        ast = compile_expr(expr)
        value = ast.evaluate(_TLS.extra)
    finally:
        _TLS.view, _TLS.extra = prev_view, prev_extra

    f = float(value)
    return int(f) if f.is_integer() else f

def expr_cache_info() -> str:
    info = compile_expr.cache_info()
    return f"expr-cache: hits={info.hits}, misses={info.misses}, size={info.currsize}/{info.maxsize}"
