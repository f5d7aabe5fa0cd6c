"""Sandboxed expression language used by transform and condition steps."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Mapping

from .evaluator import Evaluator, evaluate
from .helpers import HELPERS
from .nodes import Node
from .parser import parse


@lru_cache(maxsize=256)
def compile_expression(source: str) -> Node:
    """Parse ``source``, reusing the tree for repeated sources."""
    return parse(source)


def run_expression(source: str, variables: Mapping[str, Any]) -> Any:
    """Parse and evaluate ``source`` with ``variables`` bound as names."""
    return evaluate(compile_expression(source), variables)


__all__ = [
    "Evaluator",
    "HELPERS",
    "Node",
    "compile_expression",
    "evaluate",
    "parse",
    "run_expression",
]
