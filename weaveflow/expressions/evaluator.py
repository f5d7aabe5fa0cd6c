"""Tree-walking evaluator for transform expressions."""

from __future__ import annotations

import operator
from typing import Any, Callable, Dict, Mapping, Optional

from ..errors import ExpressionError
from .helpers import HELPERS
from .nodes import (
    Attribute,
    Binary,
    Call,
    Conditional,
    Index,
    ListExpr,
    Literal,
    Logical,
    Name,
    Node,
    ObjectExpr,
    Unary,
)

_ARITHMETIC: Dict[str, Callable[[Any, Any], Any]] = {
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": operator.mod,
}
_COMPARE: Dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _display(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class Evaluator:
    """Evaluate a node tree against a fixed set of variables.

    Only the helper table is callable; names resolve to variables, and there
    is no way to reach attributes of Python objects other than dict keys and
    the ``length`` of sequences.
    """

    def __init__(
        self,
        variables: Mapping[str, Any],
        helpers: Optional[Mapping[str, Callable[..., Any]]] = None,
    ):
        self.variables = variables
        self.helpers = HELPERS if helpers is None else helpers
        self._handlers: Dict[type, Callable[[Any], Any]] = {
            Literal: self._literal,
            Name: self._name,
            Attribute: self._attribute,
            Index: self._index,
            Call: self._call,
            Unary: self._unary,
            Binary: self._binary,
            Logical: self._logical,
            Conditional: self._conditional,
            ListExpr: self._list,
            ObjectExpr: self._object,
        }

    def evaluate(self, node: Node) -> Any:
        handler = self._handlers.get(type(node))
        if handler is None:
            raise ExpressionError(f"Unsupported expression node: {type(node).__name__}")
        return handler(node)

    # ------------------------------------------------------------------
    def _literal(self, node: Literal) -> Any:
        return node.value

    def _name(self, node: Name) -> Any:
        if node.id in self.variables:
            return self.variables[node.id]
        if node.id in self.helpers:
            raise ExpressionError(f"Helper '{node.id}' must be called")
        raise ExpressionError(f"Unknown name '{node.id}'")

    def _attribute(self, node: Attribute) -> Any:
        value = self.evaluate(node.value)
        if isinstance(value, Mapping):
            return value.get(node.attr)
        if node.attr == "length" and isinstance(value, (list, tuple, str)):
            return len(value)
        if value is None:
            raise ExpressionError(f"Cannot read '{node.attr}' of null")
        raise ExpressionError(
            f"Cannot read '{node.attr}' of {type(value).__name__}"
        )

    def _index(self, node: Index) -> Any:
        value = self.evaluate(node.value)
        key = self.evaluate(node.index)
        if isinstance(value, Mapping):
            return value.get(key if isinstance(key, str) else str(key))
        if isinstance(value, (list, tuple, str)):
            if not isinstance(key, int) or isinstance(key, bool):
                raise ExpressionError(f"List index must be an integer, got {key!r}")
            if -len(value) <= key < len(value):
                return value[key]
            return None
        if value is None:
            raise ExpressionError(f"Cannot index null with {key!r}")
        raise ExpressionError(f"Cannot index {type(value).__name__}")

    def _call(self, node: Call) -> Any:
        helper = self.helpers.get(node.func)
        if helper is None:
            raise ExpressionError(f"Unknown function '{node.func}'")
        args = [self.evaluate(arg) for arg in node.args]
        try:
            return helper(*args)
        except ExpressionError:
            raise
        except (TypeError, ValueError, KeyError, AttributeError, ZeroDivisionError) as exc:
            raise ExpressionError(f"{node.func}() failed: {exc}") from exc

    def _unary(self, node: Unary) -> Any:
        operand = self.evaluate(node.operand)
        if node.op == "not":
            return not operand
        if not _is_number(operand):
            raise ExpressionError(f"Unary '{node.op}' needs a number, got {operand!r}")
        return -operand if node.op == "-" else +operand

    def _binary(self, node: Binary) -> Any:
        left = self.evaluate(node.left)
        right = self.evaluate(node.right)

        if node.op == "+":
            if isinstance(left, str) or isinstance(right, str):
                return _display(left) + _display(right)
            if isinstance(left, list) and isinstance(right, list):
                return left + right
            if _is_number(left) and _is_number(right):
                return left + right
            raise ExpressionError(f"Cannot add {left!r} and {right!r}")

        if node.op in _ARITHMETIC:
            if not (_is_number(left) and _is_number(right)):
                raise ExpressionError(f"Operator '{node.op}' needs numbers")
            if node.op in ("/", "%") and right == 0:
                raise ExpressionError("Division by zero")
            return _ARITHMETIC[node.op](left, right)

        if node.op == "in":
            try:
                return right is not None and left in right
            except TypeError as exc:
                raise ExpressionError(f"'in' failed: {exc}") from exc

        try:
            return _COMPARE[node.op](left, right)
        except TypeError as exc:
            raise ExpressionError(f"Cannot compare {left!r} {node.op} {right!r}") from exc

    def _logical(self, node: Logical) -> Any:
        left = self.evaluate(node.left)
        if node.op == "and":
            return self.evaluate(node.right) if left else left
        return left if left else self.evaluate(node.right)

    def _conditional(self, node: Conditional) -> Any:
        if self.evaluate(node.test):
            return self.evaluate(node.body)
        return self.evaluate(node.orelse)

    def _list(self, node: ListExpr) -> Any:
        return [self.evaluate(item) for item in node.items]

    def _object(self, node: ObjectExpr) -> Any:
        return {key: self.evaluate(value) for key, value in node.entries}


def evaluate(
    node: Node,
    variables: Mapping[str, Any],
    helpers: Optional[Mapping[str, Callable[..., Any]]] = None,
) -> Any:
    return Evaluator(variables, helpers).evaluate(node)
