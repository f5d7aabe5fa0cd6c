"""Node types of the transform expression language.

The node set is closed: the evaluator knows how to walk each of these and
nothing else, which is what keeps expressions free of side effects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Tuple, Union


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Name:
    id: str


@dataclass(frozen=True)
class Attribute:
    value: "Node"
    attr: str


@dataclass(frozen=True)
class Index:
    value: "Node"
    index: "Node"


@dataclass(frozen=True)
class Call:
    func: str
    args: Tuple["Node", ...]


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Logical:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Conditional:
    test: "Node"
    body: "Node"
    orelse: "Node"


@dataclass(frozen=True)
class ListExpr:
    items: Tuple["Node", ...]


@dataclass(frozen=True)
class ObjectExpr:
    entries: Tuple[Tuple[str, "Node"], ...]


Node = Union[
    Literal,
    Name,
    Attribute,
    Index,
    Call,
    Unary,
    Binary,
    Logical,
    Conditional,
    ListExpr,
    ObjectExpr,
]
