"""Tokenizer and recursive-descent parser for transform expressions.

Grammar, lowest precedence first::

    program     := ["return"] expr [";"]
    expr        := or ["?" expr ":" expr]
    or          := and (("||" | "or") and)*
    and         := not (("&&" | "and") not)*
    not         := ("!" | "not") not | comparison
    comparison  := additive (("==" | "!=" | "<" | "<=" | ">" | ">=" | "in") additive)*
    additive    := term (("+" | "-") term)*
    term        := unary (("*" | "/" | "%") unary)*
    unary       := ("-" | "+") unary | postfix
    postfix     := primary ("." NAME | "." INTEGER | "[" expr "]")*
    primary     := NUMBER | STRING | NAME | NAME "(" args ")" | "(" expr ")"
                 | "[" items "]" | "{" entries "}"

``===`` and ``!==`` are accepted as spellings of ``==`` and ``!=``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..errors import ExpressionError
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

_TOKEN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<name>[A-Za-z_$][\w$]*)
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[-+*/%<>!?:.,;()\[\]{}])
    """,
    re.VERBOSE,
)

_CONSTANTS = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
    "True": True,
    "False": False,
    "None": None,
}
_WORD_OPS = {"and", "or", "not", "in"}
_COMPARISONS = {
    "==": "==",
    "===": "==",
    "!=": "!=",
    "!==": "!=",
    "<": "<",
    "<=": "<=",
    ">": ">",
    ">=": ">=",
    "in": "in",
}
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", "'": "'", '"': '"'}


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    position: int


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    position = 0
    while position < len(source):
        match = _TOKEN.match(source, position)
        if match is None:
            raise ExpressionError(
                f"Unexpected character {source[position]!r} at position {position}"
            )
        kind = match.lastgroup or ""
        if kind != "ws":
            value = match.group(kind)
            if kind == "name" and value in _WORD_OPS:
                kind = "op"
            tokens.append(Token(kind, value, position))
        position = match.end()
    tokens.append(Token("end", "", len(source)))
    return tokens


def _unquote(raw: str) -> str:
    body = raw[1:-1]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


class Parser:
    """Turns a token stream into a :mod:`~weaveflow.expressions.nodes` tree."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.pos = 0

    # ------------------------------------------------------------------
    # Token helpers
    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _check(self, value: str) -> bool:
        token = self.current
        return token.kind == "op" and token.value == value

    def _accept(self, *values: str) -> Optional[Token]:
        if self.current.kind == "op" and self.current.value in values:
            return self._advance()
        return None

    def _expect(self, value: str) -> Token:
        token = self._accept(value)
        if token is None:
            raise self._error(f"expected '{value}'")
        return token

    def _error(self, message: str) -> ExpressionError:
        token = self.current
        found = token.value or "end of expression"
        return ExpressionError(f"{message} but found '{found}' at position {token.position}")

    # ------------------------------------------------------------------
    # Grammar
    def parse(self) -> Node:
        if self.current.kind == "name" and self.current.value == "return":
            self._advance()
        node = self._expression()
        self._accept(";")
        if self.current.kind != "end":
            raise self._error("expected end of expression")
        return node

    def _expression(self) -> Node:
        node = self._or()
        if self._accept("?"):
            body = self._expression()
            self._expect(":")
            orelse = self._expression()
            return Conditional(node, body, orelse)
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._accept("||", "or"):
            node = Logical("or", node, self._and())
        return node

    def _and(self) -> Node:
        node = self._not()
        while self._accept("&&", "and"):
            node = Logical("and", node, self._not())
        return node

    def _not(self) -> Node:
        if self._accept("!", "not"):
            return Unary("not", self._not())
        return self._comparison()

    def _comparison(self) -> Node:
        node = self._additive()
        while self.current.kind == "op" and self.current.value in _COMPARISONS:
            op = _COMPARISONS[self._advance().value]
            node = Binary(op, node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._term()
        while True:
            token = self._accept("+", "-")
            if token is None:
                return node
            node = Binary(token.value, node, self._term())

    def _term(self) -> Node:
        node = self._unary()
        while True:
            token = self._accept("*", "/", "%")
            if token is None:
                return node
            node = Binary(token.value, node, self._unary())

    def _unary(self) -> Node:
        token = self._accept("-", "+")
        if token is not None:
            return Unary(token.value, self._unary())
        return self._postfix()

    def _postfix(self) -> Node:
        node = self._primary()
        while True:
            if self._accept("."):
                name = self._advance()
                if name.kind == "number" and name.value.isdigit():
                    node = Index(node, Literal(int(name.value)))
                elif name.kind == "name" or name.value in _WORD_OPS:
                    node = Attribute(node, name.value)
                else:
                    self.pos -= 1
                    raise self._error("expected a field name after '.'")
            elif self._accept("["):
                index = self._expression()
                self._expect("]")
                node = Index(node, index)
            else:
                return node

    def _primary(self) -> Node:
        token = self.current
        if token.kind == "number":
            self._advance()
            text = token.value
            is_float = any(c in text for c in ".eE")
            return Literal(float(text) if is_float else int(text))
        if token.kind == "string":
            self._advance()
            return Literal(_unquote(token.value))
        if token.kind == "name":
            self._advance()
            if token.value in _CONSTANTS:
                return Literal(_CONSTANTS[token.value])
            if self._accept("("):
                return Call(token.value, self._sequence(")"))
            return Name(token.value)
        if self._accept("("):
            node = self._expression()
            self._expect(")")
            return node
        if self._accept("["):
            return ListExpr(self._sequence("]"))
        if self._accept("{"):
            return ObjectExpr(self._entries())
        raise self._error("expected a value")

    def _sequence(self, closing: str) -> Tuple[Node, ...]:
        items: List[Node] = []
        while not self._check(closing):
            items.append(self._expression())
            if not self._accept(","):
                break
        self._expect(closing)
        return tuple(items)

    def _entries(self) -> Tuple[Tuple[str, Node], ...]:
        entries: List[Tuple[str, Node]] = []
        while not self._check("}"):
            token = self._advance()
            if token.kind == "name":
                key = token.value
            elif token.kind == "string":
                key = _unquote(token.value)
            elif token.kind == "number":
                key = token.value
            else:
                self.pos -= 1
                raise self._error("expected an object key")

            if self._accept(":"):
                entries.append((key, self._expression()))
            elif token.kind == "name":
                # shorthand {name} means {name: name}
                entries.append((key, Name(key)))
            else:
                raise self._error("expected ':'")

            if not self._accept(","):
                break
        self._expect("}")
        return tuple(entries)


def parse(source: str) -> Node:
    """Parse ``source`` into an expression tree.

    Raises:
        ExpressionError: If the source is not a valid expression.
    """
    if not source or not source.strip():
        raise ExpressionError("Expression is empty")
    return Parser(source).parse()
