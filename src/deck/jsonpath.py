"""JSONPath for the $jsonPath operator.

Supported syntax:
- ``$`` root (optional; ``users[*]`` is read as ``$.users[*]``)
- ``.name``, ``['name']``, ``[0]``, ``[-1]``, ``.*``, ``[*]``
- ``..`` recursive descent
- ``[a,b]`` unions and ``[start:end:step]`` slices
- ``[?(<expr>)]`` filters over ``@`` with ``== != < <= > >= && || !``

Filter expressions are compiled into ordinary operator models ($eq,
$and, $get, ...) so the executor evaluates them like any other
expression, with the candidate bound to ``@``.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum, auto
from functools import lru_cache
from typing import Any

from deck.errors import PathSyntaxError
from deck.paths import (
    Field,
    Filter,
    Index,
    RecursiveDescent,
    Segment,
    Selection,
    Slice,
    Wildcard,
    format_path,
)


class TokenType(Enum):
    ROOT = auto()        # $
    CURRENT = auto()     # @
    DOTDOT = auto()      # ..
    DOT = auto()         # .
    LBRACKET = auto()
    RBRACKET = auto()
    STAR = auto()
    COMMA = auto()
    COLON = auto()
    QUESTION = auto()
    LPAREN = auto()
    RPAREN = auto()
    EQ = auto()
    NEQ = auto()
    LTE = auto()
    GTE = auto()
    LT = auto()
    GT = auto()
    AND = auto()
    OR = auto()
    NOT = auto()
    NUMBER = auto()
    STRING = auto()
    NAME = auto()
    EOF = auto()


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: Any
    position: int


# Order matters: longer matches first, numbers before names.
TOKEN_PATTERNS = [
    (r"\s+", None),
    (r"\$", TokenType.ROOT),
    (r"@", TokenType.CURRENT),
    (r"\.\.", TokenType.DOTDOT),
    (r"\.", TokenType.DOT),
    (r"\[", TokenType.LBRACKET),
    (r"\]", TokenType.RBRACKET),
    (r"\*", TokenType.STAR),
    (r",", TokenType.COMMA),
    (r":", TokenType.COLON),
    (r"\?", TokenType.QUESTION),
    (r"\(", TokenType.LPAREN),
    (r"\)", TokenType.RPAREN),
    (r"==", TokenType.EQ),
    (r"!=", TokenType.NEQ),
    (r"<=", TokenType.LTE),
    (r">=", TokenType.GTE),
    (r"<", TokenType.LT),
    (r">", TokenType.GT),
    (r"&&", TokenType.AND),
    (r"\|\|", TokenType.OR),
    (r"!", TokenType.NOT),
    (r"-?\d+(?:\.\d+)?", TokenType.NUMBER),
    (r'"(?:[^"\\]|\\.)*"', TokenType.STRING),
    (r"'(?:[^'\\]|\\.)*'", TokenType.STRING),
    (r"[A-Za-z_][\w-]*", TokenType.NAME),
]

_COMPILED_PATTERNS = [(re.compile(p), t) for p, t in TOKEN_PATTERNS]

KEYWORDS = {"true": True, "false": False, "null": None}


def tokenize(source: str) -> list[Token]:
    tokens: list[Token] = []
    position = 0
    while position < len(source):
        for pattern, token_type in _COMPILED_PATTERNS:
            match = pattern.match(source, position)
            if match is None:
                continue
            text = match.group()
            if token_type is TokenType.NUMBER:
                tokens.append(Token(token_type, float(text) if "." in text else int(text), position))
            elif token_type is TokenType.STRING:
                tokens.append(Token(token_type, re.sub(r"\\(.)", r"\1", text[1:-1]), position))
            elif token_type is not None:
                tokens.append(Token(token_type, text, position))
            position = match.end()
            break
        else:
            raise PathSyntaxError(
                f"Unexpected character {source[position]!r} in JSONPath '{source}' at {position}"
            )
    tokens.append(Token(TokenType.EOF, None, position))
    return tokens


@dataclass(frozen=True)
class JsonPath:
    text: str
    segments: tuple[Segment, ...]


_COMPARISONS = {
    TokenType.EQ: "EqOp",
    TokenType.NEQ: "NeOp",
    TokenType.LT: "LtOp",
    TokenType.LTE: "LteOp",
    TokenType.GT: "GtOp",
    TokenType.GTE: "GteOp",
}


class _Parser:
    """Recursive descent over the token stream.

    Filter precedence (lowest to highest): ``||``, ``&&``, ``!``,
    comparison, operand.
    """

    def __init__(self, source: str) -> None:
        self.source = source
        self.tokens = tokenize(source)
        self.position = 0

    # ── helpers ───────────────────────────────────────────────────

    def _current(self) -> Token:
        return self.tokens[self.position]

    def _check(self, *types: TokenType) -> bool:
        return self._current().type in types

    def _advance(self) -> Token:
        token = self.tokens[self.position]
        if token.type is not TokenType.EOF:
            self.position += 1
        return token

    def _expect(self, token_type: TokenType, what: str) -> Token:
        if not self._check(token_type):
            self._error(f"Expected {what}")
        return self._advance()

    def _error(self, message: str) -> None:
        token = self._current()
        found = "end of input" if token.type is TokenType.EOF else repr(token.value)
        raise PathSyntaxError(
            f"{message} in JSONPath '{self.source}' at {token.position}, found {found}"
        )

    # ── path ──────────────────────────────────────────────────────

    def parse(self) -> JsonPath:
        segments: list[Segment] = []
        if self._check(TokenType.ROOT):
            self._advance()
        elif self._check(TokenType.NAME):
            segments.append(Field(self._advance().value))
        elif not self._check(TokenType.LBRACKET):
            self._error("Expected '$' or a name")

        while not self._check(TokenType.EOF):
            segments.append(self._segment())
        return JsonPath(self.source, tuple(segments))

    def _segment(self) -> Segment:
        if self._check(TokenType.DOT):
            self._advance()
            return self._member()
        if self._check(TokenType.DOTDOT):
            self._advance()
            if self._check(TokenType.LBRACKET):
                return RecursiveDescent(self._bracket())
            return RecursiveDescent(self._member())
        if self._check(TokenType.LBRACKET):
            return self._bracket()
        self._error("Expected '.', '..' or '['")
        raise AssertionError("unreachable")

    def _member(self) -> Segment:
        token = self._current()
        if token.type is TokenType.STAR:
            self._advance()
            return Wildcard()
        if token.type is TokenType.NAME:
            self._advance()
            return Field(token.value)
        if token.type is TokenType.NUMBER and isinstance(token.value, int):
            self._advance()
            return Field(str(token.value))
        self._error("Expected a member name")
        raise AssertionError("unreachable")

    def _bracket(self) -> Segment:
        self._expect(TokenType.LBRACKET, "'['")
        if self._check(TokenType.STAR):
            self._advance()
            segment: Segment = Wildcard()
        elif self._check(TokenType.QUESTION):
            self._advance()
            self._expect(TokenType.LPAREN, "'(' after '?'")
            segment = Filter(self._or())
            self._expect(TokenType.RPAREN, "')'")
        else:
            selectors = [self._selector()]
            while self._check(TokenType.COMMA):
                self._advance()
                selectors.append(self._selector())
            segment = selectors[0] if len(selectors) == 1 else Selection(tuple(selectors))
        self._expect(TokenType.RBRACKET, "']'")
        return segment

    def _int(self) -> int | None:
        if self._check(TokenType.NUMBER):
            value = self._advance().value
            if not isinstance(value, int):
                self._error("Expected an integer")
            return value
        return None

    def _selector(self) -> Segment:
        if self._check(TokenType.STRING):
            return Field(self._advance().value)
        start = self._int()
        if not self._check(TokenType.COLON):
            if start is None:
                self._error("Expected an index, a quoted name or a slice")
            return Index(start)  # type: ignore[arg-type]
        self._advance()
        end = self._int()
        step = None
        if self._check(TokenType.COLON):
            self._advance()
            step = self._int()
            if step == 0:
                self._error("Slice step cannot be zero")
        return Slice(start, end, step)

    # ── filter expressions ────────────────────────────────────────

    def _or(self) -> Any:
        from deck.models import OrOp

        operands = [self._and()]
        while self._check(TokenType.OR):
            self._advance()
            operands.append(self._and())
        return operands[0] if len(operands) == 1 else OrOp(operands=operands)

    def _and(self) -> Any:
        from deck.models import AndOp

        operands = [self._unary()]
        while self._check(TokenType.AND):
            self._advance()
            operands.append(self._unary())
        return operands[0] if len(operands) == 1 else AndOp(operands=operands)

    def _unary(self) -> Any:
        from deck.models import NotOp

        if self._check(TokenType.NOT):
            self._advance()
            return NotOp(operand=self._unary())
        return self._comparison()

    def _comparison(self) -> Any:
        from deck import models

        left, is_path = self._operand()
        if self._current().type in _COMPARISONS:
            model = getattr(models, _COMPARISONS[self._advance().type])
            right, _ = self._operand()
            return model(left=left, right=right)
        if is_path:
            # A bare path is an existence test: ?(@.email)
            return models.ExistsOp(value=left)
        return left

    def _operand(self) -> tuple[Any, bool]:
        from deck.models import GetOp, LiteralValue

        token = self._current()
        if token.type is TokenType.LPAREN:
            self._advance()
            inner = self._or()
            self._expect(TokenType.RPAREN, "')'")
            return inner, False
        if token.type in (TokenType.NUMBER, TokenType.STRING):
            self._advance()
            return LiteralValue(value=token.value), False
        if token.type is TokenType.NAME and token.value in KEYWORDS:
            self._advance()
            return LiteralValue(value=KEYWORDS[token.value]), False
        if token.type in (TokenType.CURRENT, TokenType.ROOT):
            return GetOp(path=self._relative_path()), True
        self._error("Expected a value or a path")
        raise AssertionError("unreachable")

    def _relative_path(self) -> str:
        head = self._advance()
        segments: list[Segment] = [Field("@")] if head.type is TokenType.CURRENT else []
        while self._check(TokenType.DOT, TokenType.LBRACKET):
            if self._advance().type is TokenType.DOT:
                member = self._member()
                if isinstance(member, Wildcard):
                    self._error("Wildcards are not allowed inside filters")
                segments.append(member)
            else:
                if self._check(TokenType.STRING):
                    segments.append(Field(self._advance().value))
                else:
                    index = self._int()
                    if index is None:
                        self._error("Expected an index or a quoted name")
                    segments.append(Index(index))  # type: ignore[arg-type]
                self._expect(TokenType.RBRACKET, "']'")
        if not segments:
            self._error("'$' inside a filter must be followed by a name")
        if isinstance(segments[0], Index):
            self._error("'$' inside a filter must be followed by a name")
        return format_path(segments)


@lru_cache(maxsize=512)
def compile_jsonpath(text: str) -> JsonPath:
    """Parse *text* into a JsonPath.

    Raises:
        PathSyntaxError: If the expression is malformed.
    """
    if not text.strip():
        raise PathSyntaxError("Empty JSONPath")
    return _Parser(text).parse()


Matcher = Callable[[Any, Any], Awaitable[bool]]


def _children(node: Any) -> list[Any]:
    if isinstance(node, dict):
        return list(node.values())
    if isinstance(node, list):
        return list(node)
    return []


def _descendants(node: Any) -> list[Any]:
    # Pre-order, the node itself first, so results keep document order.
    found = [node]
    for child in _children(node):
        found.extend(_descendants(child))
    return found


async def _select(segment: Segment, node: Any, matches: Matcher) -> list[Any]:
    match segment:
        case Field(name=name):
            if isinstance(node, dict) and name in node:
                return [node[name]]
            if isinstance(node, list) and name.isascii() and name.isdigit():
                position = int(name)
                return [node[position]] if position < len(node) else []
            return []
        case Index(index=index):
            if isinstance(node, list) and -len(node) <= index < len(node):
                return [node[index]]
            return []
        case Wildcard():
            return _children(node)
        case Slice(start=start, end=end, step=step):
            if isinstance(node, list):
                return node[slice(start, end, step)]
            return []
        case Selection(selectors=selectors):
            results: list[Any] = []
            for selector in selectors:
                results.extend(await _select(selector, node, matches))
            return results
        case Filter(predicate=predicate):
            kept = []
            for candidate in _children(node):
                if await matches(predicate, candidate):
                    kept.append(candidate)
            return kept
        case RecursiveDescent(segment=inner):
            results = []
            for descendant in _descendants(node):
                results.extend(await _select(inner, descendant, matches))
            return results
    raise PathSyntaxError(f"Unsupported JSONPath segment {segment!r}")


async def query(root: Any, path: JsonPath, matches: Matcher) -> list[Any]:
    """Return every value *path* selects from *root*, in document order.

    *matches(predicate, candidate)* decides filter membership; the
    executor supplies it so predicates run through normal evaluation.
    """
    nodes = [root]
    for segment in path.segments:
        selected: list[Any] = []
        for node in nodes:
            selected.extend(await _select(segment, node, matches))
        nodes = selected
    return nodes
