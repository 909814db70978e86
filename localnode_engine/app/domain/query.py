from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Mapping, Sequence

from localnode_engine.app.domain.errors import QueryParseError
from localnode_engine.app.domain.models import Event


_TOKEN_RE = re.compile(
    r"""
    \s*
    (?:
        (?P<string>'[^']*')
      | (?P<number>-?\d+(?:\.\d+)?)(?![A-Za-z0-9_.])
      | (?P<op><=|>=|=|<|>)
      | (?P<word>[A-Za-z_][A-Za-z0-9_.\-/]*)
    )
    """,
    re.VERBOSE,
)
_TRAILING_WS_RE = re.compile(r"\s*\Z")

_AND = "AND"
_CONTAINS = "CONTAINS"
_EXISTS = "EXISTS"


class Operator(str, Enum):
    EQ = "="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    CONTAINS = "CONTAINS"
    EXISTS = "EXISTS"


Operand = str | Decimal | None


@dataclass(frozen=True)
class Condition:
    key: str
    op: Operator
    operand: Operand = None

    def matches(self, values: Sequence[str]) -> bool:
        if self.op is Operator.EXISTS:
            return len(values) > 0
        if self.op is Operator.CONTAINS:
            return any(str(self.operand) in v for v in values)
        if isinstance(self.operand, str):
            # only equality is allowed for string operands (checked at parse time)
            return any(v == self.operand for v in values)
        return any(self._compare_number(v) for v in values)

    def _compare_number(self, value: str) -> bool:
        if not isinstance(self.operand, Decimal):
            return False
        try:
            number = Decimal(value)
        except InvalidOperation:
            return False
        if self.op is Operator.EQ:
            return number == self.operand
        if self.op is Operator.LT:
            return number < self.operand
        if self.op is Operator.LTE:
            return number <= self.operand
        if self.op is Operator.GT:
            return number > self.operand
        return number >= self.operand

    def __str__(self) -> str:
        if self.op is Operator.EXISTS:
            return f"{self.key} EXISTS"
        if isinstance(self.operand, str):
            return f"{self.key} {self.op.value} '{self.operand}'"
        return f"{self.key} {self.op.value} {self.operand}"


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    pos: int


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    end = _TRAILING_WS_RE.search(text).start()  # type: ignore[union-attr]
    while pos < end:
        m = _TOKEN_RE.match(text, pos)
        if m is None or m.end() == pos:
            raise QueryParseError(
                f"unexpected character {text[pos:].lstrip()[:1]!r} at position {pos}",
                position=pos,
            )
        kind = m.lastgroup or ""
        tokens.append(_Token(kind=kind, text=m.group(kind), pos=m.start(kind)))
        pos = m.end()
    return tokens


@dataclass(frozen=True)
class Query:
    """
    Indexer query: a conjunction of `key op operand` conditions.

    Examples:
      tm.event = 'Tx' AND tx.height > 5
      transfer.recipient = 'cosmos1...' AND message.action CONTAINS 'send'
      withdraw_rewards.validator EXISTS
    """

    text: str
    conditions: tuple[Condition, ...]

    @classmethod
    def parse(cls, text: str) -> "Query":
        tokens = _tokenize(text)
        if not tokens:
            raise QueryParseError("query is empty", position=0)

        conditions: list[Condition] = []
        i = 0
        while True:
            condition, i = cls._parse_condition(tokens, i, text)
            conditions.append(condition)
            if i == len(tokens):
                break
            tok = tokens[i]
            if tok.kind != "word" or tok.text.upper() != _AND:
                raise QueryParseError(
                    f"expected AND at position {tok.pos}, got {tok.text!r}",
                    position=tok.pos,
                )
            i += 1
            if i == len(tokens):
                raise QueryParseError("dangling AND at end of query", position=len(text))

        return cls(text=text.strip(), conditions=tuple(conditions))

    @staticmethod
    def _parse_condition(tokens: list[_Token], i: int, text: str) -> tuple[Condition, int]:
        key_tok = tokens[i]
        if key_tok.kind != "word" or key_tok.text.upper() in (_AND, _CONTAINS, _EXISTS):
            raise QueryParseError(
                f"expected a composite key at position {key_tok.pos}, got {key_tok.text!r}",
                position=key_tok.pos,
            )
        if i + 1 >= len(tokens):
            raise QueryParseError(
                f"missing operator after {key_tok.text!r}", position=len(text)
            )

        op_tok = tokens[i + 1]
        if op_tok.kind == "word" and op_tok.text.upper() == _EXISTS:
            return Condition(key=key_tok.text, op=Operator.EXISTS), i + 2

        if op_tok.kind == "op":
            op = Operator(op_tok.text)
        elif op_tok.kind == "word" and op_tok.text.upper() == _CONTAINS:
            op = Operator.CONTAINS
        else:
            raise QueryParseError(
                f"expected an operator at position {op_tok.pos}, got {op_tok.text!r}",
                position=op_tok.pos,
            )

        if i + 2 >= len(tokens):
            raise QueryParseError(
                f"missing operand after {key_tok.text} {op.value}", position=len(text)
            )
        val_tok = tokens[i + 2]
        operand: Operand
        if val_tok.kind == "string":
            operand = val_tok.text[1:-1]
            if op not in (Operator.EQ, Operator.CONTAINS):
                raise QueryParseError(
                    f"operator {op.value} needs a numeric operand at position {val_tok.pos}",
                    position=val_tok.pos,
                )
        elif val_tok.kind == "number":
            if op is Operator.CONTAINS:
                raise QueryParseError(
                    f"CONTAINS needs a string operand at position {val_tok.pos}",
                    position=val_tok.pos,
                )
            operand = Decimal(val_tok.text)
        else:
            raise QueryParseError(
                f"expected a string or number at position {val_tok.pos}, got {val_tok.text!r}",
                position=val_tok.pos,
            )

        return Condition(key=key_tok.text, op=op, operand=operand), i + 3

    def matches(self, events: Mapping[str, Sequence[str]]) -> bool:
        return all(c.matches(events.get(c.key, ())) for c in self.conditions)

    def __str__(self) -> str:
        return " AND ".join(str(c) for c in self.conditions)


def flatten_events(events: Sequence[Event]) -> dict[str, list[str]]:
    """
    Turn ABCI events into the `type.key -> [values]` mapping queries are
    evaluated against.
    """
    out: dict[str, list[str]] = {}
    for event in events:
        for attr in event.attributes:
            out.setdefault(f"{event.type}.{attr.key}", []).append(attr.value)
    return out
