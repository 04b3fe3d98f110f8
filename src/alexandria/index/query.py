"""Query language.

Alexandria queries are space-separated terms. A term prefixed with ``+`` is
required and one prefixed with ``-`` is excluded. Since most terms should be
required without typing a plus in front of each of them, terms without a
prefix are made required automatically. To make a term optional, prefix it
with ``~``.

After translation, a query is parsed into a :class:`BooleanQuery`. Terms may
be limited to one field (``type:theorem``) and may end in ``*`` to match by
prefix.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from alexandria.errors import QuerySyntaxError


def translate_prefixes(query: str) -> str:
    """Rewrite the Alexandria prefix syntax into plain ``+``/``-`` syntax."""
    words: List[str] = []
    for raw in query.split(" "):
        word = raw.strip()
        if not word:
            continue
        if word[0] in "+-":
            words.append(word)
        elif word[0] == "~":
            if word[1:]:
                words.append(word[1:])
        else:
            words.append("+" + word)
    return " ".join(words)


class Occur(str, Enum):
    MUST = "must"
    MUST_NOT = "must_not"
    SHOULD = "should"


@dataclass(frozen=True, slots=True)
class TermClause:
    term: str
    occur: Occur = Occur.SHOULD
    field: Optional[str] = None
    prefix: bool = False


@dataclass(slots=True)
class BooleanQuery:
    must: List[TermClause] = field(default_factory=list)
    must_not: List[TermClause] = field(default_factory=list)
    should: List[TermClause] = field(default_factory=list)

    def add(self, clause: TermClause) -> None:
        if clause.occur is Occur.MUST:
            self.must.append(clause)
        elif clause.occur is Occur.MUST_NOT:
            self.must_not.append(clause)
        else:
            self.should.append(clause)


def parse_term(token: str) -> TermClause:
    occur = Occur.SHOULD
    text = token
    if text[0] == "+":
        occur, text = Occur.MUST, text[1:]
    elif text[0] == "-":
        occur, text = Occur.MUST_NOT, text[1:]
    if not text or text[0] in "+-":
        raise QuerySyntaxError(f"syntax error: dangling operator in {token!r}")

    field_name: Optional[str] = None
    if ":" in text:
        field_name, text = text.split(":", 1)
        if not field_name:
            raise QuerySyntaxError(f"syntax error: missing field name in {token!r}")
        field_name = field_name.lower()

    prefix = text.endswith("*")
    if prefix:
        text = text.rstrip("*")
    if not text:
        raise QuerySyntaxError(f"syntax error: empty term in {token!r}")
    return TermClause(term=text, occur=occur, field=field_name, prefix=prefix)


def parse_query(query: str) -> BooleanQuery:
    """Parse a ``+``/``-`` query string into a :class:`BooleanQuery`."""
    tokens = query.split()
    if not tokens:
        raise QuerySyntaxError("syntax error: empty query")
    result = BooleanQuery()
    for token in tokens:
        result.add(parse_term(token))
    return result
