"""Tests for the query language."""

from __future__ import annotations

import pytest

from alexandria.errors import QuerySyntaxError
from alexandria.index.query import (
    BooleanQuery,
    Occur,
    TermClause,
    parse_query,
    parse_term,
    translate_prefixes,
)


class TestTranslatePrefixes:
    """Test the +/-/~ prefix translation."""

    def test_mixed_prefixes(self) -> None:
        """Plain terms become required, ~ makes a term optional."""
        assert translate_prefixes("alpha -beta ~gamma") == "+alpha -beta gamma"

    def test_explicit_plus_is_kept(self) -> None:
        assert translate_prefixes("+alpha") == "+alpha"

    def test_repeated_spaces(self) -> None:
        assert translate_prefixes("  alpha   beta ") == "+alpha +beta"

    def test_empty_query(self) -> None:
        assert translate_prefixes("") == ""

    def test_lone_tilde_is_dropped(self) -> None:
        assert translate_prefixes("alpha ~") == "+alpha"

    def test_lone_operators_pass_through(self) -> None:
        assert translate_prefixes("+ -") == "+ -"

    def test_field_terms(self) -> None:
        assert translate_prefixes("type:theorem ~tags:algebra") == "+type:theorem tags:algebra"


class TestParseTerm:
    """Test parsing single terms."""

    def test_plain_term(self) -> None:
        assert parse_term("alpha") == TermClause(term="alpha")

    def test_required_term(self) -> None:
        assert parse_term("+alpha").occur is Occur.MUST

    def test_excluded_term(self) -> None:
        assert parse_term("-alpha").occur is Occur.MUST_NOT

    def test_field_term(self) -> None:
        clause = parse_term("+Type:theorem")
        assert clause.field == "type"
        assert clause.term == "theorem"

    def test_prefix_term(self) -> None:
        clause = parse_term("alg*")
        assert clause.prefix is True
        assert clause.term == "alg"

    @pytest.mark.parametrize("token", ["+", "-", "+-alpha", "type:", ":alpha", "*", "+*"])
    def test_invalid_terms(self, token: str) -> None:
        with pytest.raises(QuerySyntaxError):
            parse_term(token)


class TestParseQuery:
    """Test parsing whole queries."""

    def test_clauses_are_grouped(self) -> None:
        query = parse_query(translate_prefixes("alpha -beta ~gamma"))

        assert isinstance(query, BooleanQuery)
        assert [c.term for c in query.must] == ["alpha"]
        assert [c.term for c in query.must_not] == ["beta"]
        assert [c.term for c in query.should] == ["gamma"]

    def test_empty_query_is_a_syntax_error(self) -> None:
        with pytest.raises(QuerySyntaxError):
            parse_query("")

    def test_whitespace_query_is_a_syntax_error(self) -> None:
        with pytest.raises(QuerySyntaxError):
            parse_query("   ")
