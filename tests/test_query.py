"""Tests for search expression parsing and compilation."""

import pytest

from folio.errors import PreconditionError
from folio.query import compile_query, parse_query
from folio.schemas.search import SearchQuery


class TestParseQuery:
    def test_tag_terms(self):
        query = parse_query("tag:Invoice -tag:paid")
        assert query.tags == ["invoice"]
        assert query.excluded_tags == ["paid"]
        assert query.title_terms == []

    def test_title_terms(self):
        query = parse_query('electric "water bill"')
        assert query.title_terms == ["electric", "water bill"]

    def test_quoted_tag_with_space(self):
        assert parse_query('"tag:tax return"').tags == ["tax return"]

    def test_prefix_is_case_insensitive(self):
        assert parse_query("TAG:x -Tag:y").tags == ["x"]
        assert parse_query("TAG:x -Tag:y").excluded_tags == ["y"]

    def test_empty_tag_values_dropped(self):
        assert parse_query("tag: -tag:").is_empty()

    def test_blank_string(self):
        assert parse_query("   ").is_empty()

    def test_unbalanced_quotes(self):
        with pytest.raises(PreconditionError, match="parse_query"):
            parse_query('"unterminated')


class TestCompileQuery:
    def test_empty_matches_everything(self):
        assert compile_query(SearchQuery()) == ("1 = 1", [])

    def test_conditions_joined_with_and(self):
        condition, params = compile_query(
            SearchQuery(tags=["a"], excluded_tags=["b"], title_terms=["Bill"])
        )
        assert condition.count(" AND ") == 2
        assert params == ["a", "b", "%bill%"]

    def test_like_wildcards_escaped(self):
        _, params = compile_query(SearchQuery(title_terms=["100%_done"]))
        assert params == ["%100\\%\\_done%"]

    def test_placeholders_match_params(self):
        condition, params = compile_query(
            SearchQuery(tags=["a", "b"], title_terms=["x", "y", "z"])
        )
        assert condition.count("?") == len(params) == 5
