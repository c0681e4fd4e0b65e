import pytest

from kindle_vocab.io import BookScope, WordListingQuery
from kindle_vocab.io.word_query_builder import (
    build_stem_match_sql,
    build_word_listing_sql,
    like_pattern,
)


def test_like_pattern_escapes_wildcards():
    assert like_pattern("50%_off") == "%50\\%\\_off%"
    assert like_pattern("a\\b") == "%a\\\\b%"


@pytest.mark.parametrize(
    "query, expected_limit",
    [
        (WordListingQuery(), 1000),
        (WordListingQuery(search="ab"), 100),
        (WordListingQuery(search="abc"), 500),
        (WordListingQuery(scope=BookScope("b1"), search="ab"), 100),
        (WordListingQuery(scope=BookScope("b1")), None),
    ],
)
def test_listing_limit(query, expected_limit):
    sql, params = build_word_listing_sql(query)

    assert query.limit == expected_limit
    assert params.get("limit") == expected_limit
    assert ("LIMIT :limit" in sql) == (expected_limit is not None)


def test_scope_by_title_and_authors_binds_both():
    sql, params = build_word_listing_sql(
        WordListingQuery(scope=BookScope("b1", title="Dune", authors="Frank Herbert"))
    )

    assert "book_filter" in sql
    assert params["scope_title"] == "Dune"
    assert params["scope_authors"] == "Frank Herbert"
    assert "scope_id" not in params


def test_scope_without_metadata_uses_raw_id():
    _, params = build_word_listing_sql(WordListingQuery(scope=BookScope("b1")))
    assert params["scope_id"] == "b1"


def test_search_values_are_bound_not_inlined():
    search = "x' OR 1=1 --"
    sql, params = build_word_listing_sql(
        WordListingQuery(search=search, stem_candidates=("walk",))
    )

    assert search not in sql
    assert params["search_like"] == like_pattern(search.lower())
    assert params["stem_0"] == "walk"


def test_related_words_disabled_skips_stem_ctes():
    sql, _ = build_word_listing_sql(
        WordListingQuery(scope=BookScope("b1", "Dune", "Frank Herbert"), related_words=False)
    )

    assert "stem_book_counts" not in sql
    assert "book_stems" not in sql
    assert "0 AS stem_other_book_count" in sql


def test_stem_match_requires_stems():
    with pytest.raises(ValueError):
        build_stem_match_sql([])


def test_stem_match_excludes_book_when_asked():
    sql, params = build_stem_match_sql(["walk"], exclude_book_id="b1")

    assert params == {"stem_0": "walk", "exclude_book_id": "b1"}
    assert "B.id != :exclude_book_id" in sql
