"""Composes the parameterized word listing and stem-match queries.

The listing is assembled from a conditional chain of common table
expressions: a book scope adds ``book_filter``, related-word discovery adds
``book_stems``/``stem_book_counts``. Every user-supplied value is bound as a
named parameter; only fixed fragments are concatenated.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from kindle_vocab.io.database_manager import BOOKS_TABLE, LOOKUPS_TABLE, WORDS_TABLE

SHORT_SEARCH_LENGTH = 3
SHORT_SEARCH_LIMIT = 100
SEARCH_LIMIT = 500
UNSCOPED_LIMIT = 1000

Params = Dict[str, object]

STATUS_ORDER = """
    CASE W.category
        WHEN 0 THEN 0
        WHEN 100 THEN 1
        WHEN -1 THEN 2
        ELSE 1
    END
"""


@dataclass(frozen=True)
class BookScope:
    """Restricts a listing to one logical book.

    When title and authors are known every imported copy of the book is
    included, otherwise only the raw BOOK_INFO id.
    """

    book_id: str
    title: Optional[str] = None
    authors: Optional[str] = None


@dataclass(frozen=True)
class WordListingQuery:
    scope: Optional[BookScope] = None
    search: str = ""
    stem_candidates: Tuple[str, ...] = ()
    related_words: bool = True

    @property
    def limit(self) -> Optional[int]:
        if self.search:
            return SHORT_SEARCH_LIMIT if len(self.search) < SHORT_SEARCH_LENGTH else SEARCH_LIMIT
        if self.scope is None:
            return UNSCOPED_LIMIT
        return None


def like_pattern(text: str) -> str:
    """Substring LIKE pattern for ``text`` with wildcards escaped (use ESCAPE '\\')."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_word_listing_sql(query: WordListingQuery) -> Tuple[str, Params]:
    params: Params = {}
    with_parts: List[str] = []
    book_filter_clause: Optional[str] = None

    if query.scope is not None:
        if query.scope.title is not None and query.scope.authors is not None:
            with_parts.append(
                f"""
                book_filter AS (
                    SELECT id FROM {BOOKS_TABLE}
                    WHERE title = :scope_title AND authors = :scope_authors
                )"""
            )
            params["scope_title"] = query.scope.title
            params["scope_authors"] = query.scope.authors
        else:
            with_parts.append(
                """
                book_filter AS (
                    SELECT :scope_id AS id
                )"""
            )
            params["scope_id"] = query.scope.book_id
        book_filter_clause = "book_key IN (SELECT id FROM book_filter)"

    latest_filter = f"WHERE {book_filter_clause}" if book_filter_clause else ""
    with_parts.append(
        f"""
        latest_ts AS (
            SELECT word_key, book_key, MAX(timestamp) AS latest_ts
            FROM {LOOKUPS_TABLE}
            {latest_filter}
            GROUP BY word_key, book_key
        ),
        latest AS (
            SELECT L.word_key, L.book_key, T.latest_ts AS latest_ts, MAX(L.rowid) AS latest_rowid
            FROM {LOOKUPS_TABLE} L
            JOIN latest_ts T
              ON T.word_key = L.word_key
             AND T.book_key = L.book_key
             AND T.latest_ts = L.timestamp
            GROUP BY L.word_key, L.book_key, T.latest_ts
        ),
        usage_counts AS (
            SELECT word_key, book_key, COUNT(*) AS usage_count
            FROM {LOOKUPS_TABLE}
            {latest_filter}
            GROUP BY word_key, book_key
        )"""
    )

    if query.related_words:
        stem_join = ""
        if book_filter_clause:
            with_parts.append(
                f"""
                book_stems AS (
                    SELECT DISTINCT W.stem AS stem
                    FROM {WORDS_TABLE} W
                    JOIN {LOOKUPS_TABLE} L ON L.word_key = W.id
                    WHERE W.stem IS NOT NULL AND W.stem != ''
                      AND L.{book_filter_clause}
                )"""
            )
            stem_join = "JOIN book_stems BS ON BS.stem = W.stem"
        # Duplicate imports of one book share (title, authors) and count once.
        with_parts.append(
            f"""
            stem_book_counts AS (
                SELECT W.stem AS stem,
                       COUNT(DISTINCT COALESCE(BI.title, '') || char(31) || COALESCE(BI.authors, '')) AS book_count
                FROM {WORDS_TABLE} W
                JOIN {LOOKUPS_TABLE} L ON L.word_key = W.id
                JOIN {BOOKS_TABLE} BI ON BI.id = L.book_key
                {stem_join}
                WHERE W.stem IS NOT NULL AND W.stem != ''
                GROUP BY W.stem
            )"""
        )
        stem_select = """
            CASE
                WHEN W.stem IS NULL OR W.stem = '' THEN 0
                ELSE MAX(COALESCE(SBC.book_count, 1) - 1, 0)
            END AS stem_other_book_count"""
        stem_count_join = "LEFT JOIN stem_book_counts SBC ON SBC.stem = W.stem"
    else:
        stem_select = "0 AS stem_other_book_count"
        stem_count_join = ""

    sql = f"""
    WITH {",".join(with_parts)}
    SELECT
        W.id AS word_id, W.word AS word, W.stem AS stem, W.lang AS lang, W.category AS category,
        L.usage AS usage,
        latest.latest_ts AS latest_ts,
        B.id AS book_id, B.title AS book_title, B.authors AS book_authors,
        {stem_select},
        usage_counts.usage_count AS usage_count
    FROM latest
    JOIN {WORDS_TABLE} W ON W.id = latest.word_key
    JOIN {BOOKS_TABLE} B ON B.id = latest.book_key
    JOIN {LOOKUPS_TABLE} L ON L.rowid = latest.latest_rowid
    JOIN usage_counts ON usage_counts.word_key = latest.word_key AND usage_counts.book_key = latest.book_key
    {stem_count_join}
    """

    if query.search:
        sql += f" WHERE {_search_predicate(query.search, query.stem_candidates, params)}"

    # One row per (word, book) even when several lookups share the latest timestamp.
    sql += f" GROUP BY W.id, B.id ORDER BY {STATUS_ORDER}, latest_ts DESC"

    if query.limit is not None:
        sql += " LIMIT :limit"
        params["limit"] = query.limit
    return sql, params


def _search_predicate(search: str, stem_candidates: Sequence[str], params: Params) -> str:
    params["search_like"] = like_pattern(search.lower())
    # LIKE folds case for ASCII only; non-ASCII case pairs do not match each other.
    word_conditions = ["W.word LIKE :search_like ESCAPE '\\'"]

    for index, stem in enumerate(sorted(stem_candidates)):
        stem_key = f"stem_{index}"
        like_key = f"stem_like_{index}"
        params[stem_key] = stem
        params[like_key] = like_pattern(stem)
        word_conditions.append(f"W.stem = :{stem_key}")
        # The stored stem may differ from ours; also try the candidate as a substring.
        word_conditions.append(f"W.word LIKE :{like_key} ESCAPE '\\'")

    usage_condition = f"""
        EXISTS (
            SELECT 1 FROM {LOOKUPS_TABLE} LU
            WHERE LU.word_key = W.id AND LU.book_key = B.id
              AND LU.usage LIKE :search_like ESCAPE '\\'
        )"""
    return f"({' OR '.join(word_conditions)} OR {usage_condition})"


def build_stem_match_sql(
    stems: Sequence[str], exclude_book_id: Optional[str] = None
) -> Tuple[str, Params]:
    """Find every (word, book) pair whose stored stem matches any of ``stems``.

    ``stems`` must not be empty.
    """
    if not stems:
        raise ValueError("At least one stem is required")

    params: Params = {}
    predicates = []
    for index, stem in enumerate(stems):
        key = f"stem_{index}"
        params[key] = stem
        predicates.append(f"LOWER(W.stem) = LOWER(:{key})")

    sql = f"""
    SELECT
        W.id AS word_id, W.word AS word, W.stem AS stem, W.lang AS lang, W.category AS category,
        (SELECT L2.usage
         FROM {LOOKUPS_TABLE} L2
         WHERE L2.word_key = W.id AND L2.book_key = B.id
         ORDER BY L2.timestamp DESC
         LIMIT 1) AS usage,
        (SELECT MAX(L3.timestamp)
         FROM {LOOKUPS_TABLE} L3
         WHERE L3.word_key = W.id AND L3.book_key = B.id) AS latest_ts,
        B.id AS book_id, B.title AS book_title, B.authors AS book_authors,
        0 AS stem_other_book_count,
        (SELECT COUNT(*)
         FROM {LOOKUPS_TABLE} L4
         WHERE L4.word_key = W.id AND L4.book_key = B.id) AS usage_count
    FROM {WORDS_TABLE} W
    JOIN {LOOKUPS_TABLE} L ON L.word_key = W.id
    JOIN {BOOKS_TABLE} B ON L.book_key = B.id
    WHERE ({" OR ".join(predicates)})
    """
    if exclude_book_id is not None:
        sql += " AND B.id != :exclude_book_id"
        params["exclude_book_id"] = exclude_book_id

    sql += f" GROUP BY W.id, B.id ORDER BY {STATUS_ORDER}, latest_ts DESC"
    return sql, params


BOOK_LISTING_SQL = f"""
SELECT
    B.id AS id,
    B.title AS title,
    B.authors AS authors,
    B.lang AS lang,
    COUNT(DISTINCT W.word) AS word_count,
    SUM(CASE WHEN W.category = 0 THEN 1 ELSE 0 END) AS learning_count
FROM {BOOKS_TABLE} B
JOIN {LOOKUPS_TABLE} L ON L.book_key = B.id
JOIN {WORDS_TABLE} W ON W.id = L.word_key
GROUP BY B.id
"""

USAGE_HISTORY_SQL = f"""
SELECT L.usage AS usage, L.timestamp AS timestamp
FROM {LOOKUPS_TABLE} L
WHERE L.word_key = :word_id AND L.book_key = :book_id
ORDER BY L.timestamp DESC
"""
