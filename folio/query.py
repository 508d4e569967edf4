"""Search expressions for document listings.

A search string is a whitespace-separated list of terms, all of which must
match::

    tag:invoice -tag:paid "electric bill"

``tag:x`` requires the tag, ``-tag:x`` forbids it and any other term must
appear in the title (case-insensitive). The compiled condition is used as
a ``HAVING`` clause over documents grouped with their tag names ``t.name``.
"""

import shlex

from folio.errors import PreconditionError
from folio.schemas.search import SearchQuery

TAG_PREFIX = "tag:"
EXCLUDE_PREFIX = "-tag:"

_HAS_TAG = "SUM(CASE WHEN t.name = ? THEN 1 ELSE 0 END) > 0"
_LACKS_TAG = "SUM(CASE WHEN t.name = ? THEN 1 ELSE 0 END) = 0"
_TITLE_LIKE = "py_lower(d.title) LIKE ? ESCAPE '\\'"


def parse_query(text: str) -> SearchQuery:
    """Parse a search string into a SearchQuery.

    Raises:
        PreconditionError: If the string has unbalanced quotes.
    """
    try:
        terms = shlex.split(text)
    except ValueError as exc:
        raise PreconditionError("parse_query", f"cannot parse {text!r}: {exc}") from exc

    query = SearchQuery()
    for term in terms:
        lowered = term.lower()
        if lowered.startswith(EXCLUDE_PREFIX):
            value = term[len(EXCLUDE_PREFIX):].strip().lower()
            if value:
                query.excluded_tags.append(value)
        elif lowered.startswith(TAG_PREFIX):
            value = term[len(TAG_PREFIX):].strip().lower()
            if value:
                query.tags.append(value)
        elif term.strip():
            query.title_terms.append(term.strip())
    return query


def _like_pattern(term: str) -> str:
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def compile_query(query: SearchQuery) -> tuple[str, list[str]]:
    """Compile a SearchQuery into a ``HAVING`` condition and its parameters."""
    conditions: list[str] = []
    params: list[str] = []

    for tag in query.tags:
        conditions.append(_HAS_TAG)
        params.append(tag)
    for tag in query.excluded_tags:
        conditions.append(_LACKS_TAG)
        params.append(tag)
    for term in query.title_terms:
        conditions.append(_TITLE_LIKE)
        params.append(_like_pattern(term))

    if not conditions:
        return "1 = 1", []
    return " AND ".join(conditions), params
