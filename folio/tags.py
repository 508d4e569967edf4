"""Tag store: normalization, lazy creation and document tag links.

Tags are global and unique by normalized name. They are created on first
use and never deleted. Document links carry an explicit ``seq`` so tags
display in the order they were added.
"""

import logging
from collections.abc import Iterable

from folio.db.store import Store, Transaction
from folio.errors import PreconditionError
from folio.schemas.tags import Tag, TagCount, TaggingConfig, TaggingContext

logger = logging.getLogger(__name__)

_SELECT_BY_NAME = "SELECT id, name FROM tags WHERE name IN ({in})"
_INSERT_IGNORE = "INSERT INTO tags (name) VALUES (?) ON CONFLICT (name) DO NOTHING"
_SELECT_DOCUMENT_TAG_IDS = "SELECT tag FROM document_tags WHERE document = ?"
_NEXT_SEQ = "SELECT COALESCE(MAX(seq) + 1, 0) FROM document_tags WHERE document = ?"

_SELECT_COUNTS = """
SELECT t.name, COUNT(dt.document) AS count
FROM tags AS t
LEFT JOIN document_tags AS dt ON dt.tag = t.id
GROUP BY t.id, t.name
ORDER BY t.name
"""


def _check_strings(operation: str, tags: Iterable) -> list[str]:
    tags = list(tags)
    for tag in tags:
        if not isinstance(tag, str):
            raise PreconditionError(operation, f"tag values must be strings, got {tag!r}")
    return tags


def _check_document_id(operation: str, document_id: object) -> None:
    if isinstance(document_id, bool) or not isinstance(document_id, int):
        raise PreconditionError(operation, f"document id must be an integer, got {document_id!r}")


def _ordered(tags: Iterable[str], operation: str = "normalize_tags") -> list[str]:
    """Normalize tags keeping first-seen order. Blank values are dropped."""
    names = (tag.strip().lower() for tag in _check_strings(operation, tags))
    return list(dict.fromkeys(name for name in names if name))


def normalize_tags(tags: Iterable[str]) -> set[str]:
    """Lower-case, trim and de-duplicate tag values.

    Raises:
        PreconditionError: If any value is not a string.
    """
    return set(_ordered(tags))


def origin_tag(origin: str | None) -> str | None:
    """Return the ``origin/<origin>`` tag, or None for a blank origin."""
    if origin is None or not origin.strip():
        return None
    return f"origin/{origin}"


def get_or_create_tags(db: Store | Transaction, tag_values: Iterable[str]) -> list[Tag]:
    """Look up tags by name and create the missing ones.

    Empty input returns an empty list without touching the database.
    Two callers creating the same new name concurrently end up with a
    single row; the loser simply reads the winner's row back.
    """
    names = _ordered(tag_values, "get_or_create_tags")
    if not names:
        return []

    with db.transaction() as tx:
        existing = {row["name"] for row in tx.query_in(_SELECT_BY_NAME, names)}
        missing = [name for name in names if name not in existing]
        for name in missing:
            if tx.execute(_INSERT_IGNORE, (name,)).rowcount == 0:
                logger.debug("Tag %r created concurrently, using existing row", name)
            else:
                logger.info("Created tag %r", name)
        rows = tx.query_in(_SELECT_BY_NAME, names)

    by_name = {row["name"]: Tag(id=row["id"], name=row["name"]) for row in rows}
    return [by_name[name] for name in names]


def add_tags(db: Store | Transaction, document_id: int, tags: Iterable[str]) -> list[int]:
    """Link tags to a document. Tags already linked are left alone.

    Returns:
        Ids of the tags that were newly linked.
    """
    _check_document_id("add_tags", document_id)
    tags = _check_strings("add_tags", tags)

    with db.transaction() as tx:
        db_tags = get_or_create_tags(tx, tags)
        linked = {row["tag"] for row in tx.query(_SELECT_DOCUMENT_TAG_IDS, (document_id,))}
        new_ids = [tag.id for tag in db_tags if tag.id not in linked]
        if new_ids:
            seq = tx.query_one(_NEXT_SEQ, (document_id,))[0]
            tx.insert_many(
                "document_tags",
                (
                    {"document": document_id, "tag": tag_id, "seq": seq + i}
                    for i, tag_id in enumerate(new_ids)
                ),
            )
            logger.info("Document %d: added %d tag(s)", document_id, len(new_ids))
    return new_ids


def remove_tags(db: Store | Transaction, document_id: int, tags: Iterable[str]) -> int:
    """Unlink tags from a document. Unknown or unlinked tags are ignored.

    Returns:
        The number of links removed.
    """
    _check_document_id("remove_tags", document_id)
    names = _ordered(tags, "remove_tags")
    if not names:
        return 0

    with db.transaction() as tx:
        tag_ids = [row["id"] for row in tx.query_in(_SELECT_BY_NAME, names)]
        removed = tx.delete_in(
            "document_tags", "tag IN ({in}) AND document = ?", tag_ids, (document_id,)
        )
    if removed:
        logger.info("Document %d: removed %d tag(s)", document_id, removed)
    return removed


def auto_tag(
    db: Store | Transaction,
    document_id: int,
    config: TaggingConfig,
    context: TaggingContext,
) -> list[int]:
    """Apply the configured tagging rules to a new document."""
    candidates: list[str | None] = []
    if config.add_origin:
        candidates.append(origin_tag(context.origin))
    if config.mail_to:
        candidates.append(context.mail_to)
    if config.mail_from:
        candidates.append(context.mail_from)
    candidates.extend(config.new_document)

    tags = [tag for tag in candidates if tag and tag.strip()]
    return add_tags(db, document_id, tags)


def list_tags(db: Store | Transaction) -> list[TagCount]:
    """All tags with the number of documents carrying each, by name."""
    return [TagCount(name=row["name"], count=row["count"]) for row in db.query(_SELECT_COUNTS)]
