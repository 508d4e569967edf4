"""Inbox of pages that have not been filed into a document yet."""

import logging
from collections.abc import Collection

from folio.db.store import Store, Transaction
from folio.schemas.files import InboxPage

logger = logging.getLogger(__name__)

_SELECT_INBOX = """
SELECT p.id, p.file, p.number, p.render_status
FROM inbox AS i
JOIN pages AS p ON i.page = p.id
ORDER BY p.file, p.number
"""


def list_inbox(db: Store | Transaction) -> list[InboxPage]:
    """Pages in the inbox, ordered by source file and page number."""
    return [InboxPage(**dict(row)) for row in db.query(_SELECT_INBOX)]


def add_to_inbox(db: Store | Transaction, page_ids: Collection[int]) -> None:
    """Put pages in the inbox. Does not check for pages already there."""
    with db.transaction() as tx:
        tx.insert_many("inbox", ({"page": page_id} for page_id in page_ids))
    if page_ids:
        logger.info("Added %d page(s) to inbox", len(page_ids))


def remove_from_inbox(db: Store | Transaction, page_ids: Collection[int]) -> int:
    """Take pages out of the inbox. Pages not in the inbox are ignored."""
    with db.transaction() as tx:
        removed = tx.delete_in("inbox", "page IN ({in})", list(page_ids))
    if removed:
        logger.info("Removed %d page(s) from inbox", removed)
    return removed
