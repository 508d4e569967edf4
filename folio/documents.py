"""Document graph: documents, their ordered pages and their tags.

A document is an ordered list of page references. Page numbers within a
document are a dense sequence starting at 0. A document can also point at
a source file; once that file is processed, all of its pages are appended
in file order.

Every mutation here runs in a single transaction. Helpers take ``db``
(a Store or a Transaction) and join an already open transaction.
"""

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from folio.db.store import Store, Transaction
from folio.errors import DocumentNotFoundError, FileNotFoundInStoreError, PreconditionError
from folio.query import compile_query, parse_query
from folio.registry import page_ids as file_page_ids
from folio.registry import file_documents, processing_status
from folio.schemas.documents import Document, DocumentPage, DocumentSummary, SourcePage
from folio.schemas.files import ProcessingStatus
from folio.schemas.search import SearchQuery
from folio.tags import add_tags, normalize_tags, remove_tags

logger = logging.getLogger(__name__)

UPDATABLE_PROPS = frozenset({"title"})

_SELECT_DOCUMENTS = """
SELECT id, title, notes, created, modified FROM documents
WHERE id IN ({in})
ORDER BY id
"""

_SELECT_DOCUMENT_PAGES = """
SELECT dp.document, p.id, p.rotation, p.render_status
FROM pages AS p
JOIN document_pages AS dp ON dp.page = p.id
WHERE dp.document IN ({in})
ORDER BY dp.document, dp.number
"""

_SELECT_DOCUMENT_TAGS = """
SELECT dt.document, t.name
FROM document_tags AS dt
JOIN tags AS t ON t.id = dt.tag
WHERE dt.document IN ({in})
ORDER BY dt.document, dt.seq
"""

_SELECT_SOURCE_PAGES = """
SELECT p.file, p.number, p.rotation
FROM pages AS p
JOIN document_pages AS dp ON dp.page = p.id
WHERE dp.document = ?
ORDER BY dp.number
"""

_SELECT_EXISTS = "SELECT 1 FROM documents WHERE id = ?"
_SELECT_FILE = "SELECT file FROM documents WHERE id = ?"
_SELECT_PAGES_EXIST = "SELECT id FROM pages WHERE id IN ({in})"
_NEXT_NUMBER = "SELECT COALESCE(MAX(number) + 1, 0) FROM document_pages WHERE document = ?"
_HAS_FILE_PAGES = """
SELECT 1 FROM document_pages AS dp
JOIN pages AS p ON p.id = dp.page
WHERE dp.document = ? AND p.file = ?
LIMIT 1
"""

_BASE_LISTING = """
SELECT d.id, d.title, dp.page
FROM documents AS d
JOIN document_pages AS dp ON dp.document = d.id AND dp.number = 0
"""

_FILTERED_LISTING = (
    _BASE_LISTING
    + """
LEFT JOIN document_tags AS dt ON dt.document = d.id
LEFT JOIN tags AS t ON dt.tag = t.id
GROUP BY d.id, d.title, dp.page
HAVING {condition}
ORDER BY d.id
"""
)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _is_id(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_id(operation: str, what: str, value: object) -> None:
    if not _is_id(value):
        raise PreconditionError(operation, f"{what} must be an integer, got {value!r}")


def _check_ids(operation: str, what: str, values: Iterable[object]) -> list[int]:
    values = list(values)
    for value in values:
        _check_id(operation, what, value)
    return values


def _check_strings(operation: str, what: str, values: Iterable[object]) -> list[str]:
    values = list(values)
    for value in values:
        if not isinstance(value, str):
            raise PreconditionError(operation, f"{what} must be strings, got {value!r}")
    return values


def _require_document(tx: Transaction, document_id: int, operation: str) -> None:
    if tx.query_one(_SELECT_EXISTS, (document_id,)) is None:
        raise DocumentNotFoundError(document_id, operation)


def _group_by_document(rows: Iterable[Any]) -> dict[int, list[dict]]:
    """Group child rows by their ``document`` column, keeping row order."""
    grouped: dict[int, list[dict]] = defaultdict(list)
    for row in rows:
        child = dict(row)
        grouped[child.pop("document")].append(child)
    return grouped


# ------------------------------------------------------------------
# Pages and file links
# ------------------------------------------------------------------


def add_pages(db: Store | Transaction, document_id: int, page_ids: Sequence[int]) -> None:
    """Append pages to a document, continuing its page numbering.

    Pages are appended in the order given; existing pages keep their place.

    Raises:
        PreconditionError: If an id is not an integer or names no page.
        DocumentNotFoundError: If the document does not exist.
    """
    _check_id("add_pages", "document id", document_id)
    page_ids = _check_ids("add_pages", "page ids", page_ids)
    if not page_ids:
        return

    with db.transaction() as tx:
        _require_document(tx, document_id, "add_pages")
        found = {row["id"] for row in tx.query_in(_SELECT_PAGES_EXIST, set(page_ids))}
        missing = sorted(set(page_ids) - found)
        if missing:
            raise PreconditionError("add_pages", f"unknown page ids {missing}")

        start = tx.query_one(_NEXT_NUMBER, (document_id,))[0]
        tx.insert_many(
            "document_pages",
            (
                {"document": document_id, "page": page_id, "number": start + i}
                for i, page_id in enumerate(page_ids)
            ),
        )
        tx.update("documents", {"modified": _now()}, "id = ?", (document_id,))

    logger.info(
        "Document %d: appended %d page(s) at position %d", document_id, len(page_ids), start
    )


def link_file(db: Store | Transaction, document_id: int, file_id: int) -> bool:
    """Point a document at a source file and pull in its pages if ready.

    If the file is already processed its pages are appended in the same
    transaction. Otherwise only the pointer is stored and the processor
    links the pages once the file is done.

    Returns:
        True if pages were linked now, False if linking was deferred.
    """
    _check_id("link_file", "document id", document_id)
    _check_id("link_file", "file id", file_id)

    with db.transaction() as tx:
        status = processing_status(tx, file_id)
        if status is None:
            raise FileNotFoundInStoreError(file_id, "link_file")
        if tx.update("documents", {"file": file_id}, "id = ?", (document_id,)) == 0:
            raise DocumentNotFoundError(document_id, "link_file")
        if status != ProcessingStatus.PROCESSED:
            logger.info(
                "Document %d: linked to file %d (status=%s), pages deferred",
                document_id,
                file_id,
                status.value,
            )
            return False
        add_pages(tx, document_id, file_page_ids(tx, file_id))

    logger.info("Document %d: linked to processed file %d", document_id, file_id)
    return True


def resolve_file_links(db: Store | Transaction, file_id: int) -> list[int]:
    """Append a processed file's pages to every document waiting on it.

    Documents that already hold pages of the file are skipped, so calling
    this twice does not duplicate pages.

    Returns:
        Ids of the documents that received pages.
    """
    linked: list[int] = []
    with db.transaction() as tx:
        if processing_status(tx, file_id) != ProcessingStatus.PROCESSED:
            return linked
        pages = file_page_ids(tx, file_id)
        for document_id in file_documents(tx, file_id):
            if tx.query_one(_HAS_FILE_PAGES, (document_id, file_id)) is not None:
                continue
            add_pages(tx, document_id, pages)
            linked.append(document_id)
    if linked:
        logger.info("File %d: linked pages to document(s) %s", file_id, linked)
    return linked


# ------------------------------------------------------------------
# Create / update
# ------------------------------------------------------------------


def create_document(
    db: Store | Transaction,
    *,
    title: str = "",
    notes: str | None = None,
    tags: Iterable[str] = (),
    page_ids: Sequence[int] | None = None,
    file: int | None = None,
) -> int:
    """Create a document from a list of pages or from a source file.

    Exactly one of *page_ids* and *file* must be given. The document row,
    its tags and its pages are written in one transaction.

    Returns:
        The new document's id.

    Raises:
        PreconditionError: On bad arguments, before anything is written.
    """
    tags = _check_strings("create_document", "tags", tags)
    if not isinstance(title, str):
        raise PreconditionError("create_document", f"title must be a string, got {title!r}")
    if notes is not None and not isinstance(notes, str):
        raise PreconditionError("create_document", f"notes must be a string, got {notes!r}")
    has_pages = bool(page_ids)
    has_file = file is not None
    if has_pages == has_file:
        raise PreconditionError(
            "create_document", "exactly one of page_ids and file must be given"
        )
    if has_pages:
        page_ids = _check_ids("create_document", "page ids", page_ids)
    else:
        _check_id("create_document", "file id", file)

    with db.transaction() as tx:
        now = _now()
        document_id = tx.insert(
            "documents",
            {"title": title, "notes": notes, "created": now, "modified": now},
        )
        if tags:
            add_tags(tx, document_id, tags)
        if has_pages:
            add_pages(tx, document_id, page_ids)
        else:
            link_file(tx, document_id, file)

    logger.info("Created document %d: %r", document_id, title)
    return document_id


def update_document(
    db: Store | Transaction,
    document_id: int,
    props: Mapping[str, Any] | None = None,
    added_tags: Iterable[str] = (),
    removed_tags: Iterable[str] = (),
) -> Document:
    """Change a document's title and tags.

    A tag that is both added and removed ends up removed.

    Returns:
        The updated document.

    Raises:
        PreconditionError: For unknown props or non-string values.
        DocumentNotFoundError: If the document does not exist.
    """
    _check_id("update_document", "document id", document_id)
    props = dict(props or {})
    unknown = set(props) - UPDATABLE_PROPS
    if unknown:
        raise PreconditionError("update_document", f"cannot update {sorted(unknown)}")
    if "title" in props and not isinstance(props["title"], str):
        raise PreconditionError(
            "update_document", f"title must be a string, got {props['title']!r}"
        )
    added_tags = _check_strings("update_document", "added tags", added_tags)
    removed = normalize_tags(_check_strings("update_document", "removed tags", removed_tags))
    added = [tag for tag in added_tags if tag.strip().lower() not in removed]

    with db.transaction() as tx:
        _require_document(tx, document_id, "update_document")
        remove_tags(tx, document_id, removed)
        add_tags(tx, document_id, added)
        tx.update("documents", {**props, "modified": _now()}, "id = ?", (document_id,))
        document = get_document(tx, document_id)

    logger.info(
        "Updated document %d (props=%s, +%d tag(s), -%d tag(s))",
        document_id,
        sorted(props),
        len(added),
        len(removed),
    )
    return document


# ------------------------------------------------------------------
# Reads
# ------------------------------------------------------------------


def get_documents(db: Store | Transaction, ids: Iterable[int]) -> list[Document]:
    """Fetch documents with their ordered pages and tags, ordered by id.

    Rows, pages and tags are read in one transaction, so they describe the
    same state. Unknown ids are left out.
    """
    ids = set(_check_ids("get_documents", "document ids", ids))
    if not ids:
        return []

    with db.transaction(immediate=False) as tx:
        rows = tx.query_in(_SELECT_DOCUMENTS, ids)
        pages = _group_by_document(tx.query_in(_SELECT_DOCUMENT_PAGES, ids))
        tags = _group_by_document(tx.query_in(_SELECT_DOCUMENT_TAGS, ids))

    return [
        Document(
            **dict(row),
            pages=[DocumentPage(**page) for page in pages.get(row["id"], [])],
            tags=[tag["name"] for tag in tags.get(row["id"], [])],
        )
        for row in rows
    ]


def get_document(db: Store | Transaction, document_id: int) -> Document | None:
    """Fetch one document, or None if it does not exist."""
    documents = get_documents(db, [document_id])
    return documents[0] if documents else None


def document_file(db: Store | Transaction, document_id: int) -> int | None:
    """The file a document points at, or None."""
    row = db.query_one(_SELECT_FILE, (document_id,))
    if row is None:
        return None
    return row["file"]


def document_pages(db: Store | Transaction, document_id: int) -> list[SourcePage]:
    """Source file, page number and rotation of each page, in document order."""
    return [SourcePage(**dict(row)) for row in db.query(_SELECT_SOURCE_PAGES, (document_id,))]


def query_documents(
    db: Store | Transaction, query: SearchQuery | str | None = None
) -> list[DocumentSummary]:
    """List documents with their first page, optionally filtered.

    Documents without pages are not listed.
    """
    if isinstance(query, str):
        query = parse_query(query)
    if query is None or query.is_empty():
        rows = db.query(_BASE_LISTING + "ORDER BY d.id")
    else:
        condition, params = compile_query(query)
        rows = db.query(_FILTERED_LISTING.replace("{condition}", condition), params)
    return [DocumentSummary(**dict(row)) for row in rows]
