"""File and page registry.

Uploaded files start out ``unprocessed``. The processor splits them into
pages and flips the status; this module only records files, exposes their
pages and handles page rotation.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from folio.db.store import Store, Transaction
from folio.errors import FileNotFoundInStoreError, PageNotFoundError, PreconditionError
from folio.schemas.files import Page, ProcessingStatus, StoredFile

logger = logging.getLogger(__name__)

FILES_NEW = "files/new"

_SELECT_FILE = "SELECT id, content_type, origin, name, status, created FROM files WHERE id = ?"
_SELECT_STATUS = "SELECT status FROM files WHERE id = ?"
_SELECT_DATA = "SELECT data FROM files WHERE id = ?"
_SELECT_PAGE_IDS = "SELECT id FROM pages WHERE file = ? ORDER BY number"
_SELECT_PAGES = """
SELECT id, file, number, rotation, render_status FROM pages
WHERE file = ?
ORDER BY number
"""
_SELECT_FILE_DOCUMENTS = "SELECT id FROM documents WHERE file = ? ORDER BY id"
_SELECT_BY_STATUS = "SELECT id FROM files WHERE status = ? ORDER BY id"


def store_file(
    db: Store | Transaction,
    *,
    content_type: str | None,
    origin: str | None,
    data: bytes | None,
    name: str | None = None,
) -> int:
    """Store an uploaded file and announce it on ``files/new``.

    Raises:
        PreconditionError: If content_type, origin or data is missing.
    """
    for field, value in (("content_type", content_type), ("origin", origin), ("data", data)):
        if value is None:
            raise PreconditionError("store_file", f"{field} is required")

    file_id = db.insert(
        "files",
        {
            "content_type": content_type,
            "origin": origin,
            "name": name,
            "data": data,
            "status": ProcessingStatus.UNPROCESSED.value,
            "created": datetime.now(UTC).isoformat(),
        },
    )
    db.notify(FILES_NEW, file_id)
    logger.info("Stored file %d (%s, origin=%s, %d bytes)", file_id, name, origin, len(data))
    return file_id


def store_files(
    db: Store | Transaction,
    files: Iterable[Mapping[str, Any]],
    extra: Mapping[str, Any] | None = None,
) -> list[int]:
    """Store a batch of files in one transaction.

    Each file's attributes are laid over *extra* (e.g. a shared origin).
    Either every file is stored or none is.
    """
    extra = dict(extra or {})
    with db.transaction() as tx:
        return [store_file(tx, **{**extra, **file}) for file in files]


def get_file(db: Store | Transaction, file_id: int) -> StoredFile | None:
    row = db.query_one(_SELECT_FILE, (file_id,))
    if row is None:
        return None
    return StoredFile(**dict(row))


def file_data(db: Store | Transaction, file_id: int) -> bytes:
    """Return a file's raw bytes.

    Raises:
        FileNotFoundInStoreError: If the file does not exist.
    """
    row = db.query_one(_SELECT_DATA, (file_id,))
    if row is None:
        raise FileNotFoundInStoreError(file_id, "file_data")
    return bytes(row["data"])


def processing_status(db: Store | Transaction, file_id: int) -> ProcessingStatus | None:
    """Current processing status, or None for an unknown file."""
    row = db.query_one(_SELECT_STATUS, (file_id,))
    if row is None:
        return None
    return ProcessingStatus(row["status"])


def set_processing_status(
    db: Store | Transaction, file_id: int, status: ProcessingStatus
) -> None:
    if db.update("files", {"status": status.value}, "id = ?", (file_id,)) == 0:
        raise FileNotFoundInStoreError(file_id, "set_processing_status")
    logger.debug("File %d: status=%s", file_id, status.value)


def files_with_status(db: Store | Transaction, status: ProcessingStatus) -> list[int]:
    return [row["id"] for row in db.query(_SELECT_BY_STATUS, (status.value,))]


def page_ids(db: Store | Transaction, file_id: int) -> list[int]:
    """Ids of a file's pages in page order."""
    return [row["id"] for row in db.query(_SELECT_PAGE_IDS, (file_id,))]


def file_pages(db: Store | Transaction, file_id: int) -> list[Page]:
    return [Page(**dict(row)) for row in db.query(_SELECT_PAGES, (file_id,))]


def rotate_page(db: Store | Transaction, page_id: int, rotation: int) -> int:
    """Set a page's rotation.

    Any integer multiple of 90 is accepted and stored modulo 360.

    Returns:
        The stored rotation.

    Raises:
        PreconditionError: If rotation is not a multiple of 90.
        PageNotFoundError: If the page does not exist.
    """
    if isinstance(rotation, bool) or not isinstance(rotation, int) or rotation % 90:
        raise PreconditionError(
            "rotate_page", f"rotation must be a multiple of 90, got {rotation!r}"
        )
    rotation %= 360
    if db.update("pages", {"rotation": rotation}, "id = ?", (page_id,)) == 0:
        raise PageNotFoundError(page_id, "rotate_page")
    logger.info("Page %d: rotation=%d", page_id, rotation)
    return rotation


def file_documents(db: Store | Transaction, file_id: int) -> list[int]:
    """Ids of documents whose file pointer is *file_id*."""
    return [row["id"] for row in db.query(_SELECT_FILE_DOCUMENTS, (file_id,))]
