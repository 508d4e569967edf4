"""File processor: turn uploaded PDFs into pages and resolve deferred links.

Processing a file counts its pages, records one Page per page, marks the
file processed and appends the pages to every document already pointing
at the file. Pages that no document claims go to the inbox.
"""

import logging

from folio.db.store import Store
from folio.documents import resolve_file_links
from folio.errors import FileNotFoundInStoreError
from folio.inbox import add_to_inbox
from folio.pdf import count_pages
from folio.registry import (
    FILES_NEW,
    file_data,
    file_documents,
    files_with_status,
    processing_status,
    set_processing_status,
)
from folio.schemas.files import ProcessingStatus

logger = logging.getLogger(__name__)

_PROCESSABLE = (ProcessingStatus.UNPROCESSED, ProcessingStatus.ERROR)


def process_file(store: Store, file_id: int, *, force: bool = False) -> list[int]:
    """Split a stored file into pages.

    Files that are already processed or being processed are left alone.
    On failure the file is marked ``error`` and the exception re-raised.

    A crash between the two transactions below leaves the file in
    ``processing`` with no pages. Pass *force* to process such a file again.

    Returns:
        Ids of the pages created (empty if the file was skipped).
    """
    with store.transaction() as tx:
        status = processing_status(tx, file_id)
        if status is None:
            raise FileNotFoundInStoreError(file_id, "process_file")
        if status not in _PROCESSABLE and not (force and status == ProcessingStatus.PROCESSING):
            logger.info("File %d: already %s, skipping", file_id, status.value)
            return []
        set_processing_status(tx, file_id, ProcessingStatus.PROCESSING)
        data = file_data(tx, file_id)

    try:
        count = count_pages(data)
        with store.transaction() as tx:
            page_ids = tx.insert_many(
                "pages", ({"file": file_id, "number": number} for number in range(count))
            )
            set_processing_status(tx, file_id, ProcessingStatus.PROCESSED)
            linked = resolve_file_links(tx, file_id)
            if not linked and not file_documents(tx, file_id):
                add_to_inbox(tx, page_ids)
    except Exception:
        logger.exception("File %d: processing failed", file_id)
        set_processing_status(store, file_id, ProcessingStatus.ERROR)
        raise

    logger.info("File %d: processed %d page(s)", file_id, count)
    return page_ids


def process_pending(store: Store, *, force: bool = False) -> dict[int, ProcessingStatus]:
    """Process every unprocessed file.

    A failing file is marked ``error`` and does not stop the others. With
    *force*, files left in ``processing`` are picked up as well.

    Returns:
        Final status per file id.
    """
    results: dict[int, ProcessingStatus] = {}
    file_ids = files_with_status(store, ProcessingStatus.UNPROCESSED)
    if force:
        file_ids += files_with_status(store, ProcessingStatus.PROCESSING)
    for file_id in file_ids:
        try:
            process_file(store, file_id, force=force)
        except Exception:
            logger.warning("File %d left in error state", file_id)
        results[file_id] = processing_status(store, file_id)
    return results


def enable_auto_processing(store: Store) -> None:
    """Process files as soon as their upload commits."""
    store.listen(FILES_NEW, lambda file_id: process_file(store, file_id))
