"""Reconstitute a document as a single PDF.

Fast path: a document that is exactly its linked file's pages, in file
order and unrotated, is served as the file's stored bytes.

General path: split each source file once into per-page files, rotate the
pages that need it, and merge everything in document order. All temporary
files are deleted before returning, whether or not the merge succeeded.
"""

import logging
from collections import defaultdict
from pathlib import Path

from folio import pdf
from folio.db.store import Store, Transaction
from folio.documents import document_file, document_pages
from folio.errors import CodecError, DocumentNotFoundError, PreconditionError
from folio.registry import file_data, page_ids
from folio.schemas.documents import SourcePage

logger = logging.getLogger(__name__)

_SELECT_EXISTS = "SELECT 1 FROM documents WHERE id = ?"
_SELECT_FILE_DATA = "SELECT id, data FROM files WHERE id IN ({in})"


def _is_unedited(file_id: int, file_page_count: int, pages: list[SourcePage]) -> bool:
    """True if *pages* are exactly the file's pages, in order, unrotated."""
    if len(pages) != file_page_count:
        return False
    return all(
        page.file == file_id and page.number == i and page.rotation == 0
        for i, page in enumerate(pages)
    )


def _numbers_by_file(pages: list[SourcePage]) -> dict[int, list[int]]:
    numbers: dict[int, list[int]] = defaultdict(list)
    for page in pages:
        if page.number not in numbers[page.file]:
            numbers[page.file].append(page.number)
    return numbers


def render_document_pdf(
    db: Store | Transaction,
    document_id: int,
    *,
    tmp_dir: str | Path | None = None,
) -> bytes:
    """Build the PDF for a document.

    Args:
        db: Store or open transaction.
        document_id: The document to render.
        tmp_dir: Directory for per-page temporary files (system default if None).

    Returns:
        The PDF bytes.

    Raises:
        DocumentNotFoundError: If the document does not exist.
        CodecError: If splitting, rotating or merging fails.
    """
    if isinstance(document_id, bool) or not isinstance(document_id, int):
        raise PreconditionError(
            "render_document_pdf", f"document id must be an integer, got {document_id!r}"
        )

    with db.transaction(immediate=False) as tx:
        if tx.query_one(_SELECT_EXISTS, (document_id,)) is None:
            raise DocumentNotFoundError(document_id, "render_document_pdf")
        pages = document_pages(tx, document_id)
        linked_file = document_file(tx, document_id)
        if linked_file is not None and _is_unedited(
            linked_file, len(page_ids(tx, linked_file)), pages
        ):
            logger.debug("Document %d: serving file %d verbatim", document_id, linked_file)
            return file_data(tx, linked_file)

        numbers = _numbers_by_file(pages)
        sources = {
            row["id"]: bytes(row["data"])
            for row in tx.query_in(_SELECT_FILE_DATA, list(numbers))
        }

    logger.debug(
        "Document %d: assembling %d page(s) from %d file(s)",
        document_id,
        len(pages),
        len(sources),
    )

    temp_files: list[Path] = []
    try:
        split: dict[int, dict[int, Path]] = {}
        for file_id, file_numbers in numbers.items():
            try:
                split[file_id] = pdf.split_pdf(sources[file_id], file_numbers, tmp_dir=tmp_dir)
            except CodecError as exc:
                raise CodecError(f"Document {document_id}, file {file_id}: {exc}") from exc
            temp_files.extend(split[file_id].values())

        ordered: list[Path] = []
        for page in pages:
            source = split[page.file][page.number]
            rotated = pdf.rotate_pdf_file(source, page.rotation, tmp_dir=tmp_dir)
            if rotated != source:
                temp_files.append(rotated)
            ordered.append(rotated)

        return pdf.merge_pages(ordered)
    finally:
        for path in temp_files:
            path.unlink(missing_ok=True)
