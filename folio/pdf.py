"""PDF primitives built on pypdf: count, split, rotate and merge.

Split and rotate write temporary single-page PDFs. Callers own those files
and must delete them.
"""

import logging
import os
import tempfile
from collections.abc import Iterable, Sequence
from io import BytesIO
from pathlib import Path

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from folio.errors import CodecError

logger = logging.getLogger(__name__)

TEMP_PREFIX = "folio-"
TEMP_SUFFIX = ".pdf"


def _temp_path(tmp_dir: str | Path | None) -> Path:
    fd, name = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=tmp_dir)
    os.close(fd)
    return Path(name)


def _write(writer: PdfWriter, tmp_dir: str | Path | None) -> Path:
    path = _temp_path(tmp_dir)
    try:
        with path.open("wb") as f:
            writer.write(f)
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    return path


def _reader(data: bytes) -> PdfReader:
    try:
        return PdfReader(BytesIO(data))
    except (PyPdfError, ValueError) as exc:
        raise CodecError(f"Cannot read PDF: {exc}") from exc


def count_pages(data: bytes) -> int:
    """Number of pages in a PDF."""
    return len(_reader(data).pages)


def split_pdf(
    data: bytes,
    page_numbers: Iterable[int],
    *,
    tmp_dir: str | Path | None = None,
) -> dict[int, Path]:
    """Write each requested page of a PDF to its own temporary file.

    Page numbers are 0-based; each distinct number is written once.

    Returns:
        Mapping of page number to temporary file.

    Raises:
        CodecError: If the PDF cannot be read or a page number is out of range.
    """
    reader = _reader(data)
    files: dict[int, Path] = {}
    try:
        for number in dict.fromkeys(page_numbers):
            if not 0 <= number < len(reader.pages):
                raise CodecError(
                    f"Page {number} out of range (document has {len(reader.pages)} pages)"
                )
            writer = PdfWriter()
            writer.add_page(reader.pages[number])
            files[number] = _write(writer, tmp_dir)
    except BaseException:
        for path in files.values():
            path.unlink(missing_ok=True)
        raise
    logger.debug("Split %d page(s) into temporary files", len(files))
    return files


def rotate_pdf_file(
    path: Path, degrees: int, *, tmp_dir: str | Path | None = None
) -> Path:
    """Rotate every page of a PDF file clockwise by *degrees*.

    Returns *path* itself when no rotation is needed, otherwise a new
    temporary file.
    """
    if degrees % 90:
        raise CodecError(f"Rotation must be a multiple of 90, got {degrees}")
    if degrees % 360 == 0:
        return path
    try:
        reader = PdfReader(path)
        writer = PdfWriter()
        for page in reader.pages:
            writer.add_page(page).rotate(degrees % 360)
    except (PyPdfError, ValueError, OSError) as exc:
        raise CodecError(f"Cannot rotate {path.name}: {exc}") from exc
    return _write(writer, tmp_dir)


def merge_pages(paths: Sequence[Path]) -> bytes:
    """Concatenate PDF files in order and return the merged PDF."""
    writer = PdfWriter()
    try:
        for path in paths:
            writer.append(str(path))
        out = BytesIO()
        writer.write(out)
    except (PyPdfError, ValueError, OSError) as exc:
        raise CodecError(f"Cannot merge {len(paths)} page file(s): {exc}") from exc
    return out.getvalue()
