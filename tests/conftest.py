"""Shared fixtures for folio tests."""

from io import BytesIO

import pytest
from pypdf import PdfWriter

from folio.db.store import Store
from folio.processor import process_file
from folio.registry import page_ids, store_file


@pytest.fixture(autouse=True)
def _no_env_file(monkeypatch, tmp_path):
    """Ensure tests never pick up a developer's folio.env."""
    monkeypatch.setenv("FOLIO_ENV_FILE", str(tmp_path / "absent.env"))


@pytest.fixture()
def store(tmp_path):
    """A Store backed by a temporary database file."""
    with Store(tmp_path / "folio.db") as s:
        yield s


@pytest.fixture()
def scratch(tmp_path):
    """Empty directory for temporary PDF files, separate from the database."""
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture()
def make_pdf():
    """Build a PDF with one blank page per width (widths identify pages)."""

    def _make(*widths: int) -> bytes:
        writer = PdfWriter()
        for width in widths:
            writer.add_blank_page(width=width, height=300)
        out = BytesIO()
        writer.write(out)
        return out.getvalue()

    return _make


@pytest.fixture()
def add_file(store, make_pdf):
    """Store a PDF and process it. Returns (file_id, page_ids)."""

    def _add(*widths: int, origin: str = "web", name: str = "scan.pdf") -> tuple[int, list[int]]:
        file_id = store_file(
            store,
            content_type="application/pdf",
            origin=origin,
            name=name,
            data=make_pdf(*widths),
        )
        process_file(store, file_id)
        return file_id, page_ids(store, file_id)

    return _add
