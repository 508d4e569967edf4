"""Tests for the folio CLI entry point."""

from email.message import EmailMessage

import click.testing
import pytest
from pypdf import PdfReader

from folio.cli import cli
from folio.db.store import Store
from folio.registry import set_processing_status, store_file
from folio.schemas.files import ProcessingStatus


@pytest.fixture()
def runner():
    return click.testing.CliRunner()


@pytest.fixture()
def db(tmp_path):
    return str(tmp_path / "cli.db")


@pytest.fixture()
def pdf_file(tmp_path, make_pdf):
    """Write a PDF with the given page widths to disk and return its path."""

    def _write(name: str, *widths: int) -> str:
        path = tmp_path / name
        path.write_bytes(make_pdf(*widths))
        return str(path)

    return _write


def _run(runner, db, *args):
    return runner.invoke(cli, ["--db", db, *args])


# ------------------------------------------------------------------
# folio init / upload / process
# ------------------------------------------------------------------


def test_init_creates_database(runner, db):
    result = _run(runner, db, "init")
    assert result.exit_code == 0
    assert "Database ready" in result.output


def test_upload_creates_document_per_file(runner, db, pdf_file):
    result = _run(runner, db, "upload", pdf_file("a.pdf", 200, 210), pdf_file("b.pdf", 300))
    assert result.exit_code == 0
    assert "a.pdf: file 1, 2 page(s)" in result.output
    assert "Created document(s): 1, 2" in result.output

    shown = _run(runner, db, "show", "1")
    assert shown.exit_code == 0
    assert "Document 1: a.pdf" in shown.output
    assert "Pages:    2" in shown.output
    assert "origin/scanner" in shown.output


def test_upload_without_document_fills_inbox(runner, db, pdf_file):
    result = _run(runner, db, "upload", "--no-document", pdf_file("a.pdf", 200, 210))
    assert result.exit_code == 0
    assert "Created document" not in result.output

    inbox = _run(runner, db, "inbox")
    assert "page 1  (file 1, #0)" in inbox.output
    assert "page 2  (file 1, #1)" in inbox.output


def test_upload_unreadable_pdf_reports_error(runner, db, tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"not a pdf")
    result = _run(runner, db, "upload", str(path))
    assert result.exit_code == 0
    assert "broken.pdf: ERROR" in result.output


def test_process_nothing_pending(runner, db):
    result = _run(runner, db, "process")
    assert result.exit_code == 0
    assert "No files to process." in result.output


def test_process_force_retries_stuck_file(runner, db, make_pdf):
    with Store(db) as store:
        file_id = store_file(
            store, content_type="application/pdf", origin="web", data=make_pdf(200)
        )
        set_processing_status(store, file_id, ProcessingStatus.PROCESSING)

    assert "No files to process." in _run(runner, db, "process").output
    result = _run(runner, db, "process", "--force")
    assert result.exit_code == 0
    assert f"file {file_id}: processed" in result.output


# ------------------------------------------------------------------
# Document workflow
# ------------------------------------------------------------------


def test_compose_rotate_export(runner, db, pdf_file, tmp_path):
    _run(runner, db, "upload", "--no-document", pdf_file("a.pdf", 200, 210))

    created = _run(
        runner, db, "create", "--page", "2", "--page", "1", "--title", "Bill", "--tag", "Invoice"
    )
    assert created.exit_code == 0
    assert "Created document 1" in created.output
    assert "Inbox is empty." in _run(runner, db, "inbox").output

    rotated = _run(runner, db, "rotate", "1", "90")
    assert rotated.exit_code == 0
    assert "Page 1: rotation=90" in rotated.output

    output = tmp_path / "out.pdf"
    exported = _run(runner, db, "export", "1", str(output))
    assert exported.exit_code == 0
    reader = PdfReader(output)
    assert [int(p.mediabox.width) for p in reader.pages] == [210, 200]
    assert [p.rotation for p in reader.pages] == [0, 90]


def test_create_keep_in_inbox(runner, db, pdf_file):
    _run(runner, db, "upload", "--no-document", pdf_file("a.pdf", 200))
    _run(runner, db, "create", "--page", "1", "--keep-in-inbox")
    assert "page 1" in _run(runner, db, "inbox").output


def test_list_and_tag(runner, db, pdf_file):
    _run(runner, db, "upload", "--no-document", pdf_file("a.pdf", 200, 210))
    _run(runner, db, "create", "--page", "1", "--title", "Power bill", "--tag", "invoice")
    _run(runner, db, "create", "--page", "2", "--title", "Letter")

    listed = _run(runner, db, "list", "tag:invoice")
    assert "Power bill" in listed.output
    assert "Letter" not in listed.output

    tagged = _run(
        runner, db, "tag", "1", "--add", "paid", "--remove", "invoice", "--title", "Paid bill"
    )
    assert tagged.exit_code == 0
    assert "tags=['paid']" in tagged.output
    assert "Paid bill" in _run(runner, db, "list", "tag:paid").output

    tags = _run(runner, db, "tags")
    assert "paid" in tags.output
    assert "invoice" in tags.output


def test_list_empty(runner, db):
    assert "No documents." in _run(runner, db, "list").output


# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------


def test_show_unknown_document(runner, db):
    result = _run(runner, db, "show", "99")
    assert result.exit_code == 1
    assert "not found" in result.output


def test_rotate_rejects_odd_angle(runner, db, pdf_file):
    _run(runner, db, "upload", "--no-document", pdf_file("a.pdf", 200))
    result = _run(runner, db, "rotate", "1", "45")
    assert result.exit_code == 1
    assert "multiple of 90" in result.output


def test_create_unknown_page(runner, db):
    result = _run(runner, db, "create", "--page", "999")
    assert result.exit_code == 1
    assert "unknown page" in result.output


def test_export_unknown_document(runner, db, tmp_path):
    result = _run(runner, db, "export", "5", str(tmp_path / "x.pdf"))
    assert result.exit_code == 1
    assert not (tmp_path / "x.pdf").exists()


# ------------------------------------------------------------------
# folio mail
# ------------------------------------------------------------------


def test_mail_ingests_attachments(runner, db, tmp_path, make_pdf):
    msg = EmailMessage()
    msg["Subject"] = "Statement"
    msg["From"] = "bank@example.com"
    msg["To"] = "me@example.com"
    msg.set_content("Attached.")
    msg.add_attachment(
        make_pdf(200, 210), maintype="application", subtype="pdf", filename="s.pdf"
    )
    eml = tmp_path / "statement.eml"
    eml.write_bytes(msg.as_bytes())

    result = _run(runner, db, "mail", str(eml))
    assert result.exit_code == 0
    assert "Created document(s): 1" in result.output
    assert "Pages:    2" in _run(runner, db, "show", "1").output


# ------------------------------------------------------------------
# folio --help
# ------------------------------------------------------------------


def test_help(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for command in ("upload", "process", "create", "show", "list", "export", "inbox", "mail"):
        assert command in result.output
