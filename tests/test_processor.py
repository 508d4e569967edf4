"""Tests for the file processor."""

import pytest

from folio.documents import create_document, get_document
from folio.errors import CodecError, FileNotFoundInStoreError
from folio.inbox import list_inbox
from folio.processor import enable_auto_processing, process_file, process_pending
from folio.registry import (
    file_pages,
    page_ids,
    processing_status,
    set_processing_status,
    store_file,
)
from folio.schemas.files import ProcessingStatus


def _store(store, data: bytes) -> int:
    return store_file(store, content_type="application/pdf", origin="web", name="x.pdf", data=data)


class TestProcessFile:
    def test_creates_pages_in_order(self, store, make_pdf):
        file_id = _store(store, make_pdf(200, 210, 220))
        created = process_file(store, file_id)
        assert created == page_ids(store, file_id)
        assert [p.number for p in file_pages(store, file_id)] == [0, 1, 2]
        assert processing_status(store, file_id) == ProcessingStatus.PROCESSED

    def test_unclaimed_pages_go_to_inbox(self, store, make_pdf):
        file_id = _store(store, make_pdf(200, 210))
        created = process_file(store, file_id)
        assert [p.id for p in list_inbox(store)] == created

    def test_resolves_deferred_document_link(self, store, make_pdf):
        file_id = _store(store, make_pdf(200, 210))
        document_id = create_document(store, title="Scan", file=file_id)
        created = process_file(store, file_id)
        assert [p.id for p in get_document(store, document_id).pages] == created
        assert list_inbox(store) == []

    def test_already_processed_is_skipped(self, store, add_file):
        file_id, pages = add_file(200)
        assert process_file(store, file_id) == []
        assert page_ids(store, file_id) == pages

    def test_invalid_pdf_marks_error(self, store):
        file_id = _store(store, b"not a pdf at all")
        with pytest.raises(CodecError):
            process_file(store, file_id)
        assert processing_status(store, file_id) == ProcessingStatus.ERROR
        assert page_ids(store, file_id) == []

    def test_error_state_can_be_retried(self, store, make_pdf):
        file_id = _store(store, b"broken")
        with pytest.raises(CodecError):
            process_file(store, file_id)
        store.update("files", {"data": make_pdf(200)}, "id = ?", (file_id,))
        assert len(process_file(store, file_id)) == 1
        assert processing_status(store, file_id) == ProcessingStatus.PROCESSED

    def test_unknown_file(self, store):
        with pytest.raises(FileNotFoundInStoreError):
            process_file(store, 404)

    def test_stuck_file_needs_force(self, store, make_pdf):
        file_id = _store(store, make_pdf(200, 210))
        set_processing_status(store, file_id, ProcessingStatus.PROCESSING)
        assert process_file(store, file_id) == []
        assert len(process_file(store, file_id, force=True)) == 2
        assert processing_status(store, file_id) == ProcessingStatus.PROCESSED


class TestProcessPending:
    def test_processes_all_and_isolates_failures(self, store, make_pdf):
        good = _store(store, make_pdf(200))
        bad = _store(store, b"garbage")
        results = process_pending(store)
        assert results == {good: ProcessingStatus.PROCESSED, bad: ProcessingStatus.ERROR}

    def test_force_picks_up_stuck_files(self, store, make_pdf):
        stuck = _store(store, make_pdf(200))
        set_processing_status(store, stuck, ProcessingStatus.PROCESSING)
        assert process_pending(store) == {}
        assert process_pending(store, force=True) == {stuck: ProcessingStatus.PROCESSED}
        assert process_pending(store, force=True) == {}

    def test_nothing_pending(self, store, add_file):
        add_file(200)
        assert process_pending(store) == {}


class TestAutoProcessing:
    def test_processes_on_upload_commit(self, store, make_pdf):
        enable_auto_processing(store)
        file_id = _store(store, make_pdf(200, 210))
        assert processing_status(store, file_id) == ProcessingStatus.PROCESSED
        assert len(page_ids(store, file_id)) == 2

    def test_upload_in_transaction_processed_after_commit(self, store, make_pdf):
        enable_auto_processing(store)
        with store.transaction() as tx:
            file_id = _store(tx, make_pdf(200))
            document_id = create_document(tx, file=file_id)
            assert processing_status(tx, file_id) == ProcessingStatus.UNPROCESSED
        assert len(get_document(store, document_id).pages) == 1

    def test_failed_upload_is_not_processed(self, store, make_pdf):
        enable_auto_processing(store)
        with pytest.raises(RuntimeError):
            with store.transaction() as tx:
                _store(tx, make_pdf(200))
                raise RuntimeError("abort upload")
        assert store.query_one("SELECT COUNT(*) FROM pages")[0] == 0
