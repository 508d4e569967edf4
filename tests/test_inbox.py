"""Tests for the inbox of unfiled pages."""

from folio.documents import create_document
from folio.inbox import add_to_inbox, list_inbox, remove_from_inbox


class TestListInbox:
    def test_processed_pages_land_in_inbox(self, store, add_file):
        file_id, pages = add_file(200, 210)
        listed = list_inbox(store)
        assert [p.id for p in listed] == pages
        assert [(p.file, p.number) for p in listed] == [(file_id, 0), (file_id, 1)]

    def test_ordered_by_file_then_number(self, store, add_file):
        _, first = add_file(200, 210)
        _, second = add_file(300)
        store.delete("inbox", "1 = 1")
        add_to_inbox(store, [second[0], first[1], first[0]])
        assert [p.id for p in list_inbox(store)] == [first[0], first[1], second[0]]

    def test_empty(self, store):
        assert list_inbox(store) == []


class TestRemoveFromInbox:
    def test_removes_only_given_pages(self, store, add_file):
        _, pages = add_file(200, 210, 220)
        assert remove_from_inbox(store, [pages[0], pages[2]]) == 2
        assert [p.id for p in list_inbox(store)] == [pages[1]]

    def test_pages_not_in_inbox_ignored(self, store, add_file):
        _, pages = add_file(200)
        remove_from_inbox(store, pages)
        assert remove_from_inbox(store, pages) == 0

    def test_empty_is_noop(self, store, add_file):
        add_file(200)
        assert remove_from_inbox(store, []) == 0
        assert len(list_inbox(store)) == 1

    def test_filing_into_document_does_not_remove(self, store, add_file):
        _, pages = add_file(200)
        create_document(store, page_ids=pages)
        assert [p.id for p in list_inbox(store)] == pages

    def test_joins_open_transaction(self, store, add_file):
        _, pages = add_file(200, 210)
        with store.transaction() as tx:
            create_document(tx, page_ids=pages)
            remove_from_inbox(tx, pages)
        assert list_inbox(store) == []
