"""
Tests for the SQLite-backed novel store, including summary and reading-state
preservation across re-imports.
"""

import shutil
import sqlite3
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from core.database import Database
from core.errors import ChapterNotFound, StorageUnavailable
from reading.models import BookRecord, ChapterRecord
from reading.store import NovelStore, merge_book, merge_chapter


def make_book(**overrides):
    fields = dict(
        id="test-novel",
        title="Test Novel",
        chapter_count=3,
        cover_ref="https://example.com/cover.jpg",
        author_name="Test Author",
        source_book_number=1,
    )
    fields.update(overrides)
    return BookRecord(**fields)


def make_chapters(count=3, body="Content"):
    return [
        ChapterRecord(
            self_id=f"chuong-{i}",
            title=f"Chương {i}",
            body=f"{body} {i}",
            declared_next_id=f"chuong-{i + 1}" if i < count else None,
            declared_prev_id=f"chuong-{i - 1}" if i > 1 else None,
        )
        for i in range(1, count + 1)
    ]


class StoreTestCase(unittest.TestCase):
    """Base case: a fresh database file per test."""

    def setUp(self):
        self.tmp_dir = Path(tempfile.mkdtemp())
        self.db = Database(self.tmp_dir / "test.db", busy_timeout_ms=1000)
        self.assertTrue(self.db.initialize())
        self.store = NovelStore(self.db)

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)


class TestMergeRules(unittest.TestCase):

    def test_chapter_without_existing(self):
        incoming = ChapterRecord("c1", summary=None)
        self.assertIs(merge_chapter(None, incoming), incoming)

    def test_chapter_keeps_existing_summary(self):
        existing = ChapterRecord("c1", body="old", summary="kept")
        incoming = ChapterRecord("c1", body="new")
        merged = merge_chapter(existing, incoming)
        self.assertEqual(merged.body, "new")
        self.assertEqual(merged.summary, "kept")
        self.assertIsNone(incoming.summary)

    def test_chapter_existing_summary_beats_incoming(self):
        existing = ChapterRecord("c1", summary="local")
        incoming = ChapterRecord("c1", summary="from payload")
        self.assertEqual(merge_chapter(existing, incoming).summary, "local")

    def test_chapter_empty_existing_summary_ignored(self):
        existing = ChapterRecord("c1", summary="")
        incoming = ChapterRecord("c1", summary="from payload")
        self.assertEqual(merge_chapter(existing, incoming).summary, "from payload")

    def test_book_keeps_reading_state(self):
        existing = make_book(last_read_at="2024-01-01T00:00:00", completed_at="2024-01-15T10:30:00")
        incoming = make_book(title="Updated")
        merged = merge_book(existing, incoming)
        self.assertEqual(merged.title, "Updated")
        self.assertEqual(merged.last_read_at, "2024-01-01T00:00:00")
        self.assertEqual(merged.completed_at, "2024-01-15T10:30:00")

    def test_book_keeps_import_stamp(self):
        existing = make_book(imported_at="2024-01-01T00:00:00")
        self.assertEqual(merge_book(existing, make_book()).imported_at, "2024-01-01T00:00:00")

    def test_book_incoming_state_used_when_none_stored(self):
        merged = merge_book(make_book(), make_book(completed_at="2024-02-02T00:00:00"))
        self.assertEqual(merged.completed_at, "2024-02-02T00:00:00")


class TestBooks(StoreTestCase):

    def test_save_and_get(self):
        self.store.save_book(make_book(), make_chapters())
        book = self.store.get_book("test-novel")
        self.assertIsNotNone(book)
        self.assertEqual(book.title, "Test Novel")
        self.assertEqual(book.author_name, "Test Author")
        self.assertEqual(book.source_book_number, 1)
        self.assertIsNone(book.last_read_at)
        self.assertIsNone(book.completed_at)

    def test_get_missing_book(self):
        self.assertIsNone(self.store.get_book("non-existent"))

    def test_get_all_books(self):
        self.assertEqual(self.store.get_all_books(), [])
        self.store.save_book(make_book(id="b-novel"), [])
        self.store.save_book(make_book(id="a-novel"), [])
        self.assertEqual([b.id for b in self.store.get_all_books()], ["a-novel", "b-novel"])

    def test_resave_updates_metadata(self):
        self.store.save_book(make_book(), make_chapters())
        self.store.save_book(make_book(title="Updated Novel"), make_chapters())
        self.assertEqual(self.store.get_book("test-novel").title, "Updated Novel")
        self.assertEqual(len(self.store.get_all_books()), 1)

    def test_completion_survives_reimport(self):
        self.store.save_book(make_book(), make_chapters())
        self.store.mark_completed("test-novel")
        completed_at = self.store.get_book("test-novel").completed_at
        self.assertRegex(completed_at, r"^\d{4}-\d{2}-\d{2}T")

        self.store.save_book(make_book(title="Fresh Fetch"), make_chapters())
        book = self.store.get_book("test-novel")
        self.assertEqual(book.completed_at, completed_at)
        self.assertEqual(book.title, "Fresh Fetch")

    def test_import_stamp_kept_on_reimport(self):
        first = self.store.save_book(make_book(), make_chapters())
        self.assertIsNotNone(first.imported_at)
        self.assertEqual(self.store.get_book("test-novel").imported_at, first.imported_at)

        second = self.store.save_book(make_book(title="Refetched"), make_chapters())
        self.assertEqual(second.imported_at, first.imported_at)
        self.assertEqual(self.store.get_book("test-novel").imported_at, first.imported_at)

    def test_last_read_survives_reimport(self):
        self.store.save_book(make_book(), make_chapters())
        self.store.update_last_read("test-novel")
        last_read = self.store.get_book("test-novel").last_read_at
        self.assertIsNotNone(last_read)

        self.store.save_book(make_book(), make_chapters())
        self.assertEqual(self.store.get_book("test-novel").last_read_at, last_read)

    def test_unmark_completed(self):
        self.store.save_book(make_book(), [])
        self.store.mark_completed("test-novel")
        self.store.unmark_completed("test-novel")
        self.assertIsNone(self.store.get_book("test-novel").completed_at)

    def test_state_updates_on_missing_book_are_noops(self):
        self.store.mark_completed("non-existent")
        self.store.unmark_completed("non-existent")
        self.store.update_last_read("non-existent")
        self.assertIsNone(self.store.get_book("non-existent"))


class TestChapters(StoreTestCase):

    def test_round_trip_order(self):
        chapters = make_chapters(5)
        ordered = [chapters[2], chapters[0], chapters[4], chapters[1], chapters[3]]
        self.store.save_book(make_book(), ordered)
        listed = self.store.list_chapters_for_book("test-novel")
        self.assertEqual([c.self_id for c in listed], [c.self_id for c in ordered])

    def test_resave_applies_new_order(self):
        chapters = make_chapters(3)
        self.store.save_book(make_book(), chapters)
        self.store.save_book(make_book(), list(reversed(chapters)))
        listed = self.store.list_chapters_for_book("test-novel")
        self.assertEqual([c.self_id for c in listed], ["chuong-3", "chuong-2", "chuong-1"])

    def test_list_empty(self):
        self.store.save_book(make_book(), [])
        self.assertEqual(self.store.list_chapters_for_book("test-novel"), [])
        self.assertEqual(self.store.list_chapters_for_book("non-existent"), [])

    def test_get_chapter(self):
        self.store.save_book(make_book(), make_chapters())
        chapter = self.store.get_chapter("test-novel", "chuong-2")
        self.assertEqual(chapter.title, "Chương 2")
        self.assertEqual(chapter.body, "Content 2")
        self.assertEqual(chapter.declared_next_id, "chuong-3")
        self.assertEqual(chapter.declared_prev_id, "chuong-1")

    def test_get_missing_chapter(self):
        self.store.save_book(make_book(), make_chapters())
        self.assertIsNone(self.store.get_chapter("test-novel", "chuong-99"))
        self.assertIsNone(self.store.get_chapter("non-existent", "chuong-1"))

    def test_chapters_scoped_by_book(self):
        self.store.save_book(make_book(id="one"), make_chapters(2, body="One"))
        self.store.save_book(make_book(id="two"), make_chapters(2, body="Two"))
        self.assertEqual(self.store.get_chapter("one", "chuong-1").body, "One 1")
        self.assertEqual(self.store.get_chapter("two", "chuong-1").body, "Two 1")

    def test_save_summary(self):
        self.store.save_book(make_book(), make_chapters())
        self.store.save_chapter_summary("test-novel", "chuong-1", "AI-generated summary")
        self.assertEqual(
            self.store.get_chapter("test-novel", "chuong-1").summary,
            "AI-generated summary"
        )

    def test_save_summary_overwrites(self):
        self.store.save_book(make_book(), make_chapters())
        self.store.save_chapter_summary("test-novel", "chuong-1", "First")
        self.store.save_chapter_summary("test-novel", "chuong-1", "Second")
        self.assertEqual(self.store.get_chapter("test-novel", "chuong-1").summary, "Second")

    def test_save_summary_missing_chapter(self):
        self.store.save_book(make_book(), make_chapters())
        with self.assertRaises(ChapterNotFound) as ctx:
            self.store.save_chapter_summary("test-novel", "chuong-99", "text")
        self.assertEqual(ctx.exception.chapter_id, "chuong-99")
        self.assertEqual(ctx.exception.book_id, "test-novel")

    def test_summary_survives_reimport(self):
        self.store.save_book(make_book(), make_chapters())
        self.store.save_chapter_summary("test-novel", "chuong-2", "Existing summary")

        self.store.save_book(make_book(), make_chapters(body="Refetched"))

        chapter = self.store.get_chapter("test-novel", "chuong-2")
        self.assertEqual(chapter.summary, "Existing summary")
        self.assertEqual(chapter.body, "Refetched 2")
        self.assertIsNone(self.store.get_chapter("test-novel", "chuong-1").summary)

    def test_chapters_dropped_from_reimport_are_kept_last(self):
        self.store.save_book(make_book(), make_chapters(4))
        self.store.save_chapter_summary("test-novel", "chuong-2", "keep me")

        fresh = make_chapters(4)
        self.store.save_book(make_book(), [fresh[0], fresh[2], fresh[3]])

        listed = self.store.list_chapters_for_book("test-novel")
        self.assertEqual(
            [c.self_id for c in listed],
            ["chuong-1", "chuong-3", "chuong-4", "chuong-2"]
        )
        self.assertEqual(listed[-1].summary, "keep me")

    def test_duplicate_and_unkeyed_chapters_skipped(self):
        chapters = make_chapters(2)
        duplicate = ChapterRecord("chuong-1", title="Duplicate")
        unkeyed = ChapterRecord("", title="No slug")
        self.store.save_book(make_book(), [chapters[0], duplicate, unkeyed, chapters[1]])

        listed = self.store.list_chapters_for_book("test-novel")
        self.assertEqual([c.self_id for c in listed], ["chuong-1", "chuong-2"])
        self.assertEqual(listed[0].title, "Chương 1")


class TestCurrentPosition(StoreTestCase):

    def test_set_and_get(self):
        self.store.save_book(make_book(), make_chapters())
        self.store.set_current_position("test-novel", "chuong-2", "Chương 2")
        position = self.store.get_current_position("test-novel")
        self.assertEqual(position.chapter_id, "chuong-2")
        self.assertEqual(position.chapter_title, "Chương 2")
        self.assertEqual(position.display_title, "Chương 2")
        self.assertIsNotNone(position.updated_at)

    def test_missing(self):
        self.assertIsNone(self.store.get_current_position("test-novel"))

    def test_overwrite(self):
        self.store.set_current_position("test-novel", "chuong-1", "Chương 1")
        self.store.set_current_position("test-novel", "chuong-3")
        position = self.store.get_current_position("test-novel")
        self.assertEqual(position.chapter_id, "chuong-3")
        self.assertIsNone(position.chapter_title)
        self.assertEqual(position.display_title, "chuong-3")

    def test_delete(self):
        self.store.set_current_position("test-novel", "chuong-1")
        self.store.delete_current_position("test-novel")
        self.assertIsNone(self.store.get_current_position("test-novel"))
        # No-op the second time
        self.store.delete_current_position("test-novel")


class TestRemoveBook(StoreTestCase):

    def test_removes_everything(self):
        self.store.save_book(make_book(), make_chapters())
        self.store.save_chapter_summary("test-novel", "chuong-1", "summary")
        self.store.set_current_position("test-novel", "chuong-1")

        self.assertTrue(self.store.remove_book("test-novel"))

        self.assertIsNone(self.store.get_book("test-novel"))
        self.assertEqual(self.store.list_chapters_for_book("test-novel"), [])
        self.assertIsNone(self.store.get_chapter("test-novel", "chuong-1"))
        self.assertIsNone(self.store.get_current_position("test-novel"))

    def test_leaves_other_books(self):
        self.store.save_book(make_book(id="keep"), make_chapters())
        self.store.save_book(make_book(id="drop"), make_chapters())
        self.store.set_current_position("keep", "chuong-1")

        self.store.remove_book("drop")

        self.assertIsNotNone(self.store.get_book("keep"))
        self.assertEqual(len(self.store.list_chapters_for_book("keep")), 3)
        self.assertIsNotNone(self.store.get_current_position("keep"))

    def test_missing_book_is_noop(self):
        self.assertFalse(self.store.remove_book("non-existent"))

    def test_reimport_after_remove_starts_clean(self):
        self.store.save_book(make_book(), make_chapters())
        self.store.save_chapter_summary("test-novel", "chuong-1", "old")
        self.store.mark_completed("test-novel")
        self.store.remove_book("test-novel")

        self.store.save_book(make_book(), make_chapters())
        self.assertIsNone(self.store.get_chapter("test-novel", "chuong-1").summary)
        self.assertIsNone(self.store.get_book("test-novel").completed_at)


class TestAtomicity(StoreTestCase):

    def test_failed_save_rolls_back(self):
        self.store.save_book(make_book(), make_chapters())

        original_write = NovelStore._write_chapter
        calls = []

        def failing_write(conn, book_id, chapter, sort_order, now):
            calls.append(chapter.self_id)
            if len(calls) == 2:
                raise sqlite3.OperationalError("disk I/O error")
            original_write(conn, book_id, chapter, sort_order, now)

        with patch.object(NovelStore, "_write_chapter", staticmethod(failing_write)):
            with self.assertRaises(StorageUnavailable):
                self.store.save_book(make_book(title="Half Written"), make_chapters(body="New"))

        self.assertEqual(self.store.get_book("test-novel").title, "Test Novel")
        self.assertEqual(self.store.get_chapter("test-novel", "chuong-1").body, "Content 1")

    def test_engine_error_surfaces_as_storage_unavailable(self):
        broken = NovelStore(Database(self.tmp_dir / "missing-dir" / "x" / "none.db"))
        with self.assertRaises(StorageUnavailable):
            broken.get_book("test-novel")


class TestStats(StoreTestCase):

    def test_counts(self):
        self.store.save_book(make_book(), make_chapters())
        self.store.save_chapter_summary("test-novel", "chuong-1", "s")
        self.store.set_current_position("test-novel", "chuong-1")
        self.store.mark_completed("test-novel")

        stats = self.store.get_stats()
        self.assertEqual(stats["total_novels"], 1)
        self.assertEqual(stats["completed_novels"], 1)
        self.assertEqual(stats["total_chapters"], 3)
        self.assertEqual(stats["summarized_chapters"], 1)
        self.assertEqual(stats["novels_in_progress"], 1)


if __name__ == '__main__':
    unittest.main()
