"""
Novel Shelf - Novel Store
Durable storage for books, chapters, and reading positions.

The one invariant this layer owns: re-importing a book never erases state
that was computed locally. Chapter summaries and the book's last-read and
completion timestamps are carried over from the stored copy by the merge
functions below, applied to every incoming record before it is written.
"""

import sqlite3
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from concurrency.db_retry import db_retry
from core.database import Database, get_database
from core.errors import ChapterNotFound
from core.logger import log_info
from reading.models import BookRecord, ChapterRecord, CurrentPosition


# =============================================================================
# MERGE RULES
# =============================================================================

def merge_chapter(existing: Optional[ChapterRecord], incoming: ChapterRecord) -> ChapterRecord:
    """Incoming content wins, except a stored non-empty summary is kept."""
    if existing is None or not existing.summary:
        return incoming
    return replace(incoming, summary=existing.summary)


def merge_book(existing: Optional[BookRecord], incoming: BookRecord) -> BookRecord:
    """Incoming metadata wins, except stored reading-state and import timestamps are kept."""
    if existing is None:
        return incoming
    return replace(
        incoming,
        imported_at=existing.imported_at or incoming.imported_at,
        last_read_at=existing.last_read_at or incoming.last_read_at,
        completed_at=existing.completed_at or incoming.completed_at,
    )


# =============================================================================
# ROW MAPPING
# =============================================================================

def _row_to_book(row: sqlite3.Row) -> BookRecord:
    return BookRecord(
        id=row["id"],
        title=row["title"],
        chapter_count=row["chapter_count"],
        cover_ref=row["cover_ref"],
        author_name=row["author_name"],
        source_book_number=row["source_book_number"],
        last_read_at=row["last_read_at"],
        completed_at=row["completed_at"],
        imported_at=row["imported_at"],
    )


def _row_to_chapter(row: sqlite3.Row) -> ChapterRecord:
    return ChapterRecord(
        self_id=row["chapter_id"],
        title=row["title"],
        body=row["body"],
        declared_next_id=row["declared_next_id"],
        declared_prev_id=row["declared_prev_id"],
        summary=row["summary"],
    )


def _now() -> str:
    return datetime.now().isoformat()


class NovelStore:
    """
    Keyed store over three collections:
        novels            - keyed by book id
        chapters          - keyed by (book id, chapter id), indexed by
                            (book id, sort_order) for reading order
        current_positions - keyed by book id
    """

    def __init__(self, db: Optional[Database] = None):
        self._db = db

    @property
    def db(self) -> Database:
        return self._db if self._db is not None else get_database()

    # -------------------------------------------------------------------------
    # Books
    # -------------------------------------------------------------------------

    @db_retry()
    def save_book(self, book: BookRecord, ordered_chapters: Sequence[ChapterRecord]) -> BookRecord:
        """
        Insert or overwrite a book and its chapters in one transaction.

        Chapters take their sort order from their position in
        ordered_chapters. Chapters already stored for this book but missing
        from ordered_chapters are kept and moved after the new sequence.

        Returns:
            The book record as written (after merging)
        """
        now = _now()
        incoming_ids = set()

        with self.db.transaction() as conn:
            existing_book = self._fetch_book(conn, book.id)
            merged_book = merge_book(existing_book, book)
            if not merged_book.imported_at:
                merged_book = replace(merged_book, imported_at=now)
            conn.execute(
                """
                INSERT INTO novels
                (id, title, chapter_count, cover_ref, author_name, source_book_number,
                 last_read_at, completed_at, imported_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    chapter_count = excluded.chapter_count,
                    cover_ref = excluded.cover_ref,
                    author_name = excluded.author_name,
                    source_book_number = excluded.source_book_number,
                    last_read_at = excluded.last_read_at,
                    completed_at = excluded.completed_at,
                    updated_at = excluded.updated_at
                """,
                (
                    merged_book.id, merged_book.title, merged_book.chapter_count,
                    merged_book.cover_ref, merged_book.author_name,
                    merged_book.source_book_number,
                    merged_book.last_read_at, merged_book.completed_at,
                    merged_book.imported_at, now,
                )
            )

            existing_chapters = self._fetch_chapter_map(conn, book.id)
            preserved = 0
            for position, chapter in enumerate(ordered_chapters):
                # Unkeyed chapters can't be stored; a repeated id keeps its first slot
                if not chapter.self_id or chapter.self_id in incoming_ids:
                    continue
                incoming_ids.add(chapter.self_id)
                merged = merge_chapter(existing_chapters.get(chapter.self_id), chapter)
                if merged.summary and merged.summary != chapter.summary:
                    preserved += 1
                self._write_chapter(conn, book.id, merged, position, now)

            # Keep chapters the new import no longer lists, after the new ones
            stale = [
                chapter_id for chapter_id in existing_chapters
                if chapter_id not in incoming_ids
            ]
            for offset, chapter_id in enumerate(stale):
                conn.execute(
                    "UPDATE chapters SET sort_order = ? WHERE book_id = ? AND chapter_id = ?",
                    (len(ordered_chapters) + offset, book.id, chapter_id)
                )

        log_info(
            f"Saved '{merged_book.title or merged_book.id}': {len(incoming_ids)} chapters"
            + (f", {preserved} summaries preserved" if preserved else "")
            + (f", {len(stale)} stale chapters kept" if stale else ""),
            prefix="📚"
        )
        return merged_book

    @db_retry()
    def get_book(self, book_id: str) -> Optional[BookRecord]:
        """Get a book by id, or None."""
        with self.db.get_connection() as conn:
            return self._fetch_book(conn, book_id)

    @db_retry()
    def get_all_books(self) -> List[BookRecord]:
        """All stored books, ordered by id."""
        rows = self.db.execute("SELECT * FROM novels ORDER BY id", fetch=True)
        return [_row_to_book(row) for row in rows]

    @db_retry()
    def remove_book(self, book_id: str) -> bool:
        """
        Delete a book, all its chapters, and its current position together.

        Returns:
            True if a book record existed. Removing an unknown id is a no-op.
        """
        with self.db.transaction() as conn:
            cursor = conn.execute("DELETE FROM novels WHERE id = ?", (book_id,))
            existed = cursor.rowcount > 0
            cursor = conn.execute("DELETE FROM chapters WHERE book_id = ?", (book_id,))
            chapters_removed = cursor.rowcount
            conn.execute("DELETE FROM current_positions WHERE book_id = ?", (book_id,))

        if existed:
            log_info(f"Removed book '{book_id}' ({chapters_removed} chapters)", prefix="🗑️")
        return existed

    @db_retry()
    def mark_completed(self, book_id: str) -> None:
        """Stamp the book as completed now. Unknown ids are ignored."""
        now = _now()
        self.db.execute(
            "UPDATE novels SET completed_at = ?, updated_at = ? WHERE id = ?",
            (now, now, book_id)
        )

    @db_retry()
    def unmark_completed(self, book_id: str) -> None:
        """Clear the completion stamp. Unknown ids are ignored."""
        self.db.execute(
            "UPDATE novels SET completed_at = NULL, updated_at = ? WHERE id = ?",
            (_now(), book_id)
        )

    @db_retry()
    def update_last_read(self, book_id: str) -> None:
        """Stamp the book as read now. Unknown ids are ignored."""
        self.db.execute(
            "UPDATE novels SET last_read_at = ? WHERE id = ?",
            (_now(), book_id)
        )

    # -------------------------------------------------------------------------
    # Chapters
    # -------------------------------------------------------------------------

    @db_retry()
    def list_chapters_for_book(self, book_id: str) -> List[ChapterRecord]:
        """Chapters of a book in stored reading order (empty if none)."""
        rows = self.db.execute(
            "SELECT * FROM chapters WHERE book_id = ? ORDER BY sort_order, chapter_id",
            (book_id,),
            fetch=True
        )
        return [_row_to_chapter(row) for row in rows]

    @db_retry()
    def get_chapter(self, book_id: str, chapter_id: str) -> Optional[ChapterRecord]:
        """Get one chapter, or None."""
        rows = self.db.execute(
            "SELECT * FROM chapters WHERE book_id = ? AND chapter_id = ?",
            (book_id, chapter_id),
            fetch=True
        )
        return _row_to_chapter(rows[0]) if rows else None

    @db_retry()
    def save_chapter_summary(self, book_id: str, chapter_id: str, text: str) -> None:
        """
        Attach (or replace) a chapter's summary.

        Raises:
            ChapterNotFound: If the chapter is not stored
        """
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "UPDATE chapters SET summary = ?, updated_at = ? WHERE book_id = ? AND chapter_id = ?",
                (text, _now(), book_id, chapter_id)
            )
            if cursor.rowcount == 0:
                raise ChapterNotFound(book_id, chapter_id)

    # -------------------------------------------------------------------------
    # Current position
    # -------------------------------------------------------------------------

    @db_retry()
    def get_current_position(self, book_id: str) -> Optional[CurrentPosition]:
        """Where the reader left off in a book, or None."""
        rows = self.db.execute(
            "SELECT * FROM current_positions WHERE book_id = ?",
            (book_id,),
            fetch=True
        )
        if not rows:
            return None
        row = rows[0]
        return CurrentPosition(
            book_id=row["book_id"],
            chapter_id=row["chapter_id"],
            chapter_title=row["chapter_title"],
            updated_at=row["updated_at"],
        )

    @db_retry()
    def set_current_position(
        self,
        book_id: str,
        chapter_id: str,
        title: Optional[str] = None
    ) -> CurrentPosition:
        """Overwrite the book's current position."""
        now = _now()
        self.db.execute(
            """
            INSERT INTO current_positions (book_id, chapter_id, chapter_title, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(book_id) DO UPDATE SET
                chapter_id = excluded.chapter_id,
                chapter_title = excluded.chapter_title,
                updated_at = excluded.updated_at
            """,
            (book_id, chapter_id, title, now)
        )
        return CurrentPosition(book_id, chapter_id, title, now)

    @db_retry()
    def delete_current_position(self, book_id: str) -> None:
        """Forget the book's current position. No-op if none is stored."""
        self.db.execute("DELETE FROM current_positions WHERE book_id = ?", (book_id,))

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    @db_retry()
    def get_stats(self) -> dict:
        return self.db.get_stats()

    # -------------------------------------------------------------------------
    # Helpers (run inside an open connection)
    # -------------------------------------------------------------------------

    @staticmethod
    def _fetch_book(conn: sqlite3.Connection, book_id: str) -> Optional[BookRecord]:
        row = conn.execute("SELECT * FROM novels WHERE id = ?", (book_id,)).fetchone()
        return _row_to_book(row) if row else None

    @staticmethod
    def _fetch_chapter_map(conn: sqlite3.Connection, book_id: str) -> Dict[str, ChapterRecord]:
        """Stored chapters of a book keyed by chapter id, in reading order."""
        rows = conn.execute(
            "SELECT * FROM chapters WHERE book_id = ? ORDER BY sort_order, chapter_id",
            (book_id,)
        ).fetchall()
        return {row["chapter_id"]: _row_to_chapter(row) for row in rows}

    @staticmethod
    def _write_chapter(
        conn: sqlite3.Connection,
        book_id: str,
        chapter: ChapterRecord,
        sort_order: int,
        now: str
    ) -> None:
        conn.execute(
            """
            INSERT INTO chapters
            (book_id, chapter_id, title, body, declared_next_id, declared_prev_id,
             sort_order, summary, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(book_id, chapter_id) DO UPDATE SET
                title = excluded.title,
                body = excluded.body,
                declared_next_id = excluded.declared_next_id,
                declared_prev_id = excluded.declared_prev_id,
                sort_order = excluded.sort_order,
                summary = excluded.summary,
                updated_at = excluded.updated_at
            """,
            (
                book_id, chapter.self_id, chapter.title, chapter.body,
                chapter.declared_next_id, chapter.declared_prev_id,
                sort_order, chapter.summary, now,
            )
        )


# Global store instance
_store: Optional[NovelStore] = None


def get_novel_store() -> NovelStore:
    """Get the global novel store instance."""
    global _store
    if _store is None:
        _store = NovelStore()
    return _store


def init_novel_store(db: Optional[Database] = None) -> NovelStore:
    """Initialize the global novel store instance."""
    global _store
    _store = NovelStore(db)
    return _store
