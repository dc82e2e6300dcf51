"""
Novel Shelf - Record Types
Books, chapters, and reading positions as they move between the importer,
the linearizer, and the store.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class ChapterRecord:
    """A single chapter plus the neighbour pointers the source declared."""
    self_id: str                            # Source slug; the chapter's key within its book
    title: str = ""
    body: str = ""
    declared_next_id: Optional[str] = None
    declared_prev_id: Optional[str] = None
    summary: Optional[str] = None           # Derived; never erased by re-import

    @property
    def has_summary(self) -> bool:
        return bool(self.summary)

    def to_payload(self) -> dict:
        """Return the chapter in the import/export JSON shape."""
        chapter = {
            "slug": self.self_id,
            "name": self.title,
            "content": self.body,
        }
        if self.summary:
            chapter["aiSummary"] = self.summary

        return {
            "chapter": chapter,
            "nextChapter": {"slug": self.declared_next_id} if self.declared_next_id else None,
            "prevChapter": {"slug": self.declared_prev_id} if self.declared_prev_id else None,
        }


@dataclass
class BookRecord:
    """Book metadata plus the user's reading state for it."""
    id: str
    title: str = ""
    chapter_count: int = 0
    cover_ref: str = ""
    author_name: str = ""
    source_book_number: Optional[int] = None
    last_read_at: Optional[str] = None      # ISO timestamp
    completed_at: Optional[str] = None      # ISO timestamp
    imported_at: Optional[str] = None       # ISO timestamp of the first import; set by the store

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def to_payload(self) -> dict:
        """Return the book in the import/export JSON shape."""
        return {
            "bookId": self.source_book_number,
            "slug": self.id,
            "name": self.title,
            "coverUrl": self.cover_ref,
            "chapterCount": self.chapter_count,
            "author": {"name": self.author_name},
        }


@dataclass
class CurrentPosition:
    """Where the reader left off in a book."""
    book_id: str
    chapter_id: str
    chapter_title: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def display_title(self) -> str:
        return self.chapter_title or self.chapter_id
