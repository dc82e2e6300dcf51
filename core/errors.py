"""
Novel Shelf - Error Types
Failures that propagate out of the import and storage layers.

Graph-resolution anomalies (cycles, orphans, unmatched pointers) are not
represented here: they are absorbed by the linearizer and navigator.
"""

from typing import Optional


class NovelShelfError(Exception):
    """Base class for all library errors."""
    pass


class MalformedInput(NovelShelfError):
    """Raised when an import payload cannot be parsed. Nothing is written."""
    pass


class ChapterNotFound(NovelShelfError):
    """Raised when an operation requires a chapter key that is not stored."""

    def __init__(self, book_id: str, chapter_id: str):
        self.book_id = book_id
        self.chapter_id = chapter_id
        super().__init__(f"Chapter '{chapter_id}' not found in book '{book_id}'")


class StorageUnavailable(NovelShelfError):
    """
    Raised when the storage engine fails (locked past the retry budget,
    disk full, unreadable file, ...). The original sqlite3 error is
    chained as __cause__; callers may retry the whole operation.
    """

    def __init__(self, message: str, operation: Optional[str] = None):
        self.operation = operation
        super().__init__(message)
