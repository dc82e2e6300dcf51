"""
Novel Shelf - Chapter Navigation
Moves the reader to the next/previous chapter and records the new position.

Stored pointers can go stale: a re-import may change how the source spells
a slug. When the declared neighbour is not stored under that id, the
navigator falls back to canonical matching, then to chapter numbering
("chuong-15" -> look for chapter 16).
"""

from enum import Enum
from typing import List, Optional

from core.logger import log_debug
from reading.models import ChapterRecord
from reading.resolver import (
    ResolutionSession,
    extract_chapter_number,
    match_canonical,
    resolve,
)
from reading.store import NovelStore, get_novel_store


class Direction(Enum):
    NEXT = "next"
    PREV = "prev"

    @property
    def step(self) -> int:
        return 1 if self is Direction.NEXT else -1


def chapter_number(chapter: ChapterRecord) -> Optional[int]:
    """Chapter number from the chapter's id, or from its title if the id has none."""
    number = extract_chapter_number(chapter.self_id)
    if number is None:
        number = extract_chapter_number(chapter.title)
    return number


def find_adjacent_by_number(
    current: ChapterRecord,
    direction: Direction,
    chapters: List[ChapterRecord]
) -> Optional[ChapterRecord]:
    """First chapter numbered one after (or before) the current chapter."""
    current_number = chapter_number(current)
    if current_number is None:
        return None
    target_number = current_number + direction.step
    for chapter in chapters:
        if chapter.self_id and chapter_number(chapter) == target_number:
            return chapter
    return None


class ChapterNavigator:
    """Resolves chapter moves against the store and persists the position."""

    def __init__(self, store: Optional[NovelStore] = None):
        self._store = store

    @property
    def store(self) -> NovelStore:
        return self._store if self._store is not None else get_novel_store()

    def advance(
        self,
        book_id: str,
        current: ChapterRecord,
        direction: Direction
    ) -> Optional[ChapterRecord]:
        """
        Move one chapter in the given direction.

        Args:
            book_id: Book the chapter belongs to
            current: The chapter being read
            direction: Direction.NEXT or Direction.PREV

        Returns:
            The chapter moved to, or None when there is nowhere to go.
            Storage failures still raise StorageUnavailable.
        """
        if direction is Direction.NEXT:
            target_id = current.declared_next_id
        else:
            target_id = current.declared_prev_id
        if not target_id:
            return None

        target = self.store.get_chapter(book_id, target_id)
        if target is None:
            target = self._resolve_stale_pointer(book_id, current, target_id, direction)
        if target is None:
            log_debug(f"No {direction.value} chapter from '{current.self_id}' in '{book_id}'")
            return None

        self._record_position(book_id, target)
        return target

    def open_chapter(self, book_id: str, chapter_id: str) -> Optional[ChapterRecord]:
        """Load a chapter by id and make it the current position."""
        chapter = self.store.get_chapter(book_id, chapter_id)
        if chapter is not None:
            self._record_position(book_id, chapter)
        return chapter

    def _resolve_stale_pointer(
        self,
        book_id: str,
        current: ChapterRecord,
        target_id: str,
        direction: Direction
    ) -> Optional[ChapterRecord]:
        chapters = self.store.list_chapters_for_book(book_id)
        if not chapters:
            return None

        session = ResolutionSession(chapters)
        target = resolve(target_id, chapters, session, strategies=[match_canonical])
        if target is not None:
            log_debug(f"Pointer '{target_id}' matched '{target.self_id}' canonically")
            return target

        target = find_adjacent_by_number(current, direction, chapters)
        if target is not None:
            log_debug(f"Pointer '{target_id}' replaced by numbered neighbour '{target.self_id}'")
        return target

    def _record_position(self, book_id: str, chapter: ChapterRecord) -> None:
        self.store.set_current_position(book_id, chapter.self_id, chapter.title)
        self.store.update_last_read(book_id)
