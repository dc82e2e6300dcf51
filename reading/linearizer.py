"""
Novel Shelf - Chapter Linearizer
Rebuilds reading order from per-chapter next/prev pointers.

The pointer graph is a possibly-cyclic, possibly-disconnected linked list
described by untrusted slugs. Linearization never fails: whatever the
traversal cannot place is appended in input order, so every chapter with a
self_id appears exactly once in the result.
"""

from typing import List, Optional, Sequence

from core.logger import log_debug, log_warning
from reading.models import ChapterRecord
from reading.resolver import ResolutionSession, match_canonical, match_exact, resolve

# Back-pointers are checked by id only (exact or canonical), never by chapter number
BACK_POINTER_STRATEGIES = [match_exact, match_canonical]


def _select_head(valid: List[ChapterRecord], session: ResolutionSession) -> ChapterRecord:
    """
    Pick the first chapter of the chain.

    Strategy:
    1. A chapter that declares no previous chapter
    2. A chapter whose previous pointer names no chapter by id
    3. A chapter no other chapter names as its next
    4. The first chapter in input order
    """
    for chapter in valid:
        if not chapter.declared_prev_id:
            return chapter

    for chapter in valid:
        if resolve(chapter.declared_prev_id, valid, session, BACK_POINTER_STRATEGIES) is None:
            log_debug(
                f"Head chosen by dangling back-pointer: '{chapter.self_id}' "
                f"-> '{chapter.declared_prev_id}'"
            )
            return chapter

    named_as_next = {c.declared_next_id for c in valid if c.declared_next_id}
    for chapter in valid:
        if chapter.self_id not in named_as_next:
            log_debug(f"Head chosen as never-named-next: '{chapter.self_id}'")
            return chapter

    log_debug("No head candidate found, falling back to input order")
    return valid[0]


def linearize(chapters: Optional[Sequence[ChapterRecord]]) -> List[ChapterRecord]:
    """
    Sort chapters into reading order.

    Args:
        chapters: Chapters in any order

    Returns:
        A new list: the chain reached from the head by following next
        pointers, then any unreached chapters in their input order.
        Chapters without a self_id are dropped, unless that would drop
        everything, in which case the input order is returned unchanged.
    """
    if not chapters:
        return []
    chapters = list(chapters)
    if len(chapters) == 1:
        return chapters

    valid = [c for c in chapters if c.self_id]
    if not valid:
        log_warning("No chapter carries an id; keeping source order")
        return chapters
    if len(valid) < len(chapters):
        log_warning(f"Skipped {len(chapters) - len(valid)} chapter(s) without an id")

    session = ResolutionSession(valid)
    head = _select_head(valid, session)

    ordered: List[ChapterRecord] = []
    placed = set()       # id() of records already in ordered
    visited = set()      # self_ids already walked

    current: Optional[ChapterRecord] = head
    while current is not None:
        if current.self_id in visited:
            log_warning(f"Cycle detected at '{current.self_id}', stopping traversal")
            break
        visited.add(current.self_id)
        ordered.append(current)
        placed.add(id(current))
        current = resolve(current.declared_next_id, valid, session)

    orphans = [c for c in valid if id(c) not in placed]
    if orphans:
        log_warning(
            f"Appending {len(orphans)} chapter(s) unreachable from head "
            f"'{head.self_id}'"
        )
        ordered.extend(orphans)

    return ordered
