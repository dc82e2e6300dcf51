"""
Novel Shelf - Chapter Resolver
Finds the chapter a scraped pointer refers to.

Pointers from the source are untrusted strings, so lookup falls through an
ordered list of strategies, cheapest and most reliable first:

    1. exact     - pointer equals the chapter's self_id
    2. canonical - pointer and self_id agree after canonicalize()
    3. numeric   - pointer and chapter title carry the same chapter number

New heuristics are added by appending to RESOLUTION_STRATEGIES; traversal
code never needs to know which strategy produced a hit.
"""

import re
from typing import Callable, Dict, List, Optional, Sequence

from reading.canonical import SlugCache, canonicalize_cached
from reading.models import ChapterRecord

# Chapter numbering patterns, tried in order. The separator class lets the
# same pattern match both titles ("Chương 15") and slugs ("chuong-15").
CHAPTER_NUMBER_PATTERNS = [
    re.compile(r"Chương[\s\-_:.]*(\d+)", re.IGNORECASE),   # Vietnamese
    re.compile(r"Chuong[\s\-_:.]*(\d+)", re.IGNORECASE),   # Vietnamese, unaccented
    re.compile(r"Chapter[\s\-_:.]*(\d+)", re.IGNORECASE),  # English
]


def extract_chapter_number(text: Optional[str]) -> Optional[int]:
    """Return the chapter number named in text, or None."""
    if not text:
        return None
    for pattern in CHAPTER_NUMBER_PATTERNS:
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    return None


class ResolutionSession:
    """
    Lookup state for one pass over a fixed chapter set.

    Holds the exact-id map, the slug cache, and the canonical map (built on
    first use). Create one per linearization or navigation call; sessions
    share nothing with each other.
    """

    def __init__(self, chapters: Sequence[ChapterRecord], slug_cache: Optional[SlugCache] = None):
        self.chapters = list(chapters)
        self.slug_cache: SlugCache = slug_cache if slug_cache is not None else {}
        self._exact: Dict[str, ChapterRecord] = {}
        for chapter in self.chapters:
            if chapter.self_id:
                self._exact.setdefault(chapter.self_id, chapter)
        self._canonical: Optional[Dict[str, ChapterRecord]] = None

    def by_exact_id(self, target_id: str) -> Optional[ChapterRecord]:
        return self._exact.get(target_id)

    def canonical_map(self) -> Dict[str, ChapterRecord]:
        """canonicalize(self_id) -> chapter, built at most once per session."""
        if self._canonical is None:
            canonical = {}
            for chapter in self.chapters:
                if chapter.self_id:
                    canonical[canonicalize_cached(chapter.self_id, self.slug_cache)] = chapter
            self._canonical = canonical
        return self._canonical

    def canonicalize(self, raw: Optional[str]) -> str:
        return canonicalize_cached(raw, self.slug_cache)


# =============================================================================
# STRATEGIES
# =============================================================================

Strategy = Callable[[str, ResolutionSession], Optional[ChapterRecord]]


def match_exact(target_id: str, session: ResolutionSession) -> Optional[ChapterRecord]:
    return session.by_exact_id(target_id)


def match_canonical(target_id: str, session: ResolutionSession) -> Optional[ChapterRecord]:
    key = session.canonicalize(target_id)
    if not key:
        return None
    return session.canonical_map().get(key)


def match_chapter_number(target_id: str, session: ResolutionSession) -> Optional[ChapterRecord]:
    # Duplicate numbering in the source resolves to the first chapter in
    # iteration order.
    target_number = extract_chapter_number(target_id)
    if target_number is None:
        return None
    for chapter in session.chapters:
        if extract_chapter_number(chapter.title) == target_number:
            return chapter
    return None


RESOLUTION_STRATEGIES: List[Strategy] = [
    match_exact,
    match_canonical,
    match_chapter_number,
]


def resolve(
    target_id: Optional[str],
    chapters: Sequence[ChapterRecord],
    session: Optional[ResolutionSession] = None,
    strategies: Sequence[Strategy] = RESOLUTION_STRATEGIES,
) -> Optional[ChapterRecord]:
    """
    Find the chapter a pointer refers to.

    Args:
        target_id: The declared identifier (None or "" never matches)
        chapters: The chapter set to search
        session: Lookup state to reuse across calls over the same set.
            A throwaway session is created when omitted.
        strategies: Ordered strategies; the first hit wins

    Returns:
        The matching chapter, or None
    """
    if not target_id:
        return None
    if session is None:
        session = ResolutionSession(chapters)

    for strategy in strategies:
        found = strategy(target_id, session)
        if found is not None:
            return found
    return None
