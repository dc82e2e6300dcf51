"""
Novel Shelf - Reading Library
Orders scraped chapters and keeps them, with the reader's state, across
re-imports.

Architecture:
    models.py      - BookRecord, ChapterRecord, CurrentPosition
    canonical.py   - Slug canonicalization (accent stripping, punctuation collapse)
    resolver.py    - Multi-strategy pointer lookup (exact, canonical, chapter number)
    linearizer.py  - Reading order from next/prev pointers, with cycle and orphan handling
    store.py       - SQLite-backed store that preserves summaries and reading state
    navigation.py  - Next/previous moves with stale-pointer fallback
    importer.py    - JSON payload import and export
"""

from reading.models import BookRecord, ChapterRecord, CurrentPosition
from reading.canonical import canonicalize, canonicalize_cached
from reading.resolver import (
    RESOLUTION_STRATEGIES,
    ResolutionSession,
    extract_chapter_number,
    resolve,
)
from reading.linearizer import linearize
from reading.store import (
    NovelStore,
    get_novel_store,
    init_novel_store,
    merge_book,
    merge_chapter,
)
from reading.navigation import ChapterNavigator, Direction
from reading.importer import export_novel, import_novel, parse_novel_payload


__all__ = [
    # Models
    'BookRecord',
    'ChapterRecord',
    'CurrentPosition',

    # Ordering
    'canonicalize',
    'canonicalize_cached',
    'RESOLUTION_STRATEGIES',
    'ResolutionSession',
    'extract_chapter_number',
    'resolve',
    'linearize',

    # Storage
    'NovelStore',
    'get_novel_store',
    'init_novel_store',
    'merge_book',
    'merge_chapter',

    # Navigation
    'ChapterNavigator',
    'Direction',

    # Import / export
    'export_novel',
    'import_novel',
    'parse_novel_payload',
]
