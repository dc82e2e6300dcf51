"""
Novel Shelf - Import / Export
Turns scraped novel JSON into stored records and back.

Accepted payload (the "pageProps" wrapper and "chapterList" key come from
the source site's page data; exports use the bare form with "chapters"):

    {"pageProps": {
        "book": {"bookId": 1, "slug": "...", "name": "...", "coverUrl": "...",
                 "chapterCount": 2, "author": {"name": "..."}},
        "chapterList": [
            {"chapter": {"slug": "...", "name": "...", "content": "...",
                         "aiSummary": "..."},
             "nextChapter": {"slug": "..."},
             "prevChapter": {"slug": "..."}}
        ]}}

Validation happens before anything is written, so a malformed payload
never leaves a partial import behind.
"""

import json
from typing import Any, List, Optional, Tuple, Union

import config
from core.errors import MalformedInput
from core.logger import log_info, log_warning
from reading.linearizer import linearize
from reading.models import BookRecord, ChapterRecord
from reading.store import NovelStore, get_novel_store


def normalize_cover_url(cover_url: str, base_url: str = config.COVER_BASE_URL) -> str:
    """Prefix site-relative cover paths with the source origin."""
    if not cover_url or cover_url.startswith("http"):
        return cover_url
    return f"{base_url.rstrip('/')}/{cover_url.lstrip('/')}"


def _optional_str(value: Any, field_name: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedInput(f"'{field_name}' must be a string")
    return value


def _pointer_slug(pointer: Any, field_name: str) -> Optional[str]:
    """Slug of a nextChapter/prevChapter entry; null or {} means no pointer."""
    if pointer is None:
        return None
    if not isinstance(pointer, dict):
        raise MalformedInput(f"'{field_name}' must be an object")
    return _optional_str(pointer.get("slug"), f"{field_name}.slug") or None


def _parse_book(data: Any, root: dict) -> BookRecord:
    if not isinstance(data, dict):
        raise MalformedInput("Payload has no 'book' object")

    slug = data.get("slug")
    if not isinstance(slug, str) or not slug.strip():
        raise MalformedInput("Book is missing its 'slug'")

    author = data.get("author") or {}
    if not isinstance(author, dict):
        raise MalformedInput("'book.author' must be an object")

    chapter_count = data.get("chapterCount") or 0
    book_number = data.get("bookId")
    if not isinstance(chapter_count, int) or (book_number is not None and not isinstance(book_number, int)):
        raise MalformedInput("'book.chapterCount' and 'book.bookId' must be integers")

    return BookRecord(
        id=slug,
        title=_optional_str(data.get("name"), "book.name") or "",
        chapter_count=chapter_count,
        cover_ref=normalize_cover_url(_optional_str(data.get("coverUrl"), "book.coverUrl") or ""),
        author_name=_optional_str(author.get("name"), "book.author.name") or "",
        source_book_number=book_number,
        last_read_at=_optional_str(root.get("lastReadAt"), "lastReadAt"),
        completed_at=_optional_str(root.get("completedAt"), "completedAt"),
    )


def _parse_chapter(entry: Any, index: int) -> ChapterRecord:
    if not isinstance(entry, dict) or not isinstance(entry.get("chapter"), dict):
        raise MalformedInput(f"Chapter #{index} has no 'chapter' object")

    chapter = entry["chapter"]
    where = f"chapters[{index}]"
    return ChapterRecord(
        self_id=_optional_str(chapter.get("slug"), f"{where}.slug") or "",
        title=_optional_str(chapter.get("name"), f"{where}.name") or "",
        body=_optional_str(chapter.get("content"), f"{where}.content") or "",
        declared_next_id=_pointer_slug(entry.get("nextChapter"), f"{where}.nextChapter"),
        declared_prev_id=_pointer_slug(entry.get("prevChapter"), f"{where}.prevChapter"),
        summary=_optional_str(chapter.get("aiSummary"), f"{where}.aiSummary") or None,
    )


def parse_novel_payload(raw: Union[str, bytes]) -> Tuple[BookRecord, List[ChapterRecord]]:
    """
    Parse an import document.

    Args:
        raw: JSON text, or the undecoded file contents. Bytes may be UTF-8
            (with or without a BOM), UTF-16 or UTF-32.

    Returns:
        The book record and its chapters in source order

    Raises:
        MalformedInput: If the document is not decodable, not valid JSON,
            or lacks required fields
    """
    if isinstance(raw, str):
        raw = raw.lstrip("\ufeff")
    try:
        data = json.loads(raw)
    except UnicodeDecodeError as e:
        raise MalformedInput(f"Payload is not UTF-8/16/32 encoded: {e}") from e
    except (TypeError, ValueError) as e:
        raise MalformedInput(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedInput("Payload must be a JSON object")
    root = data.get("pageProps", data)
    if not isinstance(root, dict):
        raise MalformedInput("'pageProps' must be an object")

    book = _parse_book(root.get("book"), root)

    entries = root.get("chapterList")
    if entries is None:
        entries = root.get("chapters")
    if entries is None:
        entries = []
    if not isinstance(entries, list):
        raise MalformedInput("Chapter list must be an array")

    chapters = [_parse_chapter(entry, i) for i, entry in enumerate(entries)]
    return book, chapters


def import_novel(raw: Union[str, bytes], store: Optional[NovelStore] = None) -> Tuple[BookRecord, List[ChapterRecord]]:
    """
    Parse, order, and store a novel.

    Returns:
        The stored book record and the chapters in reading order

    Raises:
        MalformedInput: Payload rejected; nothing was written
        StorageUnavailable: The store failed; the import was rolled back
    """
    store = store or get_novel_store()
    book, chapters = parse_novel_payload(raw)

    ordered = linearize(chapters)
    unkeyed = sum(1 for c in ordered if not c.self_id)
    if unkeyed:
        log_warning(f"'{book.id}': {unkeyed} chapter(s) without a slug were not stored")

    stored_book = store.save_book(book, ordered)
    log_info(f"Imported '{stored_book.title or stored_book.id}' ({len(ordered)} chapters)", prefix="📥")
    return stored_book, ordered


def export_novel(book_id: str, store: Optional[NovelStore] = None) -> Optional[dict]:
    """
    Export a stored novel in the shape import_novel() accepts.

    Chapters come out in stored reading order with their summaries.

    Returns:
        The export document, or None if the book is not stored
    """
    store = store or get_novel_store()
    book = store.get_book(book_id)
    if book is None:
        return None

    chapters = store.list_chapters_for_book(book_id)
    document = {
        "book": book.to_payload(),
        "chapters": [chapter.to_payload() for chapter in chapters],
    }
    if book.last_read_at:
        document["lastReadAt"] = book.last_read_at
    if book.completed_at:
        document["completedAt"] = book.completed_at
    return document
