#!/usr/bin/env python3
"""
Novel Shelf - Main Entry Point
Import scraped novels and inspect the local library

Usage:
    python main.py import novel.json     # Import (or re-import) a novel
    python main.py list                  # List stored novels with progress
    python main.py chapters <slug>       # Show a novel's chapters in reading order
    python main.py export <slug> [-o F]  # Export a novel as JSON
    python main.py remove <slug>         # Remove a novel and its reading state
    python main.py stats                 # Library statistics
"""

import sys
import json
import argparse
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

# Ensure we can import from project root
sys.path.insert(0, str(Path(__file__).parent))

import config
from core.database import init_database
from core.errors import MalformedInput, StorageUnavailable
from core.logger import (
    setup_logging,
    log_startup_banner,
    log_section,
    log_subsection,
    log_error,
    log_warning,
)
from concurrency.db_retry import DEFAULT_RETRY_CONFIG
from reading import export_novel, get_novel_store, import_novel, init_novel_store


def initialize_system() -> bool:
    """
    Initialize logging, the database, and the store.

    Returns:
        True if successful, False otherwise
    """
    config.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    setup_logging(
        log_file_path=config.DIAGNOSTIC_LOG_PATH,
        level=config.LOG_LEVEL,
        log_to_file=config.LOG_TO_FILE,
        log_to_console=config.LOG_TO_CONSOLE
    )

    log_startup_banner(config.VERSION, config.PROJECT_NAME)

    db = init_database(
        db_path=config.DATABASE_PATH,
        busy_timeout_ms=config.DB_BUSY_TIMEOUT_MS
    )
    if db is None:
        log_error("Failed to initialize database")
        return False

    init_novel_store(db)
    print_configuration()
    return True


def print_configuration() -> None:
    """Print configuration summary."""
    log_section("Configuration", "📡")
    log_subsection(f"Database: {config.DATABASE_PATH}")
    log_subsection(f"Diagnostic Log: {config.DIAGNOSTIC_LOG_PATH}")
    log_subsection(f"Cover Base URL: {config.COVER_BASE_URL}")
    retry = DEFAULT_RETRY_CONFIG.to_dict()
    log_subsection(
        f"DB Retry: {retry['max_retries']} attempts, "
        f"{retry['initial_delay']} initial, {retry['backoff_multiplier']} backoff"
    )


def cmd_import(args, store, console: Console) -> int:
    try:
        # Raw bytes; the importer detects the encoding
        raw = Path(args.file).read_bytes()
    except OSError as e:
        log_error(f"Cannot read {args.file}: {e}")
        return 1

    try:
        book, ordered = import_novel(raw, store)
    except MalformedInput as e:
        log_error(f"Import rejected: {e}")
        return 1

    console.print(f"Imported [bold]{escape(book.title or book.id)}[/bold] ({len(ordered)} chapters)")
    return 0


def cmd_list(args, store, console: Console) -> int:
    books = store.get_all_books()
    if not books:
        console.print("No novels imported yet.")
        return 0

    table = Table(title="My Novels", show_header=True)
    table.add_column("Slug", style="cyan")
    table.add_column("Title")
    table.add_column("Author")
    table.add_column("Chapters", justify="right")
    table.add_column("Current")
    table.add_column("Status")
    table.add_column("Imported")

    for book in books:
        position = store.get_current_position(book.id)
        table.add_row(
            book.id,
            escape(book.title),
            escape(book.author_name),
            str(book.chapter_count),
            escape(position.display_title) if position else "-",
            "completed" if book.is_completed else "reading" if position else "new",
            (book.imported_at or "")[:10],
        )
    console.print(table)
    return 0


def cmd_chapters(args, store, console: Console) -> int:
    if store.get_book(args.slug) is None:
        log_warning(f"No novel '{args.slug}'")
        return 1

    position = store.get_current_position(args.slug)
    table = Table(title=args.slug, show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Chapter", style="cyan")
    table.add_column("Title")
    table.add_column("Summary")

    for index, chapter in enumerate(store.list_chapters_for_book(args.slug), start=1):
        marker = " ◀" if position and position.chapter_id == chapter.self_id else ""
        table.add_row(
            str(index),
            escape(chapter.self_id) + marker,
            escape(chapter.title),
            "yes" if chapter.has_summary else "",
        )
    console.print(table)
    return 0


def cmd_export(args, store, console: Console) -> int:
    document = export_novel(args.slug, store)
    if document is None:
        log_warning(f"No novel '{args.slug}'")
        return 1

    text = json.dumps(document, ensure_ascii=False, indent=2)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        console.print(f"Exported to {args.output}")
    else:
        console.print_json(text)
    return 0


def cmd_remove(args, store, console: Console) -> int:
    if store.remove_book(args.slug):
        console.print(f"Removed {args.slug}")
    else:
        console.print(f"No novel '{args.slug}' (nothing removed)")
    return 0


def cmd_stats(args, store, console: Console) -> int:
    table = Table(title="Library", show_header=False)
    for key, value in store.get_stats().items():
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)
    return 0


COMMANDS = {
    "import": cmd_import,
    "list": cmd_list,
    "chapters": cmd_chapters,
    "export": cmd_export,
    "remove": cmd_remove,
    "stats": cmd_stats,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Novel Shelf - local library for scraped novels"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Import or re-import a novel JSON file")
    import_parser.add_argument("file", help="Path to the scraped JSON document")

    subparsers.add_parser("list", help="List stored novels")

    chapters_parser = subparsers.add_parser("chapters", help="Show chapters in reading order")
    chapters_parser.add_argument("slug")

    export_parser = subparsers.add_parser("export", help="Export a novel as JSON")
    export_parser.add_argument("slug")
    export_parser.add_argument("-o", "--output", help="Write to a file instead of stdout")

    remove_parser = subparsers.add_parser("remove", help="Remove a novel and its reading state")
    remove_parser.add_argument("slug")

    subparsers.add_parser("stats", help="Show library statistics")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if not initialize_system():
        return 1

    store = get_novel_store()
    console = Console()
    try:
        return COMMANDS[args.command](args, store, console)
    except StorageUnavailable as e:
        log_error(f"Storage unavailable: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
