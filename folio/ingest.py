"""Manuscript ingestion entry point.

``ingest`` takes one source, either a URL pointing to an EPUB or a
block of pasted text, and turns it into a ``ParsedBook``. Unless the
caller only wants the parsed result, the book is then persisted: an
existing book with exactly the same title is reused, otherwise a new
one is created, and every chapter is written as one or more numbered
chapter records.

A chapter longer than the chunk size is stored as several consecutive
records, so the number of stored chapters can be larger than the number
of chapters found in the manuscript. The book's chapter count always
reflects the stored records.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Union

import httpx

from . import config
from .db import BookStore
from .epub import read_epub
from .errors import NoSourceProvided
from .extractor import download_source, normalize_text
from .logger import setup_logger
from .models import IngestRequest, IngestResult, Overrides, ParsedBook
from .splitter import chunk_text, split_pasted_text

logger = setup_logger(__name__)


def parse_pasted(text: str) -> ParsedBook:
    """Normalize pasted ``text`` and split it into chapters."""
    chapters = split_pasted_text(normalize_text(text))
    return ParsedBook(title="", author="", chapters=chapters)


def apply_overrides(parsed: ParsedBook, overrides: Overrides) -> ParsedBook:
    """Return ``parsed`` with override or default title and author applied."""
    return ParsedBook(
        title=overrides.title or parsed.title or config.DEFAULT_TITLE,
        author=overrides.author or parsed.author or config.DEFAULT_AUTHOR,
        chapters=parsed.chapters,
    )


def chapter_records(parsed: ParsedBook, max_size: Optional[int] = None) -> List[Dict[str, str]]:
    """Flatten the chapters of ``parsed`` into size-bounded records.

    Records are returned in reading order. When a chapter needs more
    than one record, the records after the first are titled
    ``"<title> (Part k)"``.
    """
    max_size = max_size or config.CHUNK_SIZE
    records: List[Dict[str, str]] = []
    for chapter in parsed.chapters:
        pieces = chunk_text(chapter.content, max_size)
        for part, piece in enumerate(pieces, start=1):
            title = chapter.title if part == 1 else f"{chapter.title} (Part {part})"
            records.append({"title": title, "content": piece})
    return records


def persist(store: BookStore, parsed: ParsedBook, genre: List[str],
            owner_id: Optional[str] = None, max_size: Optional[int] = None) -> IngestResult:
    """Write ``parsed`` to ``store`` and return what was stored."""
    existing = store.find_book_by_title(parsed.title)
    if existing:
        book_id = existing["id"]
        store.update_book(book_id, author=parsed.author, genre=genre)
    else:
        book_id = store.create_book(parsed.title, parsed.author, genre, owner_id)

    total = store.write_chapters(book_id, chapter_records(parsed, max_size), owner_id)
    return IngestResult(
        book_id=book_id,
        title=parsed.title,
        author=parsed.author,
        genre=list(genre),
        total_chapters=total,
        created=existing is None,
    )


async def ingest(
    request: IngestRequest,
    *,
    store: Optional[BookStore] = None,
    client: Optional[httpx.AsyncClient] = None,
    epub_data: Optional[bytes] = None,
) -> Union[ParsedBook, IngestResult]:
    """Ingest one manuscript.

    The source is ``epub_data`` when given (direct upload), otherwise
    ``request.file_url`` and then ``request.pasted_text``. URL sources
    are downloaded with ``client``. Raises ``NoSourceProvided`` before
    doing anything else when there is no source.
    """
    if epub_data is None and not request.file_url and not (request.pasted_text or "").strip():
        raise NoSourceProvided()

    if epub_data is None and request.file_url:
        if client is None:
            async with httpx.AsyncClient(timeout=config.DOWNLOAD_TIMEOUT) as own_client:
                epub_data = await download_source(request.file_url, own_client)
        else:
            epub_data = await download_source(request.file_url, client)

    if epub_data is not None:
        parsed = await read_epub(epub_data)
    else:
        parsed = parse_pasted(request.pasted_text)

    parsed = apply_overrides(parsed, request.overrides)
    logger.info("Ingested %r by %r with %d chapters", parsed.title, parsed.author,
                len(parsed.chapters))

    if request.return_only:
        return parsed

    if store is None:
        raise ValueError("A BookStore is required unless return_only is set")
    genre = request.overrides.genre or list(config.DEFAULT_GENRE)
    result = await asyncio.to_thread(
        persist, store, parsed, genre, request.owner_id or config.DEFAULT_OWNER
    )
    logger.info("Stored book %s (%s) with %d chapter records", result.book_id,
                "new" if result.created else "existing", result.total_chapters)
    return result
