"""EPUB parsing and chapter extraction.

EPUB archives are read with ``ebooklib``, which works on files, so the
uploaded bytes are written to a temporary ``.epub`` file for the length
of one parse. The file is removed however the parse ends.

The blocking parse runs in a separate worker process under a wall-clock
timeout. When the timeout fires the worker is terminated and the caller
gets ``ParseTimeout``. Parser functions run in the worker and must be
defined at module level.

Chapters follow the spine (reading order). Spine entries pointing at
non-text resources are skipped, and chapters whose cleaned text is
``config.MIN_CHAPTER_LENGTH`` characters or shorter are dropped. That
removes cover pages, navigation documents and blank dividers.
"""

from __future__ import annotations

import asyncio
import multiprocessing
import os
import tempfile
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Tuple

import ebooklib
from ebooklib import epub

from . import config
from .errors import ArchiveCorruption, CoverNotFound, ExtractionFailure, IngestionError, ParseTimeout
from .extractor import make_soup, normalize_text, reduce_html
from .logger import setup_logger
from .models import ChapterCandidate, ParsedBook

logger = setup_logger(__name__)

TEXT_MEDIA_MARKERS = ("xml", "html", "text")

# Workers start from a fresh interpreter.
_MP_CONTEXT = multiprocessing.get_context("spawn")

# Seconds a worker gets to exit after SIGTERM before it is killed.
TERMINATE_GRACE = 5


@contextmanager
def temporary_epub(data: bytes) -> Iterator[str]:
    """Write ``data`` to a temporary ``.epub`` file and yield its path.

    The file is deleted on exit. A failed deletion is logged so that it
    never hides the error that ended the parse.
    """
    handle = tempfile.NamedTemporaryFile(prefix="folio_", suffix=".epub", delete=False)
    try:
        try:
            handle.write(data)
        finally:
            handle.close()
        yield handle.name
    finally:
        try:
            os.unlink(handle.name)
        except OSError as e:
            logger.warning("Could not remove temporary file %s: %s", handle.name, e)


def open_book(path: str) -> epub.EpubBook:
    """Open the archive at ``path``, reporting any failure as ``ArchiveCorruption``."""
    try:
        return epub.read_epub(path, options={"ignore_ncx": True})
    except Exception as e:
        raise ArchiveCorruption(f"Archive Corruption: {e}") from e


def _metadata_values(book: epub.EpubBook, name: str) -> List[str]:
    values = []
    for value, _attrs in book.metadata.get(epub.NAMESPACES["DC"], {}).get(name, []):
        if value and value.strip():
            values.append(value.strip())
    return values


def _is_text_item(item: epub.EpubItem) -> bool:
    media_type = (getattr(item, "media_type", None) or "").lower()
    if not media_type:
        return True
    return any(marker in media_type for marker in TEXT_MEDIA_MARKERS)


def _chapter_title(markup: str, position: int) -> str:
    """Return the first short heading in ``markup`` or a numbered fallback."""
    soup = make_soup(markup)
    for tag in ["h1", "h2", "h3"]:
        heading = soup.find(tag)
        if heading:
            title = heading.get_text(" ", strip=True)
            if title and len(title) < 200:
                return title
    return f"Chapter {position}"


def extract_chapters(book: epub.EpubBook) -> List[ChapterCandidate]:
    """Walk the spine of ``book`` and return the chapters worth keeping."""
    chapters: List[ChapterCandidate] = []
    for position, entry in enumerate(book.spine, start=1):
        idref = entry[0] if isinstance(entry, tuple) else entry
        item = book.get_item_with_id(idref) if idref else None
        if item is None:
            logger.debug("Spine entry %r has no manifest item; skipped", idref)
            continue
        if not _is_text_item(item):
            logger.debug("Spine entry %r is %s; skipped", idref, item.media_type)
            continue

        raw = item.get_content()
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        content = normalize_text(reduce_html(raw))
        if len(content) <= config.MIN_CHAPTER_LENGTH:
            logger.debug("Spine entry %r too short (%d chars); dropped", idref, len(content))
            continue
        chapters.append(ChapterCandidate(title=_chapter_title(raw, position), content=content))
    return chapters


def parse_epub_file(path: str) -> ParsedBook:
    """Parse the EPUB at ``path`` into a ``ParsedBook``.

    This is the blocking half of ``read_epub`` and runs in a worker
    process.
    """
    book = open_book(path)
    try:
        titles = _metadata_values(book, "title")
        creators = _metadata_values(book, "creator")
        chapters = extract_chapters(book)
    except Exception as e:
        raise ExtractionFailure(f"Extraction Failure: {e}") from e
    return ParsedBook(
        title=titles[0] if titles else "",
        author=", ".join(creators),
        chapters=chapters,
    )


def _parse_in_child(func: Callable, path: str, conn) -> None:
    """Run ``func(path)`` in a worker process and send ``(ok, value)`` back."""
    try:
        outcome = (True, func(path))
    except IngestionError as e:
        outcome = (False, e)
    except Exception as e:
        logger.exception("Unexpected failure while parsing EPUB")
        outcome = (False, ExtractionFailure(f"Extraction Failure: {e}"))
    try:
        conn.send(outcome)
    finally:
        conn.close()


def _stop(process) -> None:
    if process.is_alive():
        process.terminate()
        process.join(TERMINATE_GRACE)
        if process.is_alive():
            process.kill()
    process.join()


async def _run_with_timeout(func: Callable, path: str, timeout: float):
    """Run ``func(path)`` in its own process, killing it after ``timeout`` seconds.

    ``func`` must be a module level function so it can be sent to the
    worker. ``IngestionError`` raised by ``func`` is raised again here.
    """
    receiver, sender = _MP_CONTEXT.Pipe(duplex=False)
    process = _MP_CONTEXT.Process(target=_parse_in_child, args=(func, path, sender), daemon=True)
    try:
        process.start()
    except BaseException:
        receiver.close()
        raise
    finally:
        sender.close()
    try:
        if not await asyncio.to_thread(receiver.poll, timeout):
            logger.warning("Parse of %s exceeded %gs; stopping worker %s", path, timeout, process.pid)
            raise ParseTimeout(f"EPUB parsing exceeded {timeout:g} seconds")
        try:
            ok, value = await asyncio.to_thread(receiver.recv)
        except EOFError:
            raise ExtractionFailure("Extraction Failure: parser process exited without a result") from None
    finally:
        receiver.close()
        await asyncio.to_thread(_stop, process)
    if not ok:
        raise value
    return value


async def read_epub(
    data: bytes,
    timeout: float = config.PARSE_TIMEOUT,
    parser: Callable[[str], ParsedBook] = parse_epub_file,
) -> ParsedBook:
    """Parse EPUB ``data`` into a ``ParsedBook`` within ``timeout`` seconds.

    ``parser`` receives the path of the temporary file and does the
    actual work in the worker process, so it must be a module level
    function.
    """
    with temporary_epub(data) as path:
        try:
            parsed = await _run_with_timeout(parser, path, timeout)
        except IngestionError:
            raise
        except Exception as e:
            logger.exception("Unexpected failure while parsing EPUB")
            raise ExtractionFailure(f"Extraction Failure: {e}") from e
    logger.info(
        "Parsed EPUB %r by %r: %d chapters", parsed.title, parsed.author, len(parsed.chapters)
    )
    return parsed


def _cover_id(book: epub.EpubBook) -> Optional[str]:
    # <meta name="cover" content="..."/> may land under any namespace key.
    for entries in book.metadata.values():
        for _value, attrs in entries.get("cover", []):
            if attrs and attrs.get("content"):
                return attrs["content"]
    return None


def find_cover(book: epub.EpubBook) -> Tuple[str, bytes]:
    """Return ``(media_type, data)`` of the cover image declared by ``book``."""
    cover_id = _cover_id(book)
    if cover_id:
        item = book.get_item_with_id(cover_id)
        if item is not None:
            return item.media_type, item.get_content()

    for item in book.get_items_of_type(ebooklib.ITEM_COVER):
        return item.media_type, item.get_content()
    for item in book.get_items_of_type(ebooklib.ITEM_IMAGE):
        name = f"{item.get_id() or ''} {item.get_name() or ''}".lower()
        if "cover" in name:
            return item.media_type, item.get_content()
    raise CoverNotFound()


def _cover_from_file(path: str) -> Tuple[str, bytes]:
    return find_cover(open_book(path))


async def extract_cover(data: bytes, timeout: float = config.PARSE_TIMEOUT) -> Tuple[str, bytes]:
    """Extract the cover image from EPUB ``data``."""
    with temporary_epub(data) as path:
        try:
            return await _run_with_timeout(_cover_from_file, path, timeout)
        except IngestionError:
            raise
        except Exception as e:
            logger.exception("Unexpected failure while extracting cover")
            raise ExtractionFailure(f"Extraction Failure: {e}") from e
