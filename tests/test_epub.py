"""Tests for EPUB parsing, the parse timeout and cover extraction."""

import asyncio
import multiprocessing
import os
import tempfile
import time

import pytest

from folio import config
from folio.epub import extract_cover, read_epub, temporary_epub
from folio.errors import ArchiveCorruption, CoverNotFound, ExtractionFailure, ParseTimeout
from folio.models import ParsedBook

from conftest import LONG_PARAGRAPH, PNG_BYTES


class TestReadEpub:
    """Tests for read_epub on real archives."""

    @pytest.mark.asyncio
    async def test_extracts_metadata_and_chapters(self, epub_bytes):
        """Title, author and chapters come out in spine order."""
        book = await read_epub(epub_bytes)

        assert book.title == "The Lamplighter"
        assert book.author == "Ada Byron"
        assert [c.title for c in book.chapters] == ["Chapter One", "Chapter Two"]
        assert book.chapters[0].content == f"Chapter One\n\n{LONG_PARAGRAPH}"
        assert book.chapters[1].content.endswith("\n\nSecond paragraph.")

    @pytest.mark.asyncio
    async def test_multiple_creators_are_joined(self, make_epub):
        """Several creators are joined with a comma."""
        book = await read_epub(make_epub(authors=("Ada Byron", "Charles Babbage")))

        assert book.author == "Ada Byron, Charles Babbage"

    @pytest.mark.asyncio
    async def test_missing_title_is_empty(self, make_epub):
        """A book without a title yields an empty title."""
        book = await read_epub(make_epub(title=""))

        assert book.title == ""

    @pytest.mark.asyncio
    async def test_image_in_spine_is_skipped(self, make_epub):
        """A spine entry with media type image/jpeg is not a chapter."""
        book = await read_epub(make_epub(spine_image=True))

        assert len(book.chapters) == 2
        assert all("plate" not in c.content for c in book.chapters)

    @pytest.mark.asyncio
    async def test_short_documents_are_dropped(self, make_epub):
        """Documents with 50 characters or fewer of text are dropped."""
        documents = [
            ("Cover", "<p>The Lamplighter</p>"),
            ("Divider", "<div>* * *</div>"),
            ("Exactly fifty", "<p>" + "x" * 50 + "</p>"),
            ("Story", f"<p>{LONG_PARAGRAPH}</p>"),
        ]
        book = await read_epub(make_epub(documents=documents))

        assert len(book.chapters) == 1
        assert all(len(c.content) > config.MIN_CHAPTER_LENGTH for c in book.chapters)

    @pytest.mark.asyncio
    async def test_untitled_document_gets_numbered_title(self, make_epub):
        """Without a heading the chapter is named after its spine position."""
        documents = [
            ("Front", "<p>Short.</p>"),
            ("Story", f"<p>{LONG_PARAGRAPH}</p>"),
        ]
        book = await read_epub(make_epub(documents=documents))

        assert book.chapters[0].title == "Chapter 2"

    @pytest.mark.asyncio
    async def test_boilerplate_is_removed_from_chapters(self, make_epub):
        """Chapter text goes through normalization."""
        documents = [
            ("Story", f"<p>{LONG_PARAGRAPH}</p><p>Converted by an ebook tool</p><p>The end.</p>"),
        ]
        book = await read_epub(make_epub(documents=documents))

        assert book.chapters[0].content == f"{LONG_PARAGRAPH}\n\nThe end."

    @pytest.mark.asyncio
    async def test_corrupt_archive_raises(self):
        """Bytes that are not an EPUB raise ArchiveCorruption."""
        with pytest.raises(ArchiveCorruption):
            await read_epub(b"this is not a zip archive")


def sleepy_parser(path):
    time.sleep(30)
    return ParsedBook(title="late", author="")


def echo_parser(path):
    with open(path, "rb") as f:
        return ParsedBook(title=f.read().decode("utf-8"), author=path)


def broken_parser(path):
    raise RuntimeError("boom")


def rejecting_parser(path):
    raise ArchiveCorruption("Archive Corruption: not a zip file")


@pytest.fixture
def scratch_dir(temp_dir, monkeypatch):
    """Point the tempfile module at an empty directory of our own."""
    scratch = temp_dir / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(scratch))
    return scratch


class TestParseTimeout:
    """Tests for the parse timeout, worker cleanup and temporary files."""

    @pytest.mark.asyncio
    async def test_slow_parser_times_out_and_cleans_up(self, scratch_dir):
        """A parser slower than the timeout raises ParseTimeout and leaves nothing behind."""
        with pytest.raises(ParseTimeout):
            await read_epub(b"PK", timeout=0.5, parser=sleepy_parser)

        assert list(scratch_dir.iterdir()) == []
        assert multiprocessing.active_children() == []

    @pytest.mark.asyncio
    async def test_fast_parse_succeeds_after_timeouts(self, scratch_dir):
        """Timed out workers are stopped, so later parses are not starved."""
        results = await asyncio.gather(
            *(read_epub(b"PK", timeout=0.5, parser=sleepy_parser) for _ in range(6)),
            return_exceptions=True,
        )

        assert all(isinstance(r, ParseTimeout) for r in results)
        assert multiprocessing.active_children() == []

        book = await read_epub(b"payload", timeout=60, parser=echo_parser)

        assert book.title == "payload"
        assert list(scratch_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_parser_sees_written_bytes(self, scratch_dir):
        """The parser receives a file holding the uploaded bytes."""
        book = await read_epub(b"payload", timeout=60, parser=echo_parser)

        assert book.title == "payload"
        assert book.author.endswith(".epub")
        assert not os.path.exists(book.author)

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_extraction_failure(self, scratch_dir):
        """Unexpected parser errors are reported as ExtractionFailure."""
        with pytest.raises(ExtractionFailure, match="boom"):
            await read_epub(b"PK", timeout=60, parser=broken_parser)

        assert list(scratch_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_ingestion_errors_keep_their_type(self):
        """Errors already in the ingestion taxonomy come back unchanged."""
        with pytest.raises(ArchiveCorruption, match="not a zip file"):
            await read_epub(b"PK", timeout=60, parser=rejecting_parser)

    def test_failed_write_removes_file(self, scratch_dir):
        """A write that fails still removes the temporary file."""
        with pytest.raises(TypeError):
            with temporary_epub("not bytes"):
                pass

        assert list(scratch_dir.iterdir()) == []

    def test_cleanup_failure_is_not_raised(self):
        """A file that vanished early does not make cleanup fail."""
        with temporary_epub(b"data") as path:
            os.unlink(path)

        assert not os.path.exists(path)


class TestExtractCover:
    """Tests for extract_cover."""

    @pytest.mark.asyncio
    async def test_returns_declared_cover(self, make_epub):
        """The image named by the cover meta entry is returned."""
        media_type, data = await extract_cover(make_epub(cover=True))

        assert media_type == "image/png"
        assert data == PNG_BYTES

    @pytest.mark.asyncio
    async def test_missing_cover_raises(self, epub_bytes):
        """A book without a cover raises CoverNotFound."""
        with pytest.raises(CoverNotFound):
            await extract_cover(epub_bytes)
