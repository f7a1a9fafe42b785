"""Pytest configuration and fixtures."""

import html
import tempfile
import zipfile
from pathlib import Path

import pytest

from folio.db import BookStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"cover-image-data" * 8

LONG_PARAGRAPH = (
    "The lamps along the quay were lit one by one as the ferry came in, "
    "and the river smelled of rain and coal smoke."
)


def _xhtml(title, body):
    return (
        "<?xml version='1.0' encoding='utf-8'?>\n"
        "<html xmlns='http://www.w3.org/1999/xhtml'>\n"
        f"<head><title>{html.escape(title)}</title><style>p {{ margin: 0; }}</style></head>\n"
        f"<body>\n{body}\n</body>\n"
        "</html>\n"
    )


def build_epub(
    path,
    *,
    title="The Lamplighter",
    authors=("Ada Byron",),
    documents=None,
    spine_image=False,
    cover=False,
):
    """Write a minimal EPUB 2 archive to ``path`` and return its bytes.

    ``documents`` is a list of ``(title, body_markup)`` pairs, one XHTML
    file per pair, in spine order. With ``spine_image`` a JPEG item is
    also listed in the spine; with ``cover`` a PNG cover is declared in
    the metadata.
    """
    if documents is None:
        documents = [
            ("Chapter One", f"<h1>Chapter One</h1><p>{LONG_PARAGRAPH}</p>"),
            ("Chapter Two", f"<h2>Chapter Two</h2><p>{LONG_PARAGRAPH}</p><p>Second paragraph.</p>"),
        ]

    files = {}
    manifest = ["<item id='ncx' href='toc.ncx' media-type='application/x-dtbncx+xml'/>"]
    spine = []
    for idx, (doc_title, body) in enumerate(documents, start=1):
        name = f"Text/chapter{idx}.xhtml"
        files[name] = _xhtml(doc_title, body)
        manifest.append(f"<item id='chap{idx}' href='{name}' media-type='application/xhtml+xml'/>")
        spine.append(f"<itemref idref='chap{idx}'/>")
    if spine_image:
        files["Images/plate.jpg"] = b"\xff\xd8\xff\xe0" + b"plate" * 40
        manifest.append("<item id='plate' href='Images/plate.jpg' media-type='image/jpeg'/>")
        spine.append("<itemref idref='plate'/>")
    meta = ""
    if cover:
        files["Images/cover.png"] = PNG_BYTES
        manifest.append("<item id='cover-image' href='Images/cover.png' media-type='image/png'/>")
        meta = "    <meta name='cover' content='cover-image'/>\n"

    creators = "".join(f"    <dc:creator>{html.escape(a)}</dc:creator>\n" for a in authors)
    title_tag = f"    <dc:title>{html.escape(title)}</dc:title>\n" if title else ""
    opf = (
        "<?xml version='1.0' encoding='utf-8'?>\n"
        "<package xmlns='http://www.idpf.org/2007/opf' unique-identifier='BookId' version='2.0'>\n"
        "  <metadata xmlns:dc='http://purl.org/dc/elements/1.1/' xmlns:opf='http://www.idpf.org/2007/opf'>\n"
        f"{title_tag}{creators}"
        "    <dc:identifier id='BookId'>urn:uuid:5f0b1b8e-8f7e-4a53-9a55-2e1f1c1a0001</dc:identifier>\n"
        "    <dc:language>en</dc:language>\n"
        f"{meta}"
        "  </metadata>\n"
        "  <manifest>\n    " + "\n    ".join(manifest) + "\n  </manifest>\n"
        "  <spine toc='ncx'>\n    " + "\n    ".join(spine) + "\n  </spine>\n"
        "</package>"
    )
    ncx = (
        "<?xml version='1.0' encoding='utf-8'?>\n"
        "<ncx xmlns='http://www.daisy.org/z3986/2005/ncx/' version='2005-1'>\n"
        "  <head><meta name='dtb:uid' content='urn:uuid:5f0b1b8e-8f7e-4a53-9a55-2e1f1c1a0001'/></head>\n"
        "  <docTitle><text>Book</text></docTitle>\n"
        "  <navMap></navMap>\n"
        "</ncx>"
    )
    container = (
        "<?xml version='1.0' encoding='utf-8'?>\n"
        "<container version='1.0' xmlns='urn:oasis:names:tc:opendocument:xmlns:container'>\n"
        "  <rootfiles>\n"
        "    <rootfile full-path='content.opf' media-type='application/oebps-package+xml'/>\n"
        "  </rootfiles>\n"
        "</container>"
    )
    files.update({"content.opf": opf, "toc.ncx": ncx, "META-INF/container.xml": container})

    path = Path(path)
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
        # The mimetype entry must come first and be stored uncompressed.
        zf.writestr("mimetype", "application/epub+zip", compress_type=zipfile.ZIP_STORED)
        for name, content in files.items():
            zf.writestr(name, content)
    return path.read_bytes()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test storage."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_dir):
    """An initialised book store in a temporary directory."""
    book_store = BookStore(temp_dir / "folio.db")
    book_store.init()
    return book_store


@pytest.fixture
def epub_bytes(temp_dir):
    """Bytes of a two chapter sample EPUB."""
    return build_epub(temp_dir / "sample.epub")


@pytest.fixture
def make_epub(temp_dir):
    """Factory that builds EPUBs with custom contents."""
    counter = {"n": 0}

    def _make(**kwargs):
        counter["n"] += 1
        return build_epub(temp_dir / f"book{counter['n']}.epub", **kwargs)

    return _make
