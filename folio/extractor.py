"""Source download and text extraction utilities.

This module fetches manuscript sources over HTTP and turns markup into
the plain text the rest of the pipeline works with. It uses ``httpx``
for requests and ``BeautifulSoup`` (with the ``lxml`` parser) for
markup. Two text passes are defined here:

* ``reduce_html`` turns an (X)HTML fragment into paragraphs separated
  by a single blank line. Block level elements become line breaks,
  every other tag is stripped and entities are decoded.

* ``normalize_text`` removes application artifacts, zero width
  characters and publisher boilerplate from any text blob.

Unlike page scraping, a manuscript download is attempted exactly once:
a failed download is reported to the caller instead of being retried.
"""

from __future__ import annotations

import re
from typing import List, Union

import httpx
from bs4 import BeautifulSoup

from . import config
from .errors import DownloadFailure
from .logger import setup_logger

logger = setup_logger(__name__)

# Some hosts refuse requests without a browser-like user agent.
DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/90.0.4430.212 Safari/537.36"
    )
}

BLOCK_TAGS = [
    "p", "div", "h1", "h2", "h3", "h4", "h5", "h6",
    "li", "br", "section", "article", "blockquote",
]

# Markers left behind by reader front-ends when text is copied out of them.
UI_ARTIFACTS = re.compile(
    r"\[?\s*(?:scroll[-_ ]?restoration(?:[-_ ]?(?:marker|id))?|__next_scroll_\w*__)\s*\]?",
    re.IGNORECASE,
)

ZERO_WIDTH = re.compile("[\u200b\u200c\u200d\ufeff]")

BOILERPLATE_LINES = re.compile(
    r"^[^\n]*(?:project gutenberg|converted by|this ebook is for|all rights reserved)[^\n]*(?:\n|$)"
    r"|^[ \t]*(?:copyright\b|©|published by\b)[^\n]*(?:\n|$)",
    re.IGNORECASE | re.MULTILINE,
)

_EXTRA_BLANK_LINES = re.compile(r"\n{3,}")

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)


def normalize_text(text: str) -> str:
    """Strip artifacts, zero width characters and boilerplate lines from ``text``.

    Boilerplate lines are removed entirely, including their line break,
    so the text around them is left as it was. The result is trimmed.
    """
    text = UI_ARTIFACTS.sub("", text)
    text = ZERO_WIDTH.sub("", text)
    text = BOILERPLATE_LINES.sub("", text)
    text = _EXTRA_BLANK_LINES.sub("\n\n", text)
    return text.strip()


def make_soup(html_doc: Union[str, bytes]) -> BeautifulSoup:
    """Parse markup with lxml, decoding bytes as UTF-8 first."""
    if isinstance(html_doc, bytes):
        html_doc = html_doc.decode("utf-8", errors="replace")
    # lxml rejects str input that still declares an encoding
    html_doc = _XML_DECLARATION.sub("", html_doc)
    return BeautifulSoup(html_doc, "lxml")


def reduce_html(html_doc: Union[str, bytes]) -> str:
    """Reduce (X)HTML markup to plain text paragraphs.

    Only the ``<body>`` is considered when the document has one;
    ``script``, ``style`` and ``head`` elements are discarded. Block
    elements are surrounded with line breaks before the text is
    collected, so inline markup such as ``<em>`` stays within its
    paragraph. Each non-empty line becomes one paragraph and paragraphs
    are joined with ``"\\n\\n"``.
    """
    soup = make_soup(html_doc)
    for element in soup(["script", "style", "head"]):
        element.decompose()

    root = soup.body or soup
    for tag in root.find_all(BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")

    text = root.get_text().replace("\xa0", " ")
    paragraphs: List[str] = []
    for line in text.splitlines():
        line = " ".join(line.split())
        if line:
            paragraphs.append(line)
    return "\n\n".join(paragraphs)


async def download_source(url: str, client: httpx.AsyncClient) -> bytes:
    """Download the manuscript at ``url`` and return its raw bytes.

    Raises ``DownloadFailure`` on transport errors, non-2xx responses
    and bodies larger than ``config.MAX_DOWNLOAD_BYTES``.
    """
    try:
        response = await client.get(url, headers=DEFAULT_HEADERS, follow_redirects=True)
    except httpx.HTTPError as e:
        raise DownloadFailure(f"Could not download {url}: {e}") from e
    if not response.is_success:
        raise DownloadFailure(f"Could not download {url}: HTTP {response.status_code}")
    if len(response.content) > config.MAX_DOWNLOAD_BYTES:
        raise DownloadFailure(
            f"Source at {url} exceeds the {config.MAX_DOWNLOAD_BYTES} byte limit"
        )
    logger.info("Downloaded %d bytes from %s", len(response.content), url)
    return response.content
