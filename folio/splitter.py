"""Chapter splitting for pasted manuscripts and size bounding for storage.

``split_pasted_text`` finds chapter headers in plain text with a single
regular expression. The heuristic is intentionally naive: a mention of
"chapter 5" in the middle of a sentence starts a new chapter just like a
real header does.

``chunk_text`` cuts a chapter into pieces small enough to be stored as
individual chapter records.
"""

from __future__ import annotations

import re
from typing import List

from . import config
from .models import ChapterCandidate

CHAPTER_HEADER = re.compile(
    r"chapter\s+(?:\d+|[ivxlcdm]+)\b|^\d+\.",
    re.IGNORECASE | re.MULTILINE,
)

FULL_VOLUME_TITLE = "Full Volume"


def split_pasted_text(text: str) -> List[ChapterCandidate]:
    """Split pasted ``text`` into chapters at every header match.

    Each chapter runs from the start of its header to the start of the
    next one, and is titled with the header text. Text before the first
    header belongs to no chapter. Without any header the whole input is
    returned as a single ``"Full Volume"`` chapter.
    """
    matches = list(CHAPTER_HEADER.finditer(text))
    if not matches:
        return [ChapterCandidate(title=FULL_VOLUME_TITLE, content=text)]

    chapters: List[ChapterCandidate] = []
    for idx, match in enumerate(matches):
        end = matches[idx + 1].start() if idx + 1 < len(matches) else len(text)
        chapters.append(
            ChapterCandidate(
                title=match.group(0).strip(),
                content=text[match.start():end].strip(),
            )
        )
    return chapters


def chunk_text(text: str, max_size: int = config.CHUNK_SIZE) -> List[str]:
    """Slice ``text`` into consecutive pieces of at most ``max_size`` characters.

    Joining the pieces gives back ``text`` exactly. Empty input yields
    an empty list.
    """
    if max_size < 1:
        raise ValueError("max_size must be a positive number of characters")
    return [text[i:i + max_size] for i in range(0, len(text), max_size)]
