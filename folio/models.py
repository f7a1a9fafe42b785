"""Record types passed between the ingestion stages and the store."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .errors import InvalidRequest


@dataclass
class ChapterCandidate:
    """A chapter produced by either extraction path."""

    title: str
    content: str


@dataclass
class ParsedBook:
    """Normalized result of one ingestion, before it is persisted."""

    title: str
    author: str
    chapters: List[ChapterCandidate] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Overrides:
    """Caller supplied metadata that wins over extracted values."""

    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[List[str]] = None


@dataclass
class IngestRequest:
    file_url: Optional[str] = None
    pasted_text: Optional[str] = None
    overrides: Overrides = field(default_factory=Overrides)
    return_only: bool = False
    owner_id: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "IngestRequest":
        """Build a request from the JSON body accepted by ``/api/ingest``.

        Blank strings count as absent. ``genre`` may be a list or a
        comma separated string. A field of the wrong type raises
        ``InvalidRequest``.
        """
        return cls(
            file_url=text_field(data, "fileUrl"),
            pasted_text=text_field(data, "pastedText", strip=False),
            overrides=Overrides(
                title=text_field(data, "title"),
                author=text_field(data, "author"),
                genre=_genre_field(data.get("genre")),
            ),
            return_only=parse_flag(data.get("returnOnly"), "returnOnly"),
            owner_id=text_field(data, "ownerId"),
        )


_TRUE_WORDS = {"true", "1", "yes", "on"}
_FALSE_WORDS = {"false", "0", "no", "off", ""}


def parse_flag(value: Any, name: str) -> bool:
    """Interpret a JSON or query-string boolean. ``None`` means ``False``."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise InvalidRequest(f"'{name}' must be a boolean")


def text_field(data: Dict[str, Any], name: str, strip: bool = True) -> Optional[str]:
    """Return the string at ``data[name]``, or None when it is missing or blank."""
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRequest(f"'{name}' must be a string")
    if not value.strip():
        return None
    return value.strip() if strip else value


def _genre_field(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list) or not all(isinstance(g, str) for g in value):
        raise InvalidRequest("'genre' must be a list of strings or a comma separated string")
    return [g.strip() for g in value if g.strip()] or None


@dataclass
class IngestResult:
    """Outcome of a persisted ingestion."""

    book_id: str
    title: str
    author: str
    genre: List[str]
    total_chapters: int
    created: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bookId": self.book_id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "totalChapters": self.total_chapters,
            "created": self.created,
        }
