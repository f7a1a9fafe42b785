"""Book and chapter storage for the Folio service.

Books and their chapter records live in an SQLite database. A
``BookStore`` is constructed with the database path and handed to
whoever needs it; there is no process wide connection. Each method
opens its own connection using the standard ``sqlite3`` module and
closes it before returning, so a store can be shared between requests
and threads.

The schema is created by ``init()``. A book row is the root document
(title, author, lower-cased copies of both for search, genres stored as
a JSON list, chapter count and timestamps). Chapter rows are keyed by
``(book_id, chapter_number)``; writing chapters again for the same book
overwrites matching numbers. Any ``sqlite3.Error`` is re-raised as
``PersistenceFailure``.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from .errors import PersistenceFailure
from .logger import setup_logger

logger = setup_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BookStore:
    """SQLite backed store for books and chapter records."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection that commits on success and always closes.

        ``row_factory`` is set so rows behave like dictionaries keyed by
        column names.
        """
        try:
            conn = sqlite3.connect(self.path)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not open database {self.path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceFailure(f"Database error: {e}") from e
        finally:
            conn.close()

    def init(self) -> None:
        """Create the tables if they do not exist. Safe to call repeatedly."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS books (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    title_lower TEXT NOT NULL,
                    author TEXT NOT NULL,
                    author_lower TEXT NOT NULL,
                    genre TEXT NOT NULL,
                    total_chapters INTEGER NOT NULL DEFAULT 0,
                    owner_id TEXT,
                    created_at TEXT NOT NULL,
                    last_updated TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chapters (
                    book_id TEXT NOT NULL,
                    chapter_number INTEGER NOT NULL CHECK (chapter_number >= 1),
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    owner_id TEXT,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (book_id, chapter_number),
                    FOREIGN KEY(book_id) REFERENCES books(id) ON DELETE CASCADE
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")

    @staticmethod
    def _book_from_row(row: sqlite3.Row) -> Dict[str, Any]:
        book = dict(row)
        book["genre"] = json.loads(book["genre"]) if book.get("genre") else []
        return book

    def find_book_by_title(self, title: str) -> Optional[Dict[str, Any]]:
        """Return the oldest book whose title matches ``title`` exactly."""
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM books WHERE title = ? ORDER BY created_at ASC LIMIT 1",
                (title,),
            ).fetchone()
        return self._book_from_row(row) if row else None

    def create_book(self, title: str, author: str, genre: Sequence[str],
                    owner_id: Optional[str] = None) -> str:
        """Insert a new book root and return its generated id."""
        book_id = str(uuid.uuid4())
        now = _now()
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO books(id, title, title_lower, author, author_lower, genre,
                                  total_chapters, owner_id, created_at, last_updated)
                VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?)
                """,
                (book_id, title, title.lower(), author, author.lower(),
                 json.dumps(list(genre)), owner_id, now, now),
            )
        return book_id

    def update_book(self, book_id: str, *, title: Optional[str] = None,
                    author: Optional[str] = None,
                    genre: Optional[Sequence[str]] = None) -> bool:
        """Update bibliographic fields of a book.

        Only the provided arguments change; the lower-cased search
        columns follow their source fields. Returns ``False`` when no
        book has ``book_id``.
        """
        parts: List[str] = []
        params: List[Any] = []
        if title is not None:
            parts += ["title = ?", "title_lower = ?"]
            params += [title, title.lower()]
        if author is not None:
            parts += ["author = ?", "author_lower = ?"]
            params += [author, author.lower()]
        if genre is not None:
            parts.append("genre = ?")
            params.append(json.dumps(list(genre)))
        parts.append("last_updated = ?")
        params += [_now(), book_id]
        with self.connect() as conn:
            cur = conn.execute(f"UPDATE books SET {', '.join(parts)} WHERE id = ?", params)
            return cur.rowcount > 0

    def write_chapters(self, book_id: str, chapters: Sequence[Dict[str, str]],
                       owner_id: Optional[str] = None) -> int:
        """Store ``chapters`` as records numbered 1..N in a single transaction.

        Each item needs ``title`` and ``content``. Existing records with
        the same numbers are replaced and records numbered above N are
        removed, so the book ends up with exactly N chapters. The book's
        ``total_chapters`` is set to N, which is returned.
        """
        now = _now()
        rows = [
            (book_id, number, chapter["title"], chapter["content"], owner_id, now)
            for number, chapter in enumerate(chapters, start=1)
        ]
        with self.connect() as conn:
            conn.executemany(
                """
                INSERT OR REPLACE INTO chapters(book_id, chapter_number, title, content,
                                                owner_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            conn.execute(
                "DELETE FROM chapters WHERE book_id = ? AND chapter_number > ?",
                (book_id, len(rows)),
            )
            conn.execute(
                "UPDATE books SET total_chapters = ?, last_updated = ? WHERE id = ?",
                (len(rows), now, book_id),
            )
        logger.debug("Wrote %d chapter records for book %s", len(rows), book_id)
        return len(rows)

    def get_book(self, book_id: str) -> Optional[Dict[str, Any]]:
        """Return the book row for ``book_id`` as a dict, or None if absent."""
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM books WHERE id = ?", (book_id,)).fetchone()
        return self._book_from_row(row) if row else None

    def get_chapters(self, book_id: str) -> List[Dict[str, Any]]:
        """Return the chapter index of a book (numbers and titles, no content)."""
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT chapter_number, title FROM chapters WHERE book_id = ? "
                "ORDER BY chapter_number ASC",
                (book_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    def get_chapter(self, book_id: str, chapter_number: int) -> Optional[Dict[str, Any]]:
        """Return a full chapter record."""
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM chapters WHERE book_id = ? AND chapter_number = ?",
                (book_id, chapter_number),
            ).fetchone()
        return dict(row) if row else None

    def delete_book(self, book_id: str) -> bool:
        """Delete a book and all of its chapters. Returns ``False`` if absent."""
        with self.connect() as conn:
            conn.execute("DELETE FROM chapters WHERE book_id = ?", (book_id,))
            cur = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            return cur.rowcount > 0

    def list_books(self) -> List[Dict[str, Any]]:
        """Return all books, most recently updated first."""
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM books ORDER BY last_updated DESC").fetchall()
        return [self._book_from_row(row) for row in rows]

    def list_books_by_genre(self, genre: str) -> List[Dict[str, Any]]:
        """Return books tagged with exactly ``genre``, most recently updated first.

        The match is case sensitive, like the genre tags themselves.
        """
        return [book for book in self.list_books() if genre in book["genre"]]
