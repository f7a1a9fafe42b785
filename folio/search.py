"""Simple search over the book catalogue.

Books carry lower-cased copies of their title and author. A query is
split into keywords and every book is scored by where the keywords
occur: title hits outweigh author hits, and genre tags count a little.
Books without any hit are left out. Results are ordered by descending
score.
"""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from .db import BookStore


def search_books(store: BookStore, query: str) -> List[Dict[str, Any]]:
    """Search books by keyword matching.

    Args:
        store: The store holding the catalogue.
        query: Space-separated keywords to search for.

    Returns:
        Matching book dicts sorted by descending relevance score. An
        empty query returns every book, most recently updated first.
    """
    books = store.list_books()
    query = query.strip().lower()
    if not query:
        return books

    keywords = query.split()
    results: List[Tuple[Dict[str, Any], float]] = []
    for book in books:
        score = 0.0
        title = book.get("title_lower") or ""
        author = book.get("author_lower") or ""
        genres = [g.lower() for g in book.get("genre") or []]

        for kw in keywords:
            if kw in title:
                score += 4.0
            if kw in author:
                score += 2.0
            if kw in genres:
                score += 1.0

        if score == 0.0:
            continue
        results.append((book, score))

    # sort() is stable, so equal scores keep the recency order
    results.sort(key=lambda item: item[1], reverse=True)
    return [book for book, _ in results]
