"""Tests for catalogue search."""

from folio.search import search_books


class TestSearchBooks:
    """Tests for search_books."""

    def test_title_hits_rank_first(self, store):
        """Title matches outrank author matches."""
        by_author = store.create_book("Collected Letters", "Mary Shelley", [])
        by_title = store.create_book("Shelley's Garden", "Anonymous", [])

        results = search_books(store, "shelley")

        assert [b["id"] for b in results] == [by_title, by_author]

    def test_no_hits(self, store):
        """Books without a hit are left out."""
        store.create_book("Dune", "Frank Herbert", [])

        assert search_books(store, "tolkien") == []

    def test_genre_keyword(self, store):
        """A genre name matches books tagged with it."""
        book_id = store.create_book("Untitled", "Anonymous", ["Horror"])

        assert [b["id"] for b in search_books(store, "horror")] == [book_id]

    def test_empty_query_returns_everything(self, store):
        """An empty query lists every book."""
        store.create_book("A", "x", [])
        store.create_book("B", "y", [])

        assert len(search_books(store, "  ")) == 2
