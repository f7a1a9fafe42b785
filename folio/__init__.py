"""Manuscript ingestion and library service.

This package implements a FastAPI service that accepts manuscripts
(EPUB files, links to EPUB files, or pasted text), splits them into
chapters and stores them for reading.

The modules in this package are:

* ``extractor.py`` – Downloads manuscript sources with ``httpx`` and
  reduces markup to plain text with ``BeautifulSoup``. Also removes
  artifacts and publisher boilerplate from text.

* ``epub.py`` – Reads EPUB archives with ``ebooklib``, walking the
  reading order to produce chapters, and extracts cover images. Parsing
  runs under a timeout against a temporary file that is always removed.

* ``splitter.py`` – Splits pasted text at chapter headers and cuts long
  chapters into pieces that fit a single stored record.

* ``ingest.py`` – The ingestion entry point that ties the above
  together, applies caller overrides and persists the result.

* ``db.py`` – ``BookStore``, the SQLite storage for books and chapter
  records.

* ``search.py`` – Keyword search over titles, authors and genres.

* ``main.py`` – The FastAPI application.

Configuration is read from the environment in ``config.py``; errors
reported to callers are defined in ``errors.py``.
"""
