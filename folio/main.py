"""Main FastAPI application for the Folio service.

This module defines the HTTP API of the library: manuscript ingestion
(from a URL, a direct EPUB upload or pasted text), cover extraction,
reading endpoints, metadata edits, deletion, search and browsing by
genre.

The book store and the outbound HTTP client are created on startup and
kept on ``app.state``. Route handlers receive them through FastAPI
dependencies, so tests can put their own instances on ``app.state``
before the application starts. Pipeline failures are ``IngestionError``
subclasses; one exception handler turns them into JSON error responses
with the status code each error class declares.
"""

from __future__ import annotations

import base64
from typing import Any, Dict, Optional

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from . import config, epub, search
from .db import BookStore
from .errors import BookNotFound, IngestionError
from .ingest import ingest
from .logger import setup_logger
from .models import IngestRequest, Overrides, text_field

logger = setup_logger(__name__)

app = FastAPI(title="Folio Manuscript Library")


@app.on_event("startup")
async def on_startup() -> None:
    """Create the store and HTTP client unless they were provided."""
    if getattr(app.state, "store", None) is None:
        app.state.store = BookStore(config.DB_PATH)
    app.state.store.init()
    if getattr(app.state, "http_client", None) is None:
        app.state.http_client = httpx.AsyncClient(timeout=config.DOWNLOAD_TIMEOUT)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    client = getattr(app.state, "http_client", None)
    if client is not None:
        await client.aclose()
        app.state.http_client = None


def get_store(request: Request) -> BookStore:
    return request.app.state.store


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


@app.exception_handler(IngestionError)
async def ingestion_error_handler(request: Request, exc: IngestionError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def _read_json(request: Request) -> Dict[str, Any]:
    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return data


def _ingest_response(result) -> JSONResponse:
    return JSONResponse(result.to_dict())


@app.post("/api/ingest")
async def ingest_endpoint(
    request: Request,
    store: BookStore = Depends(get_store),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> Response:
    """Ingest a manuscript from ``fileUrl`` or ``pastedText``.

    Optional ``title``, ``author`` and ``genre`` override what is found
    in the manuscript. With ``returnOnly`` the parsed book is returned
    and nothing is stored; otherwise the stored book id and chapter
    count are returned.
    """
    data = await _read_json(request)
    ingest_request = IngestRequest.from_payload(data)
    result = await ingest(ingest_request, store=store, client=client)
    return _ingest_response(result)


@app.post("/api/ingest/epub")
async def ingest_epub_endpoint(
    request: Request,
    title: Optional[str] = None,
    author: Optional[str] = None,
    genre: Optional[str] = None,
    returnOnly: bool = False,
    ownerId: Optional[str] = None,
    store: BookStore = Depends(get_store),
) -> Response:
    """Ingest an EPUB sent as the raw request body."""
    body = await request.body()
    if not body:
        raise HTTPException(status_code=400, detail="No file uploaded")
    ingest_request = IngestRequest(
        overrides=Overrides(
            title=title or None,
            author=author or None,
            genre=[g.strip() for g in genre.split(",") if g.strip()] if genre else None,
        ),
        return_only=returnOnly,
        owner_id=ownerId,
    )
    result = await ingest(ingest_request, store=store, epub_data=body)
    return _ingest_response(result)


@app.post("/api/extract-cover")
async def extract_cover_endpoint(request: Request) -> Response:
    """Return the cover image of the EPUB in the request body as a data URI."""
    body = await request.body()
    if not body:
        raise HTTPException(status_code=400, detail="No digital volume detected.")
    media_type, data = await epub.extract_cover(body)
    encoded = base64.b64encode(data).decode("ascii")
    return JSONResponse({"success": True, "dataUri": f"data:{media_type};base64,{encoded}"})


def _require_book(store: BookStore, book_id: str) -> Dict[str, Any]:
    book = store.get_book(book_id)
    if not book:
        raise BookNotFound(f"Book {book_id} not found")
    return book


@app.get("/books/{book_id}")
def get_book(book_id: str, store: BookStore = Depends(get_store)) -> Response:
    book = _require_book(store, book_id)
    return JSONResponse({"book": book, "chapters": store.get_chapters(book_id)})


@app.get("/books/{book_id}/chapters/{chapter_number}")
def get_chapter(book_id: str, chapter_number: int,
                store: BookStore = Depends(get_store)) -> Response:
    _require_book(store, book_id)
    chapter = store.get_chapter(book_id, chapter_number)
    if not chapter:
        raise HTTPException(status_code=404, detail="Chapter not found")
    return JSONResponse(chapter)


@app.patch("/books/{book_id}")
async def update_book(book_id: str, request: Request,
                      store: BookStore = Depends(get_store)) -> Response:
    """Update the title and/or author of a book."""
    data = await _read_json(request)
    title = text_field(data, "title")
    author = text_field(data, "author")
    if title is None and author is None:
        raise HTTPException(status_code=400, detail="Nothing to update")
    if not await run_in_threadpool(store.update_book, book_id, title=title, author=author):
        raise BookNotFound(f"Book {book_id} not found")
    book = await run_in_threadpool(store.get_book, book_id)
    return JSONResponse({"book": book})


@app.delete("/books/{book_id}")
def delete_book(book_id: str, store: BookStore = Depends(get_store)) -> Response:
    if not store.delete_book(book_id):
        raise BookNotFound(f"Book {book_id} not found")
    return JSONResponse({"deleted": book_id})


@app.get("/search")
def search_endpoint(q: Optional[str] = None, store: BookStore = Depends(get_store)) -> Response:
    """Search books by title, author and genre keywords."""
    return JSONResponse({"results": search.search_books(store, q or "")})


@app.get("/genre/{genre}")
def genre_endpoint(genre: str, store: BookStore = Depends(get_store)) -> Response:
    """List the books tagged with ``genre`` (exact, case sensitive)."""
    return JSONResponse({"genre": genre, "books": store.list_books_by_genre(genre)})
