from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from fastapi import Body, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse

from .layout import TextMeasurer, Viewport
from .library import SORT_MODES, group_by_author, list_books
from .session import ReadingSession
from .store import ReaderStore


@dataclass(slots=True)
class WebConfig:
    root: Path
    viewport: Viewport = field(default_factory=Viewport)
    char_width_ratio: float = 0.5


def _resolve_book_path(root: Path, book_id: str) -> Path:
    candidate = (root / book_id).resolve()
    try:
        candidate.relative_to(root)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail="Book not found") from exc
    if not candidate.is_file():
        raise HTTPException(status_code=404, detail="Book not found")
    return candidate


def _normalize_sort_mode(value: str | None) -> str:
    if not value:
        return "author"
    normalized = value.strip().lower()
    if normalized in SORT_MODES:
        return normalized
    raise HTTPException(status_code=400, detail="Invalid sort mode.")


def _bookmark_payload(session: ReadingSession) -> dict[str, object]:
    return {"bookmarks": [anchor.to_payload() for anchor in session.bookmarks()]}


def create_app(config: WebConfig) -> FastAPI:
    root = config.root.expanduser().resolve()
    if not root.exists():
        raise FileNotFoundError(f"Library root not found: {root}")

    store = ReaderStore.in_directory(root)
    # Session endpoints are async: they run on the event loop one at a time,
    # and only archive reading leaves it (see ReadingSession.load_path_async).
    session = ReadingSession(
        viewport=config.viewport,
        measurer=TextMeasurer(char_width_ratio=config.char_width_ratio),
        settings=store.load_settings(),
        store=store,
    )

    app = FastAPI(title="quire reader")
    app.state.config = config
    app.state.root = root
    app.state.session = session

    def _require_book() -> None:
        if session.book_id is None:
            raise HTTPException(status_code=409, detail="No book loaded.")

    @app.get("/api/books")
    def api_books(
        q: str = Query(""),
        sort: str | None = Query(None, description="Sort order: author or recent"),
    ) -> JSONResponse:
        sort_mode = _normalize_sort_mode(sort)
        grouped = group_by_author(list_books(root, q, sort_mode))
        return JSONResponse(
            {
                "authors": [
                    {"author": author, "books": [book.to_payload() for book in books]}
                    for author, books in grouped.items()
                ]
            }
        )

    @app.get("/api/session")
    async def api_session() -> JSONResponse:
        return JSONResponse(session.to_payload())

    @app.post("/api/open")
    async def api_open(payload: dict[str, object] = Body(...)) -> JSONResponse:
        book_id = payload.get("book") if isinstance(payload, dict) else None
        if not isinstance(book_id, str) or not book_id.strip():
            raise HTTPException(status_code=400, detail="book is required.")
        path = _resolve_book_path(root, book_id)
        loaded = await session.load_path_async(path, book_id=book_id)
        if not loaded:
            raise HTTPException(status_code=422, detail=session.status or "Could not open that book.")
        return JSONResponse(session.to_payload())

    @app.get("/api/page")
    async def api_page(index: int | None = Query(None)) -> JSONResponse:
        _require_book()
        if index is not None:
            session.go_to_page(index)
        result = session.result
        payload = result.page().to_payload()
        payload["total"] = result.total
        return JSONResponse(payload)

    @app.put("/api/layout")
    async def api_layout(payload: dict[str, object] = Body(...)) -> JSONResponse:
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        viewport_payload = payload.get("viewport")
        if viewport_payload is not None:
            if not isinstance(viewport_payload, dict):
                raise HTTPException(status_code=400, detail="viewport must be an object.")
            target = Viewport.from_payload(viewport_payload, base=session.viewport)
            session.update_layout(**target.as_payload())
        settings_payload = payload.get("settings")
        if isinstance(settings_payload, dict):
            dialogue = settings_payload.get("dialogue_mode")
            quotes = settings_payload.get("quote_normalize")
            session.update_settings(
                dialogue_mode=dialogue if isinstance(dialogue, bool) else None,
                quote_normalize=quotes if isinstance(quotes, bool) else None,
            )
        session.flush_layout()
        return JSONResponse(session.to_payload())

    @app.get("/api/search")
    async def api_search(q: str = Query("")) -> JSONResponse:
        _require_book()
        return JSONResponse({"query": q, "page": session.find_page(q)})

    @app.get("/api/bookmarks")
    async def api_bookmarks() -> JSONResponse:
        _require_book()
        return JSONResponse(_bookmark_payload(session))

    @app.post("/api/bookmarks")
    async def api_add_bookmark(payload: dict[str, object] = Body(...)) -> JSONResponse:
        _require_book()
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload.")
        selection = payload.get("selection")
        if not isinstance(selection, str):
            raise HTTPException(status_code=400, detail="selection must be a string.")
        page = payload.get("page")
        if page is not None and (isinstance(page, bool) or not isinstance(page, int)):
            raise HTTPException(status_code=400, detail="page must be an integer.")
        anchor = session.add_bookmark(selection, page)
        if anchor is None:
            raise HTTPException(status_code=409, detail=session.status)
        body = _bookmark_payload(session)
        body["created"] = anchor.to_payload()
        return JSONResponse(body)

    @app.delete("/api/bookmarks/{bookmark_id}")
    async def api_delete_bookmark(bookmark_id: str) -> JSONResponse:
        _require_book()
        if not store.remove_bookmark(session.book_id or "", bookmark_id):
            raise HTTPException(status_code=404, detail="Bookmark not found.")
        return JSONResponse(_bookmark_payload(session))

    @app.post("/api/bookmarks/{bookmark_id}/navigate")
    async def api_navigate_bookmark(bookmark_id: str) -> JSONResponse:
        _require_book()
        anchor = store.get_bookmark(session.book_id or "", bookmark_id)
        if anchor is None:
            raise HTTPException(status_code=404, detail="Bookmark not found.")
        found = session.navigate_to_bookmark(anchor)
        return JSONResponse(
            {"found": found, "page": session.current_page, "status": session.status}
        )

    return app


__all__ = ["WebConfig", "create_app"]
