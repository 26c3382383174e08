"""Browser page serving the annotated video and status overlays."""

from __future__ import annotations

from functools import cache
from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

UI_DIR = Path(__file__).resolve().parent.parent / "ui"

pages_router = APIRouter()


@cache
def load_page(filename: str = "index.html") -> str:
    """Read a page from the UI directory.

    Raises:
        FileNotFoundError: If the page does not exist.
    """
    path = UI_DIR / filename
    if not path.exists():
        raise FileNotFoundError(f"UI page not found: {path}")
    return path.read_text(encoding="utf-8")


@pages_router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def index() -> HTMLResponse:
    return HTMLResponse(load_page())
