from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from gallery.core.context import GalleryContext, get_context
from gallery.core.errors import NotFoundAppError
from gallery.schemas.theme import ThemeResponse
from gallery.services.theme_service import FRAGMENT_NAMES

router = APIRouter(prefix="/api/theme", tags=["Theme"])


@router.get("", response_model=ThemeResponse)
def get_theme(context: GalleryContext = Depends(get_context)) -> dict:
    return context.themes.get_theme()


@router.get("/fragments/{section}", response_class=HTMLResponse)
def get_fragment(section: str, context: GalleryContext = Depends(get_context)) -> HTMLResponse:
    """Pre-rendered custom header or footer HTML."""
    if section not in FRAGMENT_NAMES:
        raise NotFoundAppError(
            code="fragment_not_found",
            message="Unknown theme fragment",
            details={"field": "section"},
        )
    return HTMLResponse(context.themes.get_fragment(section))
