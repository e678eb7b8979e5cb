from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from gallery.core.context import GalleryContext, get_context

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


def _ping(engine) -> bool:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("health.store_unreachable", extra={"error_type": type(exc).__name__, "error_msg": str(exc)})
        return False
    return True


@router.get("/health")
def health_check(context: GalleryContext = Depends(get_context)) -> dict:
    """Health check endpoint.

    Reports whether the content and counters stores answer. A failing
    counters store degrades view counting only, so the overall status stays
    ``ok`` unless the content store is down.

    Returns:
        dict: ``status`` plus per-store reachability and the store layout.
    """

    content_ok = _ping(context.database.content_engine)
    counters_ok = content_ok if not context.database.is_split else _ping(context.database.counters_engine)
    return {
        "status": "ok" if content_ok else "degraded",
        "content_store": content_ok,
        "counters_store": counters_ok,
        "counters_layout": "split" if context.database.is_split else "colocated",
    }
