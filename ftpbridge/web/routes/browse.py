"""
Browse Routes for ftpbridge.

Provides the / endpoint: an HTML listing of a remote FTP directory.
"""

from __future__ import annotations

import logging
import posixpath
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException
from fastapi.responses import HTMLResponse

from ftpbridge.remote.listing import list_directory
from ftpbridge.web.pages import render_index

if TYPE_CHECKING:
    from ftpbridge.remote.client import RemoteStoreFactory

logger = logging.getLogger(__name__)

router = APIRouter(tags=["browse"])

# Reference to RemoteStoreFactory, set during route registration
_factory: RemoteStoreFactory | None = None


def register_browse_routes(app, factory: RemoteStoreFactory) -> None:
    """
    Register browse routes with the FastAPI app.

    Args:
        app: FastAPI application instance
        factory: RemoteStoreFactory used to open one connection per listing
    """
    global _factory
    _factory = factory
    app.include_router(router)


def normalize_path(path: str | None) -> str:
    """Absolute, normalized POSIX path; empty means the root."""
    if not path:
        return "/"
    normalized = posixpath.normpath("/" + path.lstrip("/"))
    # normpath keeps a leading "//"
    return "/" + normalized.lstrip("/")


@router.get("/", response_class=HTMLResponse)
async def browse(path: str | None = None) -> HTMLResponse:
    """
    List a remote directory.

    Args:
        path: Directory to list (default "/").
    """
    if _factory is None:
        raise HTTPException(status_code=503, detail="Remote store not initialized")

    directory = normalize_path(path)

    async with _factory.session() as connection:
        entries = await list_directory(connection, directory)

    logger.debug("Listed %s (%d entries)", directory, len(entries))
    return HTMLResponse(render_index(directory, entries, _factory.config.address))
