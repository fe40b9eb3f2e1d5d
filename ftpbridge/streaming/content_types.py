"""MIME type lookup by file extension."""

from __future__ import annotations

import posixpath

CONTENT_TYPES = {
    ".html": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".zip": "application/zip",
    ".rar": "application/x-rar-compressed",
    ".json": "application/json",
    ".xml": "application/xml",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Extensions that get a "Play" link to the watch-together page
PLAYABLE_EXTENSIONS = frozenset({".mp4", ".mkv", ".mp3"})


def content_type_for(name: str) -> str:
    """Get the MIME type for a file name or path."""
    suffix = posixpath.splitext(name)[1].lower()
    return CONTENT_TYPES.get(suffix, DEFAULT_CONTENT_TYPE)


def is_playable(name: str) -> bool:
    return posixpath.splitext(name)[1].lower() in PLAYABLE_EXTENSIONS
