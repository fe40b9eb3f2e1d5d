"""
Web Routes Package.

This package contains FastAPI route modules:
- browse: Directory listing (/)
- streaming: File streaming (/file)
- videosync: Watch-together page and channel (/videosync, /ws/videosync)
"""

from ftpbridge.web.routes.browse import register_browse_routes
from ftpbridge.web.routes.streaming import register_streaming_routes
from ftpbridge.web.routes.videosync import register_videosync_routes

__all__ = [
    "register_browse_routes",
    "register_streaming_routes",
    "register_videosync_routes",
]
