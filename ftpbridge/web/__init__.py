"""
ftpbridge Web Layer.

Components:
- WebServer: FastAPI application with all routes
- RemoteFileResponse: Streaming response that owns its FTP connection
"""

from ftpbridge.web.routes.streaming import RemoteFileResponse
from ftpbridge.web.server import WebServer

__all__ = [
    "WebServer",
    "RemoteFileResponse",
]
