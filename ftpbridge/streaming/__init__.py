"""
Streaming module for ftpbridge.

Components:
    StreamingGateway: Maps HTTP file requests onto FTP downloads.
    RemoteFileStream: One prepared response that owns its FTP connection.
    resolve_range: Range header resolution.
"""

from ftpbridge.streaming.gateway import (
    CancellationToken,
    RemoteFileStream,
    StreamingGateway,
    StreamState,
)
from ftpbridge.streaming.ranges import ResolvedRange, resolve_range

__all__ = [
    "StreamingGateway",
    "RemoteFileStream",
    "StreamState",
    "CancellationToken",
    "ResolvedRange",
    "resolve_range",
]
