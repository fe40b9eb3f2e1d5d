"""
Remote store access for ftpbridge.

Components:
    RemoteStoreFactory: Opens one authenticated FTP session per operation.
    RemoteConnection: A single-use session with idempotent close().
    list_directory: Sorted directory listing for the file browser.
"""

from ftpbridge.remote.client import RemoteConnection, RemoteStoreFactory, RemoteTransfer
from ftpbridge.remote.listing import RemoteEntry, list_directory, natural_sort_key

__all__ = [
    "RemoteStoreFactory",
    "RemoteConnection",
    "RemoteTransfer",
    "RemoteEntry",
    "list_directory",
    "natural_sort_key",
]
