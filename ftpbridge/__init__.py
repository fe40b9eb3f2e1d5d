"""
ftpbridge - Browse and stream an FTP server over HTTP.

ftpbridge exposes a remote FTP server's directory tree and files over HTTP
(with byte-range support for media players) and offers a shared
"watch together" playback channel for media files.
"""

__version__ = "0.1.0"
__license__ = "GPL-2.0"

from ftpbridge.server import FtpBridgeServer

__all__ = ["FtpBridgeServer", "__version__"]
