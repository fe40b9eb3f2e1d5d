"""
Watch-together playback synchronization.

Components:
    PlaybackState: The single shared "now playing" record.
    PlaybackBroadcaster: Merges updates and fans them out to viewers.
"""

from ftpbridge.sync.broadcaster import Delta, Message, PlaybackBroadcaster, Snapshot, Viewer
from ftpbridge.sync.state import InvalidUpdate, PlaybackState, validate_partial

__all__ = [
    "PlaybackState",
    "PlaybackBroadcaster",
    "Viewer",
    "Message",
    "Snapshot",
    "Delta",
    "InvalidUpdate",
    "validate_partial",
]
