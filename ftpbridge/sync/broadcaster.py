"""
Playback Broadcaster for the watch-together page.

A publish/subscribe hub with two message kinds:
- Snapshot ("sync"): the full playback state, sent once to a viewer when it
  joins and to nobody else.
- Delta ("update"): a partial state change, sent to every viewer except
  the one that made it.

Usage:
    broadcaster = PlaybackBroadcaster()

    viewer = broadcaster.join()            # outbox: [Snapshot]
    broadcaster.update({"paused": False}, viewer)
    broadcaster.leave(viewer)

ORDERING:
=========
join() and update() never await. Registering a viewer and queueing its
snapshot happen in one step, and so do merging an update and queueing the
delta for the other viewers. A viewer therefore always sees its snapshot
first, and every viewer sees deltas in the order the broadcaster applied
them. Network writes happen later, from each viewer's own sender task,
outside any shared lock.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any

from ftpbridge.sync.state import PlaybackState, validate_partial

logger = logging.getLogger(__name__)

_viewer_ids = itertools.count(1)


@dataclass
class Message:
    """Base class for messages sent to viewers."""

    event: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert message to dictionary for JSON serialization."""
        return {"event": self.event, "data": self.data}


@dataclass
class Snapshot(Message):
    """Full playback state for a newly joined viewer."""

    event: str = field(default="sync", init=False)


@dataclass
class Delta(Message):
    """Partial playback state change from another viewer."""

    event: str = field(default="update", init=False)


@dataclass(eq=False)
class Viewer:
    """
    A connected viewer.

    Holds no playback state of its own, only the queue of messages waiting
    to be written to its connection.
    """

    viewer_id: str
    outbox: asyncio.Queue[Message] = field(default_factory=asyncio.Queue)

    async def next_message(self) -> Message:
        return await self.outbox.get()

    def pending(self) -> list[Message]:
        """Drain and return all queued messages without waiting."""
        messages = []
        while not self.outbox.empty():
            messages.append(self.outbox.get_nowait())
        return messages


class PlaybackBroadcaster:
    """
    Sole owner of the shared PlaybackState.

    Only update() mutates the state.
    """

    def __init__(self, state: PlaybackState | None = None) -> None:
        self._state = state or PlaybackState()
        self._viewers: dict[str, Viewer] = {}

    @property
    def viewer_count(self) -> int:
        return len(self._viewers)

    def snapshot(self) -> dict[str, Any]:
        """Copy of the current playback state."""
        return self._state.to_dict()

    def join(self, viewer_id: str | None = None) -> Viewer:
        """
        Register a new viewer.

        The returned viewer's outbox already holds the current snapshot, so
        it precedes any delta queued afterwards.
        """
        viewer = Viewer(viewer_id=viewer_id or f"viewer-{next(_viewer_ids)}")
        viewer.outbox.put_nowait(Snapshot(data=self.snapshot()))
        self._viewers[viewer.viewer_id] = viewer

        logger.info("Connected: %s (%d viewers)", viewer.viewer_id, len(self._viewers))
        return viewer

    def leave(self, viewer: Viewer) -> None:
        """Deregister a viewer. The playback state is left untouched."""
        if self._viewers.pop(viewer.viewer_id, None) is not None:
            logger.info("Left: %s (%d viewers)", viewer.viewer_id, len(self._viewers))

    def update(self, data: Any, from_viewer: Viewer | None = None) -> int:
        """
        Merge a partial update and relay it to every other viewer.

        Args:
            data: The partial state sent by a viewer.
            from_viewer: The sender; it does not get its own update back.

        Returns:
            Number of viewers the delta was queued for.

        Raises:
            InvalidUpdate: If the payload is invalid. Nothing is merged or
                relayed in that case.
        """
        partial = validate_partial(data)
        if not partial:
            return 0

        self._state.merge(partial)

        sender_id = from_viewer.viewer_id if from_viewer is not None else None
        delivered = 0
        for viewer in self._viewers.values():
            if viewer.viewer_id == sender_id:
                continue
            viewer.outbox.put_nowait(Delta(data=dict(partial)))
            delivered += 1

        logger.debug("Update from %s relayed to %d viewer(s): %s", sender_id, delivered, partial)
        return delivered
