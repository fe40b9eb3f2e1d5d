"""
Shared playback state for the watch-together page.

There is exactly one PlaybackState per process. It is replaced field by
field with partial updates; there is no versioning, the last merge wins.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any

logger = logging.getLogger(__name__)

PLAYBACK_FIELDS = ("url", "position", "speed", "paused")


class InvalidUpdate(ValueError):
    """Raised when a partial update carries a field of the wrong type."""


@dataclass
class PlaybackState:
    """What is playing, where, how fast, and whether it is paused."""

    url: str = ""
    position: float = 0.0
    speed: float = 1.0
    paused: bool = True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def merge(self, partial: dict[str, Any]) -> None:
        """
        Shallow-merge an already validated partial update.

        Fields absent from ``partial`` keep their value. No await happens
        here, so a merge is atomic with respect to other merges.
        """
        for name in PLAYBACK_FIELDS:
            if name in partial:
                setattr(self, name, partial[name])


def _as_number(name: str, value: Any) -> float:
    # bool is an int subclass; "paused: true" must not become a position
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidUpdate(f"{name} must be a number")
    number = float(value)
    if not math.isfinite(number):
        raise InvalidUpdate(f"{name} must be finite")
    return number


def validate_partial(data: Any) -> dict[str, Any]:
    """
    Validate a partial update received from a viewer.

    Unknown keys are dropped. Known keys are type-checked and normalized.

    Args:
        data: The decoded JSON payload of an ``update`` event.

    Returns:
        A dict containing only known, valid playback fields.

    Raises:
        InvalidUpdate: If the payload is not an object or a known field has
            an invalid value.
    """
    if not isinstance(data, dict):
        raise InvalidUpdate("update payload must be an object")

    partial: dict[str, Any] = {}

    if "url" in data:
        if not isinstance(data["url"], str):
            raise InvalidUpdate("url must be a string")
        partial["url"] = data["url"]

    if "position" in data:
        position = _as_number("position", data["position"])
        if position < 0:
            raise InvalidUpdate("position must not be negative")
        partial["position"] = position

    if "speed" in data:
        speed = _as_number("speed", data["speed"])
        if speed <= 0:
            raise InvalidUpdate("speed must be positive")
        partial["speed"] = speed

    if "paused" in data:
        if not isinstance(data["paused"], bool):
            raise InvalidUpdate("paused must be a boolean")
        partial["paused"] = data["paused"]

    ignored = set(data) - set(PLAYBACK_FIELDS)
    if ignored:
        logger.debug("Ignoring unknown playback fields: %s", sorted(ignored))

    return partial
