"""
HTTP Range header resolution.

Maps an inbound ``Range`` header onto a concrete byte span of a file whose
total size is known (or unknown, when the FTP server refused the size
query).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ResolvedRange:
    """
    A validated byte span.

    When ``total`` is known and positive: ``0 <= start <= end < total``.
    When ``total`` is None the span is unbounded and ``end`` is None.
    """

    start: int
    end: int | None
    total: int | None
    partial: bool = False

    @property
    def length(self) -> int | None:
        """Number of bytes in the span, or None when unbounded."""
        if self.end is None:
            return None
        return self.end - self.start + 1

    @property
    def content_range(self) -> str:
        return f"bytes {self.start}-{self.end}/{self.total}"


def full_range(total_size: int | None) -> ResolvedRange:
    """The whole file, sent with a 200 status."""
    if total_size is None:
        return ResolvedRange(start=0, end=None, total=None)
    return ResolvedRange(start=0, end=total_size - 1, total=total_size)


def _parse_int(text: str) -> int | None:
    text = text.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def resolve_range(range_header: str | None, total_size: int | None) -> ResolvedRange:
    """
    Resolve a Range header against a file size.

    Args:
        range_header: The raw header value (e.g. "bytes=0-1023") or None.
        total_size: Size of the file in bytes, or None if unknown.

    Returns:
        The resolved range. ``partial`` is set when a ``bytes=`` header was
        given and the size is known and positive.
    """
    if not range_header or not total_size:
        return full_range(total_size)

    header = range_header.strip()
    if not header.lower().startswith("bytes="):
        return full_range(total_size)

    # Only the first range of a multi-range request is honoured
    first = header[6:].split(",")[0]
    start_text, _, end_text = first.partition("-")

    start = _parse_int(start_text)
    end = _parse_int(end_text)

    last = total_size - 1

    if start is None or start < 0:
        start = 0
    if end is None or end > last:
        end = last

    # Clamp values
    start = min(start, last)
    end = max(start, end)

    return ResolvedRange(start=start, end=end, total=total_size, partial=True)
