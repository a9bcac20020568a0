"""Overlapping window reads over byte sources of any size.

A window owns ``chunk_size`` start offsets and carries ``overlap`` (longest
needle length minus one) extra bytes of lookahead. The next window starts
where the previous one's owned range ended, re-reading that lookahead, so a
needle that straddles a read boundary is seen whole exactly once.
"""
from __future__ import annotations

import io
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, List, Optional

Checkpoint = Callable[[], None]


@dataclass(frozen=True)
class Window:
    start: int
    data: bytes
    owned: int
    last: bool

    def absolute(self, index: int) -> int:
        return self.start + index

    def find_all(self, needle: bytes, haystack: Optional[bytes] = None) -> Iterator[int]:
        """Window indexes of every (overlapping) occurrence that starts in this window's owned range."""
        data = self.data if haystack is None else haystack
        pos = 0
        while True:
            idx = data.find(needle, pos)
            if idx == -1 or idx >= self.owned:
                return
            yield idx
            pos = idx + 1


def find_all_in_buffer(data: bytes, needle: bytes, start: int = 0) -> List[int]:
    if not needle:
        return []
    offsets: List[int] = []
    pos = start
    while True:
        idx = data.find(needle, pos)
        if idx == -1:
            return offsets
        offsets.append(idx)
        pos = idx + 1


def iter_windows(
    source: BinaryIO,
    overlap: int,
    chunk_size: int,
    checkpoint: Optional[Checkpoint] = None,
) -> Iterator[Window]:
    """Read ``source`` front to back; the stream is never rewound."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    overlap = max(0, overlap)
    start = 0
    carry = b""
    wanted = chunk_size + overlap
    while True:
        if checkpoint is not None:
            checkpoint()
        fresh = source.read(wanted)
        if not fresh and not carry:
            return
        data = carry + fresh
        last = len(fresh) < wanted
        yield Window(start=start, data=data, owned=len(data) if last else chunk_size, last=last)
        if last:
            return
        carry = data[chunk_size:]
        start += chunk_size
        wanted = chunk_size


def scan_stream(
    source: BinaryIO,
    needle: bytes,
    chunk_size: int,
    limit: Optional[int] = None,
    checkpoint: Optional[Checkpoint] = None,
) -> Iterator[int]:
    if not needle:
        return
    found = 0
    for window in iter_windows(source, len(needle) - 1, chunk_size, checkpoint):
        for idx in window.find_all(needle):
            yield window.absolute(idx)
            found += 1
            if limit is not None and found >= limit:
                return


def scan_file(
    path: str,
    needle: bytes,
    chunk_size: int,
    limit: Optional[int] = None,
    checkpoint: Optional[Checkpoint] = None,
) -> List[int]:
    with open(path, "rb") as f:
        return list(scan_stream(f, needle, chunk_size, limit, checkpoint))


def scan_buffer_chunked(data: bytes, needle: bytes, chunk_size: int) -> List[int]:
    return list(scan_stream(io.BytesIO(data), needle, chunk_size))
