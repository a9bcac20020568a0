from __future__ import annotations

import math
import os
import re
from typing import Callable, List, Optional

from artifactscope.config import DEFAULT_LIMITS, EngineLimits
from artifactscope.core.errors import InvalidQueryError
from artifactscope.core.models import ExtractedString
from artifactscope.core.scanner import Checkpoint, iter_windows
from artifactscope.infra.filesystem import read_prefix
from artifactscope.infra.logging_utils import LOGGER, log_extra

PRINTABLE_RUN = re.compile(rb"[\x20-\x7e]+")
MIN_LENGTH_RANGE = (1, 256)


def _is_printable(byte: int) -> bool:
    return 0x20 <= byte <= 0x7E


class StringExtractor:
    """Collects printable ASCII runs from bytes fed in order, chunk by chunk.

    A run still open at the end of a chunk stays pending until the next chunk
    shows whether it continues.
    """

    def __init__(self, min_length: int = 4, cap: int = 5000, max_chars: int = 500) -> None:
        self.min_length = min_length
        self.cap = cap
        self.max_chars = max_chars
        self.results: List[ExtractedString] = []
        self._start: Optional[int] = None
        self._pending = bytearray()
        self._pending_len = 0

    @property
    def full(self) -> bool:
        return len(self.results) >= self.cap

    def feed(self, chunk: bytes, base_offset: int) -> None:
        if not chunk or self.full:
            return
        if self._start is not None and not _is_printable(chunk[0]):
            self._flush()
        end = len(chunk)
        for match in PRINTABLE_RUN.finditer(chunk):
            if self.full:
                return
            if self._start is None:
                self._start = base_offset + match.start()
            self._append(match.group())
            if match.end() < end:
                self._flush()

    def finish(self) -> List[ExtractedString]:
        if self._start is not None and not self.full:
            self._flush()
        self._start = None
        return self.results

    def _append(self, run: bytes) -> None:
        room = self.max_chars - len(self._pending)
        if room > 0:
            self._pending.extend(run[:room])
        self._pending_len += len(run)

    def _flush(self) -> None:
        if self._start is not None and self._pending_len >= self.min_length:
            self.results.append(ExtractedString(offset=self._start, value=self._pending.decode("ascii")))
        self._start = None
        self._pending = bytearray()
        self._pending_len = 0


def validate_min_length(min_length: int) -> int:
    low, high = MIN_LENGTH_RANGE
    if not low <= min_length <= high:
        raise InvalidQueryError(f"min_length must be between {low} and {high}")
    return min_length


def extract_strings_from_buffer(
    data: bytes, min_length: int = 4, limits: EngineLimits = DEFAULT_LIMITS
) -> List[ExtractedString]:
    extractor = StringExtractor(min_length, limits.string_cap, limits.string_max_chars)
    extractor.feed(data, 0)
    return extractor.finish()


def extract_strings_from_file(
    path: str,
    min_length: int = 4,
    limits: EngineLimits = DEFAULT_LIMITS,
    checkpoint: Optional[Checkpoint] = None,
    progress: Optional[Callable[[float, str], None]] = None,
    extractor: Optional[StringExtractor] = None,
) -> List[ExtractedString]:
    """Strings of one file; pass ``extractor`` to keep what was found if a checkpoint raises."""
    size = os.path.getsize(path)
    if extractor is None:
        extractor = StringExtractor(min_length, limits.string_cap, limits.string_max_chars)
    with open(path, "rb") as f:
        if size < limits.sync_threshold:
            extractor.feed(f.read(), 0)
        else:
            LOGGER.info("Streaming string extraction", extra=log_extra(path=path, size=size))
            for window in iter_windows(f, 0, limits.chunk_size, checkpoint):
                extractor.feed(window.data, window.start)
                if progress is not None:
                    done = window.start + len(window.data)
                    progress(10 + (done / size) * 80, f"Offset 0x{done:x}")
                if extractor.full:
                    break
    results = extractor.finish()
    if extractor.full:
        LOGGER.info("String cap reached", extra=log_extra(path=path, cap=limits.string_cap))
    return results


def count_strings(data: bytes, min_length: int = 4) -> int:
    pattern = re.compile(rb"[\x20-\x7e]{%d,}" % min_length)
    return sum(1 for _ in pattern.finditer(data))


def shannon_entropy(data: bytes) -> float:
    if not data:
        return 0.0
    freq = [0] * 256
    for byte in data:
        freq[byte] += 1
    entropy = 0.0
    length = len(data)
    for count in freq:
        if count == 0:
            continue
        p = count / length
        entropy -= p * math.log2(p)
    return entropy


def sample_entropy(content: bytes, sample_size: int = 4096) -> float:
    return shannon_entropy(content[:sample_size])


def detect_encryption(content: bytes, sample_size: int = 4096, threshold: float = 7.0) -> bool:
    # Compressed data also clears the threshold; callers treat this as a hint.
    if len(content) < 16:
        return False
    return sample_entropy(content, sample_size) > threshold


def file_looks_encrypted(path: str, limits: EngineLimits = DEFAULT_LIMITS) -> bool:
    return detect_encryption(read_prefix(path, limits.entropy_sample), limits.entropy_sample, limits.entropy_threshold)
