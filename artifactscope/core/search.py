from __future__ import annotations

import re
import zipfile
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, List, Optional, Sequence

from artifactscope.config import DEFAULT_LIMITS, EngineLimits
from artifactscope.core.errors import InvalidQueryError
from artifactscope.core.models import FileEntry, MatchType, SearchHit
from artifactscope.core.scanner import Checkpoint, Window, iter_windows
from artifactscope.infra.filesystem import relative_path
from artifactscope.infra.logging_utils import LOGGER, log_extra

_HEX_PREFIX = re.compile(r"0x", re.IGNORECASE)
_HEX_SEPARATORS = re.compile(r"[\s,]")
_HEX_DIGITS = re.compile(r"[0-9a-fA-F]*")

ARCHIVE_MEMBER_SEPARATOR = "!"


def _case_variants(char: str) -> List[bytes]:
    variants = {v.encode("utf-8") for v in (char, char.lower(), char.upper()) if len(v) == 1}
    return sorted(variants, key=lambda v: (-len(v), v))


def folded_pattern(query: str) -> "re.Pattern[bytes]":
    """Byte pattern for ``query`` where every character also matches its upper and lower case UTF-8 forms.

    The match sits in a lookahead so overlapping occurrences are all found.
    """
    parts = [b"(?:" + b"|".join(re.escape(v) for v in _case_variants(char)) + b")" for char in query]
    return re.compile(b"(?=" + b"".join(parts) + b")")


def folded_span(query: str) -> int:
    """Longest byte length a case-folded match of ``query`` can have."""
    return sum(len(_case_variants(char)[0]) for char in query)


def parse_hex_query(query: str) -> bytes:
    """``"0x4D 0x5A"``, ``"4d,5a"`` and ``"4D5A"`` all give ``b"MZ"``."""
    cleaned = _HEX_SEPARATORS.sub("", _HEX_PREFIX.sub("", query))
    if not cleaned:
        raise InvalidQueryError("hex query is empty")
    if len(cleaned) % 2:
        raise InvalidQueryError(f"hex query has an odd number of digits: {query!r}")
    if not _HEX_DIGITS.fullmatch(cleaned):
        raise InvalidQueryError(f"hex query contains non-hex characters: {query!r}")
    return bytes.fromhex(cleaned)


class KeywordSearcher:
    """Accumulates hits for one query across any number of byte sources."""

    def __init__(
        self,
        query: str,
        match_type: MatchType = MatchType.TEXT,
        case_sensitive: bool = False,
        limits: EngineLimits = DEFAULT_LIMITS,
        checkpoint: Optional[Checkpoint] = None,
    ) -> None:
        self.query = query
        self.match_type = MatchType(match_type)
        self.case_sensitive = case_sensitive
        self.limits = limits
        self.checkpoint = checkpoint
        self.hits: List[SearchHit] = []
        self._pattern: Optional["re.Pattern[bytes]"] = None
        self._span = 0
        if self.match_type is MatchType.HEX:
            self.needle = parse_hex_query(query)
            self._fold = False
        else:
            if not query:
                raise InvalidQueryError("text query is empty")
            self.needle = query.encode("utf-8")
            # bytes.lower() only touches ASCII, so offsets stay byte offsets.
            self._fold = not case_sensitive
            if self._fold:
                self.needle = self.needle.lower()
            if self._fold and not query.isascii():
                # Non-ASCII letters change case across UTF-8 byte sequences.
                self._pattern = folded_pattern(query)
                self._span = folded_span(query)

    @property
    def full(self) -> bool:
        return len(self.hits) >= self.limits.search_hit_cap

    def _matches(self, window: Window) -> Iterator[int]:
        if self._pattern is None:
            haystack = window.data.lower() if self._fold else window.data
            yield from window.find_all(self.needle, haystack)
            return
        for match in self._pattern.finditer(window.data):
            if match.start() >= window.owned:
                return
            yield match.start()

    def search_stream(self, source: BinaryIO, label: str) -> int:
        found = 0
        overlap = max(len(self.needle), self._span) - 1
        for window in iter_windows(source, overlap, self.limits.chunk_size, self.checkpoint):
            for idx in self._matches(window):
                self.hits.append(
                    SearchHit(
                        file=label,
                        offset=window.absolute(idx),
                        context=self._context(window.data, idx),
                        match_type=self.match_type,
                        query=self.query,
                    )
                )
                found += 1
                if self.full:
                    return found
        return found

    def search_file(self, path: str, label: str) -> int:
        with open(path, "rb") as f:
            return self.search_stream(f, label)

    def search_archive(self, path: str, label: str) -> int:
        found = 0
        try:
            with zipfile.ZipFile(path) as archive:
                for info in archive.infolist():
                    if self.full:
                        break
                    if info.is_dir():
                        continue
                    with archive.open(info) as member:
                        found += self.search_stream(member, f"{label}{ARCHIVE_MEMBER_SEPARATOR}{info.filename}")
        except (zipfile.BadZipFile, NotImplementedError, RuntimeError, OSError) as exc:
            # Corrupt, encrypted or unsupported-compression archives.
            LOGGER.debug("Skipping unreadable archive", extra=log_extra(path=path, error=str(exc)))
        return found

    def _context(self, data: bytes, idx: int) -> str:
        if self.match_type is MatchType.HEX:
            span = self.limits.search_context_bytes
            start = max(0, idx - span)
            end = min(len(data), idx + len(self.needle) + span)
            return data[start:end].hex(" ")
        line_start = data.rfind(b"\n", 0, idx) + 1
        line_end = data.find(b"\n", idx)
        if line_end == -1:
            line_end = len(data)
        chars = self.limits.search_context_chars
        # Four bytes per character is the most UTF-8 needs.
        line = data[line_start:min(line_end, line_start + chars * 4)]
        return line.decode("utf-8", errors="replace")[:chars]


def search_files(
    root: Path,
    files: Sequence[FileEntry],
    query: str,
    match_type: MatchType = MatchType.TEXT,
    case_sensitive: bool = False,
    search_in_archives: bool = False,
    limits: EngineLimits = DEFAULT_LIMITS,
    checkpoint: Optional[Checkpoint] = None,
    progress: Optional[Callable[[float, str], None]] = None,
) -> List[SearchHit]:
    searcher = KeywordSearcher(query, match_type, case_sensitive, limits, checkpoint)
    return run_search(searcher, root, files, search_in_archives, progress)


def run_search(
    searcher: KeywordSearcher,
    root: Path,
    files: Sequence[FileEntry],
    search_in_archives: bool = False,
    progress: Optional[Callable[[float, str], None]] = None,
) -> List[SearchHit]:
    """Fill ``searcher.hits``; a cancellation raised mid-way leaves the hits found so far in place."""
    total = len(files)
    for i, entry in enumerate(files):
        if searcher.checkpoint is not None:
            searcher.checkpoint()
        label = relative_path(entry.path, root)
        try:
            searcher.search_file(entry.path, label)
        except OSError as exc:
            LOGGER.debug("Skipping unreadable file", extra=log_extra(path=entry.path, error=str(exc)))
        if search_in_archives and entry.extension == ".zip" and not searcher.full:
            searcher.search_archive(entry.path, label)
        if progress is not None:
            progress(((i + 1) / total) * 100, f"Searching: {Path(entry.path).name}")
        if searcher.full:
            LOGGER.info("Search hit cap reached", extra=log_extra(cap=searcher.limits.search_hit_cap))
            break
    return searcher.hits
