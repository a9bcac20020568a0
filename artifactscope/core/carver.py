"""Header/footer signature carving.

Small inputs are carved in memory. Large inputs are read in chunks, and a
header whose footer has not appeared yet stays open across reads: its bytes
are spooled to a ``.part`` file until the footer turns up or ``max_size``
bytes have gone by without one.
"""
from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Callable, List, Optional, Sequence, Tuple

from artifactscope.config import DEFAULT_LIMITS, EngineLimits
from artifactscope.core.models import CarvedArtifact, Signature
from artifactscope.core.scanner import Checkpoint
from artifactscope.infra.logging_utils import LOGGER, log_extra

COPY_BLOCK = 1024 * 1024

Progress = Callable[[float, str], None]


@dataclass
class _OpenMatch:
    header_offset: int
    signature: Signature
    part_path: Path
    handle: BinaryIO
    scan_from: int
    hasher: Any = field(default_factory=hashlib.sha256)

    def spool(self, payload: bytes) -> None:
        self.handle.write(payload)
        self.hasher.update(payload)

    def discard(self) -> None:
        self.handle.close()
        self.part_path.unlink(missing_ok=True)


def _next_header(
    data: bytes, signatures: Sequence[Signature], pos: int, cache: List[int], stop: int
) -> Optional[Tuple[int, Signature]]:
    best: Optional[Tuple[int, Signature]] = None
    for i, sig in enumerate(signatures):
        nxt = cache[i]
        if nxt == -1:
            continue
        if nxt < pos:
            nxt = data.find(sig.header, pos)
            cache[i] = nxt
            if nxt == -1:
                continue
        if nxt >= stop:
            continue
        if best is None or nxt < best[0]:
            best = (nxt, sig)
    return best


def _size_from_header(head: bytes, sig: Signature) -> int:
    field_start = sig.size_field_offset or 0
    raw = head[field_start:field_start + 4]
    if len(raw) < 4:
        return 0
    return int.from_bytes(raw, "little")


class FileCarver:
    def __init__(
        self,
        signatures: Sequence[Signature],
        output_dir: Path,
        limits: EngineLimits = DEFAULT_LIMITS,
        checkpoint: Optional[Checkpoint] = None,
        progress: Optional[Progress] = None,
    ) -> None:
        self.signatures = [s for s in signatures if s.enabled]
        self.output_dir = Path(output_dir)
        self.limits = limits
        self.checkpoint = checkpoint
        self.progress = progress
        markers = [len(s.header) for s in self.signatures] + [len(s.footer or b"") for s in self.signatures]
        self.overlap = max(markers, default=1) - 1
        self.artifacts: List[CarvedArtifact] = []
        self._stream_size = 1

    # -- output -----------------------------------------------------------

    def _target_path(self, offset: int, sig: Signature) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / f"carved_{offset:x}.{sig.extension}"
        counter = 1
        while target.exists():
            target = self.output_dir / f"carved_{offset:x}_{counter}.{sig.extension}"
            counter += 1
        return target

    def _write(self, offset: int, sig: Signature, payload: bytes) -> CarvedArtifact:
        target = self._target_path(offset, sig)
        target.write_bytes(payload)
        return CarvedArtifact(
            signature=sig.name,
            extension=sig.extension,
            offset=offset,
            size=len(payload),
            output_path=str(target),
            sha256=hashlib.sha256(payload).hexdigest(),
        )

    def _footerless_length(self, head: bytes, sig: Signature, remaining: int) -> int:
        if sig.size_field_offset is not None:
            declared = _size_from_header(head, sig)
            if declared > min(sig.max_size, remaining):
                return 0
            return declared
        return min(sig.max_size, self.limits.footerless_window, remaining)

    def _report(self, percent: float, message: str) -> None:
        if self.progress is not None:
            self.progress(percent, message)

    # -- whole buffer -----------------------------------------------------

    def carve_bytes(self, data: bytes, cap: Optional[int] = None) -> List[CarvedArtifact]:
        cap = self.limits.carve_cap_whole if cap is None else cap
        self.artifacts = []
        cache = [-2] * len(self.signatures)
        total = len(data)
        pos = 0
        while pos < total and len(self.artifacts) < cap:
            if self.checkpoint is not None:
                self.checkpoint()
            hit = _next_header(data, self.signatures, pos, cache, total)
            if hit is None:
                break
            start, sig = hit
            if sig.footer is None:
                length = self._footerless_length(data[start:start + 64], sig, total - start)
                if length >= self.limits.min_carve_size:
                    self._accept(self._write(start, sig, data[start:start + length]), start + length, total)
                    pos = start + length
                else:
                    pos = start + 1
                continue
            limit = min(total, start + sig.max_size)
            end_idx = data.find(sig.footer, start + len(sig.header), limit)
            if end_idx == -1:
                pos = start + 1
                continue
            end = end_idx + len(sig.footer)
            if end - start >= self.limits.min_carve_size:
                self._accept(self._write(start, sig, data[start:end]), end, total)
            pos = end
        if len(self.artifacts) >= cap:
            LOGGER.info("Carve cap reached", extra=log_extra(cap=cap, output=str(self.output_dir)))
        return self.artifacts

    def _accept(self, artifact: CarvedArtifact, position: int, total: int) -> None:
        self.artifacts.append(artifact)
        if len(self.artifacts) % 50 == 0:
            self._report(5 + (position / max(total, 1)) * 90, f"Carved {len(self.artifacts)} files")

    # -- streaming --------------------------------------------------------

    def carve_stream(self, source: BinaryIO, size: int, cap: Optional[int] = None) -> List[CarvedArtifact]:
        cap = self.limits.carve_cap_streaming if cap is None else cap
        chunk = max(self.limits.carve_chunk_size, self.overlap + 1)
        wanted = chunk + self.overlap
        self.artifacts = []
        self._stream_size = max(size, 1)
        cursor = 0
        pending: Optional[_OpenMatch] = None
        try:
            while len(self.artifacts) < cap:
                if self.checkpoint is not None:
                    self.checkpoint()
                window_start = pending.scan_from if pending is not None else cursor
                source.seek(window_start)
                data = source.read(wanted)
                last = len(data) < wanted
                if pending is not None:
                    cursor, pending, artifact = self._advance_open_match(pending, window_start, data, last)
                    if artifact is not None:
                        self._accept(artifact, cursor, size)
                    continue
                if not data:
                    break
                owned = len(data) if last else chunk
                cursor, pending = self._carve_window(source, window_start, data, owned, last, cap)
                if pending is None and last and cursor >= window_start + owned:
                    break
                self._report(5 + (cursor / self._stream_size) * 90, f"Carving at offset 0x{cursor:x}")
        finally:
            if pending is not None:
                pending.discard()
        if len(self.artifacts) >= cap:
            LOGGER.info("Streaming carve cap reached", extra=log_extra(cap=cap, output=str(self.output_dir)))
        return self.artifacts

    def _carve_window(
        self, source: BinaryIO, window_start: int, data: bytes, owned: int, last: bool, cap: int
    ) -> Tuple[int, Optional[_OpenMatch]]:
        """Carve every header that starts in this window's owned range.

        Returns the next absolute offset to scan and, when a header's footer lies
        past this window, the match that stays open.
        """
        cache = [-2] * len(self.signatures)
        pos = 0
        while pos < owned and len(self.artifacts) < cap:
            hit = _next_header(data, self.signatures, pos, cache, owned)
            if hit is None:
                break
            local, sig = hit
            start = window_start + local
            if sig.footer is None:
                next_abs, artifact = self._carve_footerless(source, start, sig, self._stream_size)
                if artifact is not None:
                    self._accept(artifact, next_abs, self._stream_size)
                pos = next_abs - window_start
                continue
            next_abs, pending, artifact = self._open_match(start, sig, window_start, data, last)
            if pending is not None:
                return next_abs, pending
            if artifact is not None:
                self._accept(artifact, next_abs, self._stream_size)
            pos = next_abs - window_start
        return window_start + max(pos, owned), None

    def _carve_footerless(
        self, source: BinaryIO, start: int, sig: Signature, size: int
    ) -> Tuple[int, Optional[CarvedArtifact]]:
        source.seek(start)
        head = source.read(64)
        length = self._footerless_length(head, sig, size - start)
        if length < self.limits.min_carve_size:
            return start + 1, None
        target = self._target_path(start, sig)
        hasher = hashlib.sha256()
        source.seek(start)
        remaining = length
        with target.open("wb") as out:
            while remaining > 0:
                block = source.read(min(COPY_BLOCK, remaining))
                if not block:
                    break
                out.write(block)
                hasher.update(block)
                remaining -= len(block)
        artifact = CarvedArtifact(
            signature=sig.name,
            extension=sig.extension,
            offset=start,
            size=length - remaining,
            output_path=str(target),
            sha256=hasher.hexdigest(),
        )
        return start + length, artifact

    def _open_match(
        self, start: int, sig: Signature, window_start: int, data: bytes, last: bool
    ) -> Tuple[int, Optional[_OpenMatch], Optional[CarvedArtifact]]:
        assert sig.footer is not None
        local = start - window_start
        limit_local = local + sig.max_size
        end_idx = data.find(sig.footer, local + len(sig.header), min(len(data), limit_local))
        if end_idx != -1:
            end = end_idx + len(sig.footer)
            artifact = None
            if end - local >= self.limits.min_carve_size:
                artifact = self._write(start, sig, data[local:end])
            return window_start + end, None, artifact
        if last or len(data) >= limit_local:
            return start + 1, None, None
        keep = len(sig.footer) - 1
        spool_end = max(local + len(sig.header), len(data) - keep)
        part_path = self.output_dir / f".carving_{start:x}.part"
        self.output_dir.mkdir(parents=True, exist_ok=True)
        match = _OpenMatch(
            header_offset=start,
            signature=sig,
            part_path=part_path,
            handle=part_path.open("wb"),
            scan_from=window_start + spool_end,
        )
        match.spool(data[local:spool_end])
        return start, match, None

    def _advance_open_match(
        self, match: _OpenMatch, window_start: int, data: bytes, last: bool
    ) -> Tuple[int, Optional[_OpenMatch], Optional[CarvedArtifact]]:
        sig = match.signature
        assert sig.footer is not None
        limit_local = match.header_offset + sig.max_size - window_start
        end_idx = data.find(sig.footer, 0, max(0, min(len(data), limit_local)))
        if end_idx != -1:
            end = end_idx + len(sig.footer)
            match.spool(data[:end])
            return window_start + end, None, self._finish_match(match, window_start + end)
        if last or len(data) >= limit_local:
            LOGGER.debug(
                "Abandoned open match without footer",
                extra=log_extra(signature=sig.name, offset=match.header_offset),
            )
            match.discard()
            return match.header_offset + 1, None, None
        keep = len(sig.footer) - 1
        spool_end = len(data) - keep
        match.spool(data[:spool_end])
        match.scan_from = window_start + spool_end
        self._report(5 + (match.scan_from / self._stream_size) * 90, f"Awaiting {sig.name} footer from 0x{match.header_offset:x}")
        return match.header_offset, match, None

    def _finish_match(self, match: _OpenMatch, end: int) -> Optional[CarvedArtifact]:
        match.handle.close()
        size = end - match.header_offset
        if size < self.limits.min_carve_size:
            match.part_path.unlink(missing_ok=True)
            return None
        target = self._target_path(match.header_offset, match.signature)
        os.replace(match.part_path, target)
        return CarvedArtifact(
            signature=match.signature.name,
            extension=match.signature.extension,
            offset=match.header_offset,
            size=size,
            output_path=str(target),
            sha256=match.hasher.hexdigest(),
        )

    # -- files ------------------------------------------------------------

    def carve_file(self, path: str, streaming: Optional[bool] = None) -> List[CarvedArtifact]:
        size = os.path.getsize(path)
        if streaming is None:
            streaming = size >= self.limits.sync_threshold
        if streaming:
            LOGGER.info("Streaming carve", extra=log_extra(path=path, size=size))
            self._report(5, f"Large file ({size // (1024 * 1024)}MB), streaming carve")
            with open(path, "rb") as f:
                results = self.carve_stream(f, size)
        else:
            with open(path, "rb") as f:
                data = f.read()
            self._report(5, "Scanning for signatures")
            results = self.carve_bytes(data)
        self._report(100, f"Carved {len(results)} files")
        return results
