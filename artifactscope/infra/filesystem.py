from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Tuple

import blake3

from artifactscope.core.models import FileEntry
from artifactscope.infra.logging_utils import LOGGER, log_extra

READ_BLOCK = 8192


@dataclass
class FileHashResult:
    sha256: str
    blake3: str


@dataclass
class HexView:
    rows: List[Tuple[str, str, str]] = field(default_factory=list)
    total_size: int = 0


def walk_files(root: Path, max_depth: int = 10) -> List[FileEntry]:
    """Flat list of regular files under ``root``, at most ``max_depth`` directories deep.

    Unreadable directories are skipped; symlinks are neither followed nor reported.
    """
    results: List[FileEntry] = []

    def _walk(directory: str, depth: int) -> None:
        if depth > max_depth:
            return
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            LOGGER.debug("Skipping unreadable directory", extra=log_extra(path=directory, error=str(exc)))
            return
        for entry in entries:
            try:
                if entry.is_dir(follow_symlinks=False):
                    _walk(entry.path, depth + 1)
                elif entry.is_file(follow_symlinks=False):
                    size = entry.stat(follow_symlinks=False).st_size
                    results.append(
                        FileEntry(
                            path=os.path.abspath(entry.path),
                            size=size,
                            extension=os.path.splitext(entry.name)[1].lower(),
                        )
                    )
            except OSError as exc:
                LOGGER.debug("Skipping unreadable entry", extra=log_extra(path=entry.path, error=str(exc)))

    _walk(str(root), 0)
    return results


def relative_path(path: str, root: Path) -> str:
    return os.path.relpath(path, str(root))


def read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def read_prefix(path: str, length: int) -> bytes:
    with open(path, "rb") as f:
        return f.read(length)


def read_at(path: str, offset: int, length: int) -> bytes:
    with open(path, "rb") as f:
        f.seek(offset)
        return f.read(length)


def iter_blocks(path: str, block_size: int = READ_BLOCK) -> Iterator[bytes]:
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(block_size), b""):
            yield chunk


def compute_sha256(path: str) -> str:
    h = hashlib.sha256()
    for chunk in iter_blocks(path):
        h.update(chunk)
    return h.hexdigest()


def compute_blake3_hash(path: str) -> str:
    hasher = blake3.blake3()
    for chunk in iter_blocks(path):
        hasher.update(chunk)
    return hasher.hexdigest()


def hash_file(path: str) -> FileHashResult:
    return FileHashResult(sha256=compute_sha256(path), blake3=compute_blake3_hash(path))


def write_json(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)


def _printable(byte: int) -> str:
    return chr(byte) if 32 <= byte < 127 else "."


def format_hex_dump(buffer: bytes, max_bytes: int = 256) -> str:
    lines: List[str] = []
    length = min(len(buffer), max_bytes)
    for i in range(0, length, 16):
        row = buffer[i:min(i + 16, length)]
        hex_part = " ".join(f"{b:02X}" for b in row)
        ascii_part = "".join(_printable(b) for b in row)
        lines.append(f"{i:08X}  {hex_part.ljust(48)}  |{ascii_part}|")
    return "\n".join(lines)


def hex_view(path: str, offset: int, length: int) -> HexView:
    total = os.path.getsize(path)
    read_len = max(0, min(length, total - offset))
    data = read_at(path, offset, read_len) if read_len else b""
    view = HexView(total_size=total)
    for i in range(0, len(data), 16):
        row = data[i:i + 16]
        hex_bytes = [f"{b:02X}" for b in row] + ["  "] * (16 - len(row))
        ascii_part = "".join(_printable(b) for b in row).ljust(16)
        view.rows.append((f"{offset + i:08X}", " ".join(hex_bytes), ascii_part))
    return view
