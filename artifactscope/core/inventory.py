from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from artifactscope.config import DEFAULT_LIMITS, EngineLimits
from artifactscope.core.models import FileEntry, MediaRecord
from artifactscope.core.scanner import Checkpoint
from artifactscope.core.strings import file_looks_encrypted
from artifactscope.infra.filesystem import hash_file, relative_path
from artifactscope.infra.logging_utils import LOGGER, log_extra

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".tiff", ".tif", ".heic", ".heif", ".svg"}
VIDEO_EXTENSIONS = {".mp4", ".avi", ".mov", ".mkv", ".wmv", ".flv", ".webm", ".m4v", ".3gp"}
GIF_EXTENSIONS = {".gif"}

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".tiff": "image/tiff",
    ".tif": "image/tiff",
    ".mp4": "video/mp4",
    ".avi": "video/x-msvideo",
    ".mov": "video/quicktime",
    ".mkv": "video/x-matroska",
    ".wmv": "video/x-ms-wmv",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".sqlite": "application/x-sqlite3",
    ".db": "application/x-sqlite3",
    ".plist": "application/x-plist",
}
DEFAULT_MIME_TYPE = "application/octet-stream"


def mime_type_for(extension: str) -> str:
    return MIME_TYPES.get(extension.lower(), DEFAULT_MIME_TYPE)


def select_media(
    files: Sequence[FileEntry], include_gifs: bool = True, include_videos: bool = True
) -> List[FileEntry]:
    """Media files by extension; every file when the tree holds none."""
    selected: List[FileEntry] = []
    for entry in files:
        ext = entry.extension
        if not include_gifs and ext in GIF_EXTENSIONS:
            continue
        if not include_videos and ext in VIDEO_EXTENSIONS:
            continue
        if ext in IMAGE_EXTENSIONS or ext in VIDEO_EXTENSIONS:
            selected.append(entry)
    return selected or list(files)


def scan_media_files(
    files: Sequence[FileEntry],
    root: Path,
    include_gifs: bool = True,
    include_videos: bool = True,
    limits: EngineLimits = DEFAULT_LIMITS,
    checkpoint: Optional[Checkpoint] = None,
    progress: Optional[Callable[[float, str], None]] = None,
    records: Optional[List[MediaRecord]] = None,
) -> List[MediaRecord]:
    """Hash and type every media file under ``root``.

    Records are appended to ``records`` as each file finishes, so a caller
    that passes its own list keeps them when a cancellation unwinds the loop.
    """
    records = [] if records is None else records
    targets = select_media(files, include_gifs, include_videos)
    for i, entry in enumerate(targets):
        if checkpoint is not None:
            checkpoint()
        name = os.path.basename(entry.path)
        try:
            digests = hash_file(entry.path)
            encrypted = file_looks_encrypted(entry.path, limits)
        except OSError as exc:
            LOGGER.debug("Skipping unreadable file", extra=log_extra(path=entry.path, error=str(exc)))
            continue
        records.append(
            MediaRecord(
                filename=name,
                path=relative_path(entry.path, root),
                size=entry.size,
                mime_type=mime_type_for(entry.extension),
                sha256=digests.sha256,
                blake3=digests.blake3,
                likely_encrypted=encrypted,
            )
        )
        if progress is not None:
            progress(round(((i + 1) / len(targets)) * 100), f"Hashed: {name}")
    LOGGER.info("Media inventory finished", extra=log_extra(files=len(records)))
    return records
