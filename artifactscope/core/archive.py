from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Callable, List, Optional

from artifactscope.core.scanner import Checkpoint
from artifactscope.infra.filesystem import relative_path, walk_files
from artifactscope.infra.logging_utils import LOGGER, log_extra

NESTED_SUFFIX = "_extracted"


def _inside(target: Path, member: str) -> bool:
    base = target.resolve()
    destination = (base / member).resolve()
    return destination == base or base in destination.parents


def unzip(path: Path, target: Path, checkpoint: Optional[Checkpoint] = None) -> int:
    """Extract ``path`` into ``target``; members that would land outside ``target`` are skipped."""
    target.mkdir(parents=True, exist_ok=True)
    extracted = 0
    try:
        with zipfile.ZipFile(path) as archive:
            for info in archive.infolist():
                if checkpoint is not None:
                    checkpoint()
                if not _inside(target, info.filename):
                    LOGGER.info("Skipping archive member outside target", extra=log_extra(member=info.filename))
                    continue
                archive.extract(info, target)
                extracted += 1
    except (zipfile.BadZipFile, NotImplementedError, RuntimeError, OSError) as exc:
        LOGGER.error("Failed to extract archive", extra=log_extra(path=str(path), error=str(exc)))
    return extracted


def extract_archive(
    path: Path,
    target: Path,
    checkpoint: Optional[Checkpoint] = None,
    progress: Optional[Callable[[float, str], None]] = None,
) -> List[str]:
    """Extract a ZIP and, one level down, every ZIP it contains; returns paths relative to ``target``."""
    path = Path(path)
    if path.suffix.lower() != ".zip":
        LOGGER.info("Not a ZIP archive", extra=log_extra(path=str(path)))
        return []
    unzip(path, target, checkpoint)
    top_level = walk_files(target)
    for entry in top_level:
        if entry.extension != ".zip":
            continue
        if progress is not None:
            progress(50, f"Extracting nested: {Path(entry.path).name}")
        unzip(Path(entry.path), Path(entry.path + NESTED_SUFFIX), checkpoint)
    members = [relative_path(entry.path, target) for entry in walk_files(target)]
    if progress is not None:
        progress(100, f"Extracted {len(members)} files")
    LOGGER.info("Archive extracted", extra=log_extra(path=str(path), files=len(members)))
    return members
