from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from artifactscope.core.bb_artifacts import PER_TAR_MAGIC, QNX_TAR_MAGIC
from artifactscope.core.models import BackupFormatResult, BackupFormatType, DetectedBackup, FileEntry
from artifactscope.core.scanner import Checkpoint
from artifactscope.infra.filesystem import read_prefix, relative_path
from artifactscope.infra.logging_utils import LOGGER, log_extra

BLACKBERRY_BACKUP_EXTENSIONS = {".rem", ".cod", ".dat", ".key", ".mkf", ".ipd", ".bbb"}

_DETAILS = {
    BackupFormatType.BB10_TAR_QNX: (
        "BB10 QNX TAR archive (PlayBook format). Header: 0x514E5800. "
        "Contains encrypted app/media/settings tarballs."
    ),
    BackupFormatType.BB10_TAR_PER: (
        "BB10 PER TAR archive (Z10/Q10 format). Header: 0x50455200. Encrypted with BlackBerry ID QBEK key."
    ),
    BackupFormatType.BB10_BBB: (
        "BB10 BBB backup. Contains PkgInfo + Manifest.xml + Archive/ with encrypted TAR files "
        "(apps.tar, media.tar, settings.tar). AES encrypted by default with BlackBerry Link."
    ),
    BackupFormatType.BBB_V2_WINDOWS: (
        "BBB v2 (Windows Desktop Manager format). ZIP containing individual .DAT database files "
        "+ Manifest.xml listing all databases."
    ),
    BackupFormatType.IPD: (
        "IPD (Inter@ctive Pager Device) backup. Single file containing multiple database structures. "
        "Created by BB Desktop Manager on Windows."
    ),
    BackupFormatType.BBB_V1_MAC: (
        "Likely BBB v1 (Mac format). Contains .rem and .dat files. Originally a ZIP containing an IPD file."
    ),
}


def _magic_type(files: Sequence[FileEntry], checkpoint: Optional[Checkpoint]) -> Optional[BackupFormatType]:
    """QNX if any file carries its magic, else PER if any file does."""
    found_per = False
    for entry in files:
        if checkpoint is not None:
            checkpoint()
        try:
            head = read_prefix(entry.path, 4)
        except OSError as exc:
            LOGGER.debug("Skipping unreadable file", extra=log_extra(path=entry.path, error=str(exc)))
            continue
        if head == QNX_TAR_MAGIC:
            return BackupFormatType.BB10_TAR_QNX
        if head == PER_TAR_MAGIC:
            found_per = True
    return BackupFormatType.BB10_TAR_PER if found_per else None


def classify_backup_format(
    files: Sequence[FileEntry], root: Path, checkpoint: Optional[Checkpoint] = None
) -> BackupFormatResult:
    """Classify a backup tree; the first matching rule wins."""
    rel_paths = [relative_path(entry.path, root) for entry in files]
    names = [os.path.basename(rel).lower() for rel in rel_paths]
    manifest = "manifest.xml" in names
    pkg_info = "pkginfo" in names
    archive_dir = any("archive/" in rel.lower() or "archive\\" in rel.lower() for rel in rel_paths)
    tar_files = [rel for rel in rel_paths if rel.lower().endswith(".tar")]
    ipd_count = sum(1 for n in names if n.endswith(".ipd"))
    dat_count = sum(1 for n in names if n.endswith(".dat"))
    rem_count = sum(1 for n in names if n.endswith(".rem"))

    def result(kind: BackupFormatType, confidence: int, details: Optional[str] = None) -> BackupFormatResult:
        return BackupFormatResult(
            type=kind,
            confidence=confidence,
            details=details or _DETAILS[kind],
            manifest_found=manifest,
            pkg_info_found=pkg_info,
            archive_files=list(tar_files),
        )

    magic = _magic_type(files, checkpoint)
    if magic is not None:
        return result(magic, 95)
    if pkg_info and manifest and (archive_dir or tar_files):
        return result(BackupFormatType.BB10_BBB, 90)
    if manifest and dat_count > 3 and not pkg_info:
        return result(BackupFormatType.BBB_V2_WINDOWS, 85)
    if ipd_count:
        return result(BackupFormatType.IPD, 90)
    if rem_count and dat_count:
        return result(BackupFormatType.BBB_V1_MAC, 70)
    return result(
        BackupFormatType.UNKNOWN,
        30,
        f"Unrecognized format. Found: {rem_count} .rem, {dat_count} .dat, {len(tar_files)} .tar files.",
    )


def _summarize(kind: str, directory: str, files: Sequence[FileEntry]) -> DetectedBackup:
    prefix = directory.rstrip(os.sep) + os.sep
    members = [entry for entry in files if entry.path.startswith(prefix)]
    return DetectedBackup(type=kind, path=directory, size=sum(e.size for e in members), files=len(members))


def detect_backups(files: Sequence[FileEntry]) -> List[DetectedBackup]:
    """BlackBerry backup directories and Apple MobileSync backups found among ``files``."""
    directories: Dict[str, None] = {}
    for entry in files:
        if entry.extension in BLACKBERRY_BACKUP_EXTENSIONS:
            directories.setdefault(os.path.dirname(entry.path))

    detections: List[DetectedBackup] = []
    for directory in directories:
        prefix = directory.rstrip(os.sep) + os.sep
        extensions = {e.extension for e in files if e.path.startswith(prefix)}
        if ".bbb" in extensions:
            kind = "blackberry_bbb"
        elif ".ipd" in extensions:
            kind = "blackberry_ipd"
        else:
            kind = "blackberry_rem"
        detections.append(_summarize(kind, directory, files))

    apple_marker = _find_apple_marker(files)
    if apple_marker is not None:
        detections.append(_summarize("apple_mobilesync", os.path.dirname(apple_marker.path), files))

    LOGGER.info("Backup detection finished", extra=log_extra(count=len(detections)))
    return detections


def _find_apple_marker(files: Sequence[FileEntry]) -> Optional[FileEntry]:
    def first(predicate) -> Optional[FileEntry]:
        return next((e for e in files if predicate(e)), None)

    return (
        first(lambda e: os.path.basename(e.path) == "Manifest.db")
        or first(lambda e: os.path.basename(e.path) == "Info.plist" and "MobileSync" in e.path)
        or first(lambda e: os.path.basename(e.path) == "Status.plist")
    )
