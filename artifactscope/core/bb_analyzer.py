from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from artifactscope.config import DEFAULT_LIMITS, EngineLimits
from artifactscope.core import bb_artifacts
from artifactscope.core.backup_format import classify_backup_format
from artifactscope.core.heuristics import (
    count_media_signatures,
    has_sqlite_signature,
    search_for_contacts,
    search_for_messages,
)
from artifactscope.core.models import (
    BackupFormatResult,
    BackupFormatType,
    BBAnalysisResult,
    DatFileRecord,
    EventLogRecord,
    FileEntry,
    KeyFileRecord,
    ModuleRecord,
    RemFileRecord,
)
from artifactscope.core.scanner import Checkpoint
from artifactscope.core.strings import count_strings, detect_encryption
from artifactscope.infra.filesystem import format_hex_dump, read_file, read_prefix, relative_path
from artifactscope.infra.logging_utils import LOGGER, log_extra

BB_EXTENSIONS = {".rem", ".cod", ".dat", ".key", ".mkf", ".ipd", ".bbb", ".tar", ".db", ".evt"}
DEVICE_KEY_MAX_SIZE = 512

Progress = Callable[[float, str], None]


def _unclassified() -> BackupFormatResult:
    return BackupFormatResult(
        type=BackupFormatType.UNKNOWN,
        confidence=0,
        details="Classification did not run.",
        manifest_found=False,
        pkg_info_found=False,
    )


class BackupAnalyzer:
    """One pass over a BlackBerry backup tree.

    ``result`` is filled in as the pass goes, so it holds everything found so
    far if a checkpoint raises.
    """

    def __init__(
        self,
        session_id: str,
        root: Path,
        limits: EngineLimits = DEFAULT_LIMITS,
        checkpoint: Optional[Checkpoint] = None,
        progress: Optional[Progress] = None,
    ) -> None:
        self.root = Path(root)
        self.limits = limits
        self.checkpoint = checkpoint
        self.progress = progress
        self.result = BBAnalysisResult(session_id=session_id, root=str(self.root), backup_format=_unclassified())

    def _report(self, percent: float, message: str) -> None:
        if self.progress is not None:
            self.progress(percent, message)

    def _check(self) -> None:
        if self.checkpoint is not None:
            self.checkpoint()

    def run(self, files: Sequence[FileEntry]) -> BBAnalysisResult:
        result = self.result
        self._report(2, "Detecting backup format...")
        result.backup_format = classify_backup_format(files, self.root, self.checkpoint)

        self._report(5, "Scanning for BlackBerry artifacts...")
        total = len(files)
        for i, entry in enumerate(files):
            self._check()
            self._visit(entry)
            if i % 10 == 0:
                name = os.path.basename(entry.path)
                self._report(5 + round((i / total) * 60), f"Analyzing: {name}")

        self._report(70, "Checking REMF headers and decryptability...")
        if result.key_files:
            for rem in result.rem_files:
                rem.decryptable = rem.encrypted

        self._report(75, "Scanning for date artifacts...")
        per_type = self.limits.date_files_per_type
        for record in list(result.rem_files[:per_type]) + list(result.dat_files[:per_type]):
            self._check()
            self._collect_dates(record.path, record.filename)
        del result.date_artifacts[self.limits.date_artifact_cap:]

        self._report(80, "Detecting BB10 artifact paths...")
        result.bb10_artifacts = bb_artifacts.detect_bb10_artifacts(files, self.root)

        self._report(85, "Counting messages and contacts...")
        self._count_content()
        self.refresh_stats()

        self._report(100, f"Analysis complete: {result.total_artifacts} BB artifacts")
        LOGGER.info(
            "BlackBerry analysis finished",
            extra=log_extra(
                session=result.session_id,
                format=result.backup_format.type.value,
                rem=len(result.rem_files),
                key=len(result.key_files),
                cod=len(result.cod_modules),
            ),
        )
        return result

    def _visit(self, entry: FileEntry) -> None:
        result = self.result
        name = os.path.basename(entry.path)
        lowered = name.lower()
        ext = entry.extension
        rel = relative_path(entry.path, self.root)

        if ext == ".zip":
            result.nested_zips.append(rel)

        try:
            if bb_artifacts.is_bbthumbs_name(name):
                result.thumbs_files.append(bb_artifacts.parse_bbthumbs(entry.path, self.root))
                result.total_artifacts += 1

            if bb_artifacts.is_event_log_name(name):
                head = read_prefix(entry.path, self.limits.heuristic_window)
                result.event_logs.append(
                    EventLogRecord(
                        filename=name,
                        path=rel,
                        size=entry.size,
                        entries=bb_artifacts.count_event_log_entries(head, self.limits.heuristic_window),
                    )
                )
                result.total_artifacts += 1
        except OSError as exc:
            LOGGER.debug("Skipping unreadable file", extra=log_extra(path=entry.path, error=str(exc)))

        if ext not in BB_EXTENSIONS and not lowered.endswith(".evt"):
            return
        result.total_artifacts += 1

        try:
            if ext == ".rem":
                result.rem_files.append(self._rem_record(entry, name, rel))
            elif ext == ".key":
                result.key_files.append(
                    KeyFileRecord(
                        filename=name,
                        path=rel,
                        size=entry.size,
                        hex_dump=self._hex_dump(entry.path),
                        key_type="Device Key" if entry.size < DEVICE_KEY_MAX_SIZE else "Certificate/RSA Key",
                    )
                )
            elif ext == ".cod":
                result.cod_modules.append(ModuleRecord(filename=name, path=rel, size=entry.size))
            elif ext == ".dat":
                result.dat_files.append(
                    DatFileRecord(filename=name, path=rel, size=entry.size, hex_dump=self._hex_dump(entry.path))
                )
            elif ext == ".mkf":
                result.mkf_files.append(ModuleRecord(filename=name, path=rel, size=entry.size))
            elif ext in (".db", ".ipd"):
                self._collect_dates(rel, name)
        except OSError as exc:
            LOGGER.debug("Skipping unreadable file", extra=log_extra(path=entry.path, error=str(exc)))

    def _hex_dump(self, path: str) -> str:
        dump_bytes = self.limits.hex_dump_bytes
        return format_hex_dump(read_prefix(path, dump_bytes), dump_bytes)

    def _rem_record(self, entry: FileEntry, name: str, rel: str) -> RemFileRecord:
        content = read_file(entry.path)
        return RemFileRecord(
            filename=name,
            path=rel,
            size=entry.size,
            encrypted=detect_encryption(content, self.limits.entropy_sample, self.limits.entropy_threshold),
            has_remf_header=bb_artifacts.has_remf_header(content),
            decryptable=False,
            strings_found=count_strings(content),
            media_found=count_media_signatures(content),
            sqlite_found=has_sqlite_signature(content),
        )

    def _collect_dates(self, rel: str, name: str) -> None:
        try:
            head = read_prefix(str(self.root / rel), self.limits.date_scan_window)
        except OSError as exc:
            LOGGER.debug("Skipping unreadable file", extra=log_extra(path=rel, error=str(exc)))
            return
        self.result.date_artifacts.extend(bb_artifacts.find_date_artifacts(head, name, self.limits))

    def _count_content(self) -> None:
        result = self.result
        stats = result.stats
        window = self.limits.heuristic_window
        paths: List[str] = [r.path for r in result.rem_files] + [d.path for d in result.dat_files]
        for rel in paths:
            self._check()
            try:
                head = read_prefix(str(self.root / rel), window)
            except OSError as exc:
                LOGGER.debug("Skipping unreadable file", extra=log_extra(path=rel, error=str(exc)))
                continue
            stats.messages_found += search_for_messages(head, window)
            stats.contacts_found += search_for_contacts(head, window)

    def refresh_stats(self) -> None:
        """Recompute the counters derived from the records collected so far."""
        result = self.result
        stats = result.stats
        stats.rem_count = len(result.rem_files)
        stats.encrypted_count = sum(1 for r in result.rem_files if r.encrypted)
        stats.remf_header_count = sum(1 for r in result.rem_files if r.has_remf_header)
        stats.decryptable_count = sum(1 for r in result.rem_files if r.decryptable)
        stats.sqlite_found = sum(1 for r in result.rem_files if r.sqlite_found)
        stats.media_total = sum(r.media_found for r in result.rem_files)
        stats.key_file_count = len(result.key_files)
