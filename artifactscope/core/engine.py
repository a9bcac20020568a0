"""Entry points. Each one runs inside a caller-owned ``AnalysisSession``.

A cancelled run returns whatever it had produced when the cancellation was
noticed and leaves ``session.cancelled`` set.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from artifactscope.core import archive
from artifactscope.core.backup_format import classify_backup_format
from artifactscope.core.backup_format import detect_backups as _detect_backups
from artifactscope.core.bb_analyzer import BackupAnalyzer
from artifactscope.core.carver import FileCarver
from artifactscope.core.decryption import decrypt_all, decrypt_rem
from artifactscope.core.errors import AnalysisCancelled
from artifactscope.core.inventory import scan_media_files
from artifactscope.core.models import (
    BackupFormatResult,
    BackupFormatType,
    BBAnalysisResult,
    CarvedArtifact,
    DecryptionAttempt,
    DetectedBackup,
    ExtractedString,
    FileEntry,
    KeyFileRecord,
    MatchType,
    MediaRecord,
    SearchHit,
)
from artifactscope.core.search import KeywordSearcher, run_search
from artifactscope.core.session import AnalysisSession
from artifactscope.core.strings import StringExtractor, extract_strings_from_file, validate_min_length
from artifactscope.infra import filesystem
from artifactscope.infra.logging_utils import LOGGER, log_extra
from artifactscope.reports.carve_manifest import generate_carve_manifest

PathLike = Union[str, Path]

CARVE_MANIFEST_NAME = "carve_manifest.json"


def _resolve(session: AnalysisSession, path: PathLike) -> Path:
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = session.root / candidate
    return candidate


def _files(session: AnalysisSession) -> List[FileEntry]:
    root = session.root
    if root.is_file():
        return [FileEntry(path=str(root), size=root.stat().st_size, extension=root.suffix.lower())]
    return filesystem.walk_files(root, session.limits.max_walk_depth)


def _cancelled(session: AnalysisSession, operation: str, **fields: object) -> None:
    LOGGER.info("Run cancelled", extra=log_extra(session=session.session_id, operation=operation, **fields))


def carve(session: AnalysisSession, path: PathLike, write_manifest: bool = True) -> List[CarvedArtifact]:
    target = _resolve(session, path)
    carver = FileCarver(
        session.registry.enabled(),
        session.carved_dir,
        session.limits,
        checkpoint=session.check_cancelled,
        progress=session.report,
    )
    LOGGER.info("Carve started", extra=log_extra(session=session.session_id, path=str(target)))
    try:
        carver.carve_file(str(target))
    except AnalysisCancelled:
        _cancelled(session, "carve", carved=len(carver.artifacts))
    except OSError as exc:
        LOGGER.error("Carve failed", extra=log_extra(path=str(target), error=str(exc)))
    artifacts = list(carver.artifacts)
    if write_manifest and artifacts:
        generate_carve_manifest(session.session_id, str(target), artifacts, session.output_dir / CARVE_MANIFEST_NAME)
    LOGGER.info("Carve finished", extra=log_extra(session=session.session_id, carved=len(artifacts)))
    return artifacts


def search(
    session: AnalysisSession,
    query: str,
    match_type: MatchType = MatchType.TEXT,
    case_sensitive: bool = False,
    search_in_archives: bool = False,
) -> List[SearchHit]:
    searcher = KeywordSearcher(query, match_type, case_sensitive, session.limits, session.check_cancelled)
    try:
        base = session.root.parent if session.root.is_file() else session.root
        run_search(searcher, base, _files(session), search_in_archives, session.report)
    except AnalysisCancelled:
        _cancelled(session, "search", hits=len(searcher.hits))
    LOGGER.info("Search finished", extra=log_extra(session=session.session_id, hits=len(searcher.hits)))
    return list(searcher.hits)


def extract_strings(session: AnalysisSession, path: PathLike, min_length: int = 4) -> List[ExtractedString]:
    validate_min_length(min_length)
    target = _resolve(session, path)
    limits = session.limits
    extractor = StringExtractor(min_length, limits.string_cap, limits.string_max_chars)
    session.report(10, f"Reading {target.name}")
    try:
        extract_strings_from_file(
            str(target), min_length, limits, session.check_cancelled, session.report, extractor=extractor
        )
    except AnalysisCancelled:
        _cancelled(session, "extract_strings", strings=len(extractor.results))
    except OSError as exc:
        LOGGER.error("String extraction failed", extra=log_extra(path=str(target), error=str(exc)))
    results = extractor.finish()
    session.report(100, f"Found {len(results)} strings")
    return results


def detect_backup_format(session: AnalysisSession) -> BackupFormatResult:
    try:
        return classify_backup_format(_files(session), session.root, session.check_cancelled)
    except AnalysisCancelled:
        _cancelled(session, "detect_backup_format")
        return BackupFormatResult(
            type=BackupFormatType.UNKNOWN,
            confidence=0,
            details="Classification cancelled.",
            manifest_found=False,
            pkg_info_found=False,
        )


def analyze_bb_backup(session: AnalysisSession) -> BBAnalysisResult:
    analyzer = BackupAnalyzer(
        session.session_id, session.root, session.limits, session.check_cancelled, session.report
    )
    try:
        return analyzer.run(_files(session))
    except AnalysisCancelled:
        analyzer.refresh_stats()
        analyzer.result.complete = False
        _cancelled(session, "analyze_bb_backup", artifacts=analyzer.result.total_artifacts)
        return analyzer.result


def decrypt_rem_file(
    session: AnalysisSession, rem: PathLike, key_files: Sequence[KeyFileRecord]
) -> DecryptionAttempt:
    return decrypt_rem(str(_resolve(session, rem)), key_files, session.root, session.limits)


def decrypt_session(session: AnalysisSession, result: BBAnalysisResult) -> Dict[str, DecryptionAttempt]:
    attempts: Dict[str, DecryptionAttempt] = {}
    try:
        decrypt_all(result, session.root, session.limits, session.check_cancelled, session.report, attempts)
    except AnalysisCancelled:
        _cancelled(session, "decrypt_session", attempts=len(attempts))
    return attempts


def inventory_media(
    session: AnalysisSession, include_gifs: bool = True, include_videos: bool = True
) -> List[MediaRecord]:
    records: List[MediaRecord] = []
    base = session.root.parent if session.root.is_file() else session.root
    try:
        scan_media_files(
            _files(session),
            base,
            include_gifs,
            include_videos,
            session.limits,
            session.check_cancelled,
            session.report,
            records,
        )
    except AnalysisCancelled:
        _cancelled(session, "inventory_media", files=len(records))
    return records


def detect_backups(session: AnalysisSession) -> List[DetectedBackup]:
    detections = _detect_backups(_files(session))
    session.report(100, f"Detected {len(detections)} backups")
    return detections


def extract_archive(session: AnalysisSession, path: PathLike, target: Optional[Path] = None) -> List[str]:
    source = _resolve(session, path)
    destination = target or session.extracted_dir / source.stem
    try:
        return archive.extract_archive(source, destination, session.check_cancelled, session.report)
    except AnalysisCancelled:
        _cancelled(session, "extract_archive")
        return [filesystem.relative_path(e.path, destination) for e in filesystem.walk_files(destination)]


def hex_view(session: AnalysisSession, path: PathLike, offset: int = 0, length: int = 512) -> filesystem.HexView:
    return filesystem.hex_view(str(_resolve(session, path)), offset, length)
