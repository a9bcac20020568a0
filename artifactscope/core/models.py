from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class BackupFormatType(str, Enum):
    IPD = "IPD"
    BBB_V1_MAC = "BBBv1_Mac"
    BBB_V2_WINDOWS = "BBBv2_Windows"
    BB10_BBB = "BB10_BBB"
    BB10_TAR_QNX = "BB10_TAR_QNX"
    BB10_TAR_PER = "BB10_TAR_PER"
    UNKNOWN = "Unknown"


class DateFormat(str, Enum):
    JAVA_EPOCH = "java_epoch"
    UNIX_EPOCH = "unix_epoch"
    CALENDAR_MINUTES = "calendar_minutes"
    UNKNOWN = "unknown"


class MatchType(str, Enum):
    TEXT = "text"
    HEX = "hex"


@dataclass(frozen=True)
class FileEntry:
    path: str
    size: int
    extension: str


@dataclass
class Signature:
    name: str
    extension: str
    header: bytes
    footer: Optional[bytes]
    max_size: int
    enabled: bool = True
    # Footer-less formats whose header stores the total length (4 bytes, little-endian).
    size_field_offset: Optional[int] = None


@dataclass(frozen=True)
class CarvedArtifact:
    signature: str
    extension: str
    offset: int
    size: int
    output_path: str
    sha256: str


@dataclass(frozen=True)
class SearchHit:
    file: str
    offset: int
    context: str
    match_type: MatchType
    query: str


@dataclass(frozen=True)
class ExtractedString:
    offset: int
    value: str
    encoding: str = "ascii"


@dataclass
class BackupFormatResult:
    type: BackupFormatType
    confidence: int
    details: str
    manifest_found: bool
    pkg_info_found: bool
    archive_files: List[str] = field(default_factory=list)


@dataclass
class DetectedBackup:
    type: str
    path: str
    size: int
    files: int


@dataclass
class MediaRecord:
    filename: str
    path: str
    size: int
    mime_type: str
    sha256: str
    blake3: str
    likely_encrypted: bool


@dataclass
class KeyFileRecord:
    filename: str
    path: str
    size: int
    hex_dump: str
    key_type: str


@dataclass
class RemFileRecord:
    filename: str
    path: str
    size: int
    encrypted: bool
    has_remf_header: bool
    decryptable: bool
    strings_found: int
    media_found: int
    sqlite_found: bool


@dataclass
class ModuleRecord:
    filename: str
    path: str
    size: int


@dataclass
class DatFileRecord:
    filename: str
    path: str
    size: int
    hex_dump: str


@dataclass(frozen=True)
class DateArtifact:
    source: str
    raw_value: str
    decoded: str
    format: DateFormat


@dataclass
class ThumbsInfo:
    filename: str
    path: str
    size: int
    valid: bool
    thumbnail_count: int


@dataclass
class EventLogRecord:
    filename: str
    path: str
    size: int
    entries: int


@dataclass(frozen=True)
class BB10Artifact:
    category: str
    artifact_path: str
    description: str
    found: bool


@dataclass
class DecryptionAttempt:
    method: str
    success: bool
    extracted_strings: int = 0
    messages: int = 0
    contacts: int = 0
    media: int = 0
    rem_path: str = ""
    # Ranked by printable-string density only; never a proof of correct plaintext.
    best_effort: bool = True


@dataclass
class AnalysisStats:
    rem_count: int = 0
    encrypted_count: int = 0
    remf_header_count: int = 0
    decryptable_count: int = 0
    sqlite_found: int = 0
    media_total: int = 0
    messages_found: int = 0
    key_file_count: int = 0
    contacts_found: int = 0


@dataclass
class BBAnalysisResult:
    session_id: str
    root: str
    backup_format: BackupFormatResult
    total_artifacts: int = 0
    rem_files: List[RemFileRecord] = field(default_factory=list)
    key_files: List[KeyFileRecord] = field(default_factory=list)
    cod_modules: List[ModuleRecord] = field(default_factory=list)
    dat_files: List[DatFileRecord] = field(default_factory=list)
    mkf_files: List[ModuleRecord] = field(default_factory=list)
    nested_zips: List[str] = field(default_factory=list)
    date_artifacts: List[DateArtifact] = field(default_factory=list)
    thumbs_files: List[ThumbsInfo] = field(default_factory=list)
    bb10_artifacts: List[BB10Artifact] = field(default_factory=list)
    event_logs: List[EventLogRecord] = field(default_factory=list)
    stats: AnalysisStats = field(default_factory=AnalysisStats)
    complete: bool = True


def to_dict(record: Any) -> Dict[str, Any]:
    payload = asdict(record)
    return _plain(payload)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value
