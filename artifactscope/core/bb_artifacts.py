"""BlackBerry artifact recognition: BB10 path table, embedded dates, event logs and thumbnail caches."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Sequence

from artifactscope.config import DEFAULT_LIMITS, MIB, EngineLimits
from artifactscope.core.models import BB10Artifact, DateArtifact, DateFormat, FileEntry, ThumbsInfo
from artifactscope.infra.filesystem import read_file, read_prefix, relative_path

REMF_MAGIC = b"REMF"
BBTHUMBS_MAGIC = b"\x24\x05\x20\x03"
QNX_TAR_MAGIC = b"QNX\x00"
PER_TAR_MAGIC = b"PER\x00"
JPEG_MAGIC = b"\xFF\xD8\xFF"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
CALENDAR_EPOCH = datetime(1900, 1, 1, tzinfo=timezone.utc)

# 2000-01-01 .. 2050-01-01, inclusive.
MIN_JAVA_MS = 946684800000
MAX_JAVA_MS = 2524608000000
MIN_UNIX_S = MIN_JAVA_MS // 1000
MAX_UNIX_S = MAX_JAVA_MS // 1000
MIN_CALENDAR_MINUTES = int((datetime(2000, 1, 1, tzinfo=timezone.utc) - CALENDAR_EPOCH).total_seconds()) // 60
MAX_CALENDAR_MINUTES = int((datetime(2050, 1, 1, tzinfo=timezone.utc) - CALENDAR_EPOCH).total_seconds()) // 60

# Any in-range millisecond value is below 2**42, so its first three big-endian bytes are 00 00 0[0-2].
_JAVA_CANDIDATE = re.compile(rb"\x00\x00[\x00-\x02]")
_CALENDAR_CANDIDATE = re.compile(rb"[\x03\x04]")
_UNIX_TEXT = re.compile(r"(?<!\d)(\d{10})(?!\d)")
_JAVA_TEXT = re.compile(r"(?<!\d)(\d{13})(?!\d)")

EVENT_LOG_TOKENS = re.compile(r"\b(GUID|SEVR|TITL|EVNT|APNM|BATT|CALL|SYNC|BT|WiFi)\b", re.IGNORECASE | re.ASCII)


@dataclass(frozen=True)
class KnownPath:
    category: str
    path_pattern: str
    description: str


BB10_KNOWN_PATHS = (
    KnownPath("PIM Contacts", "settings/accounts/1000/sysdata/pim/db", "Contact databases (contacts.db)"),
    KnownPath("SMS/MMS", "settings/var/db/text_messaging", "Text messages database (messages.db)"),
    KnownPath("BBM", "bbm", "BBM master.db and chat data"),
    KnownPath("BlackBerry Hub", "pim.messages", "Unified.db - timeline of all device activity"),
    KnownPath("Browser History", "sys.browser", "Internet history, bookmarks, cache"),
    KnownPath("Camera Settings", "pps/system/camera", "Camera save location and last captured file"),
    KnownPath("Device Info", "pps/system/restricted", "Device model name and number"),
    KnownPath("Timezone", "pps/services/clock", "Device timezone settings"),
    KnownPath("Network", "pps/services/rum/csm", "Network operator name"),
    KnownPath("Phone Number", "pps/services/phone", "Phone number, voicemail, caller ID"),
    KnownPath("IMSI", "pps/services/cellular-voice", "SIM IMSI value"),
    KnownPath("BBM Profile", "pps/services/bbmcore/profile", "BBM profile and registration ID"),
    KnownPath("Paired Devices", "pps/services/bp2p/devices", "Bluetooth/WiFi paired devices"),
    KnownPath("Event Logs", "logs/", "System event logs (volatile)"),
    KnownPath("Photos", "media/camera", "User photos and screenshots"),
    KnownPath("SD Card Media", "sdcard/camera", "Photos/videos saved to SD card"),
    KnownPath("WhatsApp Images", "media/photos", "WhatsApp and transferred images"),
)


def has_remf_header(content: bytes) -> bool:
    return content[:4] == REMF_MAGIC


def normalized_relative(path: str, root: Path) -> str:
    return relative_path(path, root).replace("\\", "/").lower()


def detect_bb10_artifacts(files: Sequence[FileEntry], root: Path) -> List[BB10Artifact]:
    rel_paths = [normalized_relative(entry.path, root) for entry in files]
    return [
        BB10Artifact(
            category=known.category,
            artifact_path=known.path_pattern,
            description=known.description,
            found=any(known.path_pattern.lower() in rel for rel in rel_paths),
        )
        for known in BB10_KNOWN_PATHS
    ]


# -- dates ------------------------------------------------------------------


def _iso(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def decode_java_timestamp(ms: int) -> str:
    try:
        return _iso(EPOCH + timedelta(milliseconds=ms))
    except OverflowError:
        return "Invalid"


def decode_unix_timestamp(seconds: int) -> str:
    return decode_java_timestamp(seconds * 1000)


def decode_calendar_minutes(minutes: int) -> str:
    """Minutes since 1900-01-01 UTC."""
    try:
        return _iso(CALENDAR_EPOCH + timedelta(minutes=minutes))
    except OverflowError:
        return "Invalid"


def _binary_java_dates(window: bytes, filename: str, cap: int) -> List[DateArtifact]:
    found: List[DateArtifact] = []
    last = len(window) - 8
    pos = 0
    while len(found) < cap:
        match = _JAVA_CANDIDATE.search(window, pos)
        if match is None or match.start() > last:
            break
        i = match.start()
        value = int.from_bytes(window[i:i + 8], "big", signed=True)
        if MIN_JAVA_MS <= value <= MAX_JAVA_MS:
            found.append(
                DateArtifact(
                    source=f"{filename} @ offset 0x{i:x}",
                    raw_value=str(value),
                    decoded=decode_java_timestamp(value),
                    format=DateFormat.JAVA_EPOCH,
                )
            )
            pos = i + 8
        else:
            pos = i + 1
    return found


def _binary_calendar_dates(window: bytes, filename: str, cap: int) -> List[DateArtifact]:
    found: List[DateArtifact] = []
    last = len(window) - 4
    pos = 0
    while len(found) < cap:
        match = _CALENDAR_CANDIDATE.search(window, pos)
        if match is None or match.start() > last:
            break
        i = match.start()
        value = int.from_bytes(window[i:i + 4], "big")
        if MIN_CALENDAR_MINUTES <= value <= MAX_CALENDAR_MINUTES:
            found.append(
                DateArtifact(
                    source=f"{filename} @ offset 0x{i:x} (calendar)",
                    raw_value=str(value),
                    decoded=decode_calendar_minutes(value),
                    format=DateFormat.CALENDAR_MINUTES,
                )
            )
            pos = i + 4
        else:
            pos = i + 1
    return found


def _text_dates(
    text: str, pattern: re.Pattern, low: int, high: int, source: str, fmt: DateFormat, cap: int, scale: int
) -> List[DateArtifact]:
    found: List[DateArtifact] = []
    for match in pattern.finditer(text):
        if len(found) >= cap:
            break
        raw = match.group(1)
        value = int(raw)
        if low <= value <= high:
            found.append(DateArtifact(source=source, raw_value=raw, decoded=decode_java_timestamp(value * scale), format=fmt))
    return found


def find_date_artifacts(
    buffer: bytes,
    filename: str,
    limits: EngineLimits = DEFAULT_LIMITS,
    include_calendar_minutes: bool = False,
) -> List[DateArtifact]:
    window = buffer[:limits.date_scan_window]
    artifacts = _binary_java_dates(window, filename, limits.date_binary_cap)
    # latin-1 maps each byte to one character, so regex offsets are byte offsets.
    text = window.decode("latin-1")
    artifacts += _text_dates(
        text, _UNIX_TEXT, MIN_UNIX_S, MAX_UNIX_S, f"{filename} (text)", DateFormat.UNIX_EPOCH, limits.date_text_cap, 1000
    )
    artifacts += _text_dates(
        text,
        _JAVA_TEXT,
        MIN_JAVA_MS,
        MAX_JAVA_MS,
        f"{filename} (text, 13-digit)",
        DateFormat.JAVA_EPOCH,
        limits.date_text_cap,
        1,
    )
    if include_calendar_minutes:
        artifacts += _binary_calendar_dates(window, filename, limits.date_binary_cap)
    return artifacts


# -- event logs and thumbnail caches -----------------------------------------


def is_event_log_name(name: str) -> bool:
    lowered = name.lower()
    return lowered.endswith(".evt") or "eventlog" in lowered or "event_log" in lowered


def count_event_log_entries(buffer: bytes, window: int = MIB) -> int:
    text = buffer[:window].decode("utf-8", errors="replace")
    return max(text.count("\n"), len(EVENT_LOG_TOKENS.findall(text)))


def is_bbthumbs_name(name: str) -> bool:
    return name.lower().startswith("bbthumbs")


def count_thumbnails(content: bytes) -> int:
    count = 0
    stop = len(content) - 3
    idx = content.find(JPEG_MAGIC, len(BBTHUMBS_MAGIC))
    while idx != -1 and idx < stop:
        count += 1
        idx = content.find(JPEG_MAGIC, idx + len(JPEG_MAGIC))
    return count


def parse_bbthumbs(path: str, root: Path) -> ThumbsInfo:
    size = os.path.getsize(path)
    valid = read_prefix(path, len(BBTHUMBS_MAGIC)) == BBTHUMBS_MAGIC
    thumbnails = count_thumbnails(read_file(path)) if valid and size > 16 else 0
    return ThumbsInfo(
        filename=os.path.basename(path),
        path=relative_path(path, root),
        size=size,
        valid=valid,
        thumbnail_count=thumbnails,
    )
