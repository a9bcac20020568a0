"""Content heuristics shared by the backup analyzer and the decryption scorer.

Every counter looks only at the first ``window`` bytes of its buffer.
"""
from __future__ import annotations

import re
from typing import Set

from artifactscope.config import MIB

MESSAGE_KEYWORDS = (
    "BBM",
    "message",
    "chat",
    "sms",
    "email",
    "inbox",
    "outbox",
    "sent",
    "from:",
    "to:",
    "subject:",
    "date:",
    "delivered",
)

EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+", re.ASCII)
PHONE_PATTERN = re.compile(r"(?:\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}", re.ASCII)

JPEG_MAGIC = b"\xFF\xD8\xFF"
PNG_MAGIC = b"\x89PNG"
SQLITE_MAGIC = b"SQLite format 3\x00"


def _text(buffer: bytes, window: int) -> str:
    return buffer[:window].decode("utf-8", errors="replace")


def count_occurrences(haystack: str, needle: str) -> int:
    """Overlapping occurrence count."""
    count = 0
    idx = haystack.find(needle)
    while idx != -1:
        count += 1
        idx = haystack.find(needle, idx + 1)
    return count


def search_for_messages(buffer: bytes, window: int = MIB) -> int:
    lowered = _text(buffer, window).lower()
    return sum(count_occurrences(lowered, keyword.lower()) for keyword in MESSAGE_KEYWORDS)


def search_for_contacts(buffer: bytes, window: int = MIB) -> int:
    text = _text(buffer, window)
    found: Set[str] = set(EMAIL_PATTERN.findall(text))
    found.update(PHONE_PATTERN.findall(text))
    return len(found)


def _count_magic(buffer: bytes, magic: bytes, tail: int) -> int:
    # Hits within ``tail`` bytes of the end are too short to be real files.
    count = 0
    stop = len(buffer) - tail
    idx = buffer.find(magic)
    while idx != -1 and idx < stop:
        count += 1
        idx = buffer.find(magic, idx + len(magic))
    return count


def count_media_signatures(buffer: bytes) -> int:
    return _count_magic(buffer, JPEG_MAGIC, 4) + _count_magic(buffer, PNG_MAGIC, 8)


def has_sqlite_signature(buffer: bytes) -> bool:
    return SQLITE_MAGIC in buffer
