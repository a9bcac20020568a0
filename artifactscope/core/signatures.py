from __future__ import annotations

from dataclasses import replace
from typing import Iterable, List, Optional

from artifactscope.config import MIB
from artifactscope.core.models import Signature


def default_signatures() -> List[Signature]:
    return [
        Signature("JPEG", "jpg", b"\xFF\xD8\xFF", b"\xFF\xD9", 50 * MIB),
        Signature("PNG", "png", b"\x89PNG\r\n\x1a\n", b"IEND\xAE\x42\x60\x82", 50 * MIB),
        Signature("PDF", "pdf", b"%PDF", b"%%EOF", 100 * MIB),
        Signature("ZIP", "zip", b"PK\x03\x04", None, 500 * MIB),
        Signature("GIF87a", "gif", b"GIF87a", b"\x3B", 50 * MIB),
        Signature("GIF89a", "gif", b"GIF89a", b"\x3B", 50 * MIB),
        Signature("BMP", "bmp", b"BM", None, 50 * MIB, size_field_offset=2),
        Signature("TIFF (LE)", "tiff", b"II\x2A\x00", None, 100 * MIB, enabled=False),
        Signature("TIFF (BE)", "tiff", b"MM\x00\x2A", None, 100 * MIB, enabled=False),
        Signature("SQLite", "sqlite", b"SQLite format 3\x00", None, 500 * MIB, enabled=False),
    ]


class SignatureRegistry:
    """Ordered signature table; the only mutation is toggling ``enabled`` by name."""

    def __init__(self, signatures: Optional[Iterable[Signature]] = None) -> None:
        source = default_signatures() if signatures is None else signatures
        self._signatures: List[Signature] = [replace(s) for s in source]

    def all(self) -> List[Signature]:
        return [replace(s) for s in self._signatures]

    def enabled(self) -> List[Signature]:
        return [replace(s) for s in self._signatures if s.enabled]

    def get(self, name: str) -> Optional[Signature]:
        for sig in self._signatures:
            if sig.name == name:
                return replace(sig)
        return None

    def set_enabled(self, name: str, enabled: bool) -> bool:
        for sig in self._signatures:
            if sig.name == name:
                sig.enabled = enabled
                return True
        return False

    def copy(self) -> "SignatureRegistry":
        return SignatureRegistry(self._signatures)

    def __len__(self) -> int:
        return len(self._signatures)
