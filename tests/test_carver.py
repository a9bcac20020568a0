import io
import random
from pathlib import Path

import pytest

from artifactscope.config import EngineLimits
from artifactscope.core.carver import FileCarver
from artifactscope.core.signatures import SignatureRegistry

JPEG_HEADER = b"\xFF\xD8\xFF"
JPEG_FOOTER = b"\xFF\xD9"


def _filler(size: int) -> bytes:
    # Bytes below 0x20 never start a registered header.
    return bytes(i % 32 for i in range(size))


def _jpeg(body: int = 300) -> bytes:
    return JPEG_HEADER + _filler(body) + JPEG_FOOTER


def _carver(tmp_path: Path, **limits: int) -> FileCarver:
    return FileCarver(SignatureRegistry().enabled(), tmp_path / "carved", EngineLimits(**limits))


def test_jpeg_offset_and_length(tmp_path: Path) -> None:
    jpeg = _jpeg()
    data = _filler(1000) + jpeg + _filler(200)
    (artifact,) = _carver(tmp_path).carve_bytes(data)
    assert artifact.signature == "JPEG"
    assert artifact.offset == 1000
    assert artifact.size == len(jpeg)
    assert Path(artifact.output_path).name == "carved_3e8.jpg"
    assert Path(artifact.output_path).read_bytes() == jpeg


def test_small_matches_are_discarded(tmp_path: Path) -> None:
    data = _filler(50) + _jpeg(body=20) + _filler(50)
    assert _carver(tmp_path).carve_bytes(data) == []


def test_header_without_footer_is_abandoned(tmp_path: Path) -> None:
    png_header = b"\x89PNG\r\n\x1a\n"
    data = _filler(10) + png_header + _filler(20) + _jpeg() + _filler(10)
    (artifact,) = _carver(tmp_path).carve_bytes(data)
    assert artifact.signature == "JPEG"
    assert artifact.offset == 10 + len(png_header) + 20


def test_first_footer_closes_the_match(tmp_path: Path) -> None:
    data = _filler(10) + JPEG_HEADER + _filler(500) + _jpeg() + _filler(10)
    (artifact,) = _carver(tmp_path).carve_bytes(data)
    assert artifact.offset == 10
    assert artifact.size == len(data) - 20


def test_footerless_signature_takes_window(tmp_path: Path) -> None:
    data = _filler(64) + b"PK\x03\x04" + _filler(400)
    (artifact,) = _carver(tmp_path, footerless_window=256).carve_bytes(data)
    assert artifact.signature == "ZIP"
    assert artifact.offset == 64
    assert artifact.size == 256


def test_bmp_size_field_is_checked(tmp_path: Path) -> None:
    declared = 150
    bmp = b"BM" + declared.to_bytes(4, "little") + _filler(declared - 6)
    bogus = b"BM" + (10 ** 9).to_bytes(4, "little")
    data = bogus + _filler(40) + bmp + _filler(60)
    (artifact,) = _carver(tmp_path).carve_bytes(data)
    assert artifact.signature == "BMP"
    assert artifact.offset == len(bogus) + 40
    assert artifact.size == declared


def test_disabled_signatures_are_ignored(tmp_path: Path) -> None:
    registry = SignatureRegistry()
    registry.set_enabled("JPEG", False)
    carver = FileCarver(registry.enabled(), tmp_path / "carved")
    assert carver.carve_bytes(_filler(10) + _jpeg()) == []


def test_cap_stops_carving(tmp_path: Path) -> None:
    data = b"".join(_filler(8) + _jpeg() for _ in range(5))
    assert len(_carver(tmp_path).carve_bytes(data, cap=2)) == 2


def test_same_offset_in_two_runs_gets_unique_names(tmp_path: Path) -> None:
    data = _filler(16) + _jpeg()
    first = _carver(tmp_path).carve_bytes(data)
    second = _carver(tmp_path).carve_bytes(data)
    assert first[0].output_path != second[0].output_path


@pytest.mark.parametrize("chunk", [16, 64, 100, 4096])
def test_streaming_matches_whole_file(tmp_path: Path, chunk: int) -> None:
    jpeg = _jpeg()
    data = _filler(200) + jpeg + _filler(100) + _jpeg(body=150) + _filler(30)
    whole = _carver(tmp_path / "whole").carve_bytes(data)
    streamed = _carver(tmp_path / "stream", carve_chunk_size=chunk).carve_stream(io.BytesIO(data), len(data))
    assert [(a.offset, a.size, a.sha256) for a in streamed] == [(a.offset, a.size, a.sha256) for a in whole]
    assert Path(streamed[0].output_path).read_bytes() == jpeg


def test_streaming_recovers_footer_beyond_chunk(tmp_path: Path) -> None:
    jpeg = _jpeg(body=1000)
    path = tmp_path / "image.bin"
    path.write_bytes(_filler(40) + jpeg + _filler(40))
    carver = _carver(tmp_path, carve_chunk_size=64)
    (artifact,) = carver.carve_file(str(path), streaming=True)
    assert artifact.offset == 40
    assert artifact.size == len(jpeg)
    assert Path(artifact.output_path).read_bytes() == jpeg
    assert not list((tmp_path / "carved").glob("*.part"))


def test_streaming_abandons_at_max_size(tmp_path: Path) -> None:
    registry = SignatureRegistry(
        [s for s in SignatureRegistry().all() if s.name == "JPEG"]
    )
    sig = registry.get("JPEG")
    assert sig is not None
    sig.max_size = 200
    data = _filler(5) + JPEG_HEADER + _filler(400) + _jpeg(body=150) + _filler(5)
    carver = FileCarver([sig], tmp_path / "carved", EngineLimits(carve_chunk_size=32))
    (artifact,) = carver.carve_stream(io.BytesIO(data), len(data))
    assert artifact.offset == 5 + 3 + 400
    assert not list((tmp_path / "carved").glob("*.part"))


def test_streaming_cap_is_two_hundred(tmp_path: Path) -> None:
    data = b"".join(_filler(8) + _jpeg(body=120) for _ in range(210))
    assert len(_carver(tmp_path / "whole").carve_bytes(data)) == 210
    streamed = _carver(tmp_path / "stream", carve_chunk_size=1024).carve_stream(io.BytesIO(data), len(data))
    assert len(streamed) == 200
    assert streamed[-1].offset == 199 * (8 + 125) + 8


@pytest.mark.parametrize("streaming", [False, True])
def test_jpeg_between_random_kilobytes(tmp_path: Path, streaming: bool) -> None:
    rng = random.Random(1024)
    jpeg = _jpeg(body=2000)
    path = tmp_path / "image.bin"
    path.write_bytes(rng.randbytes(1024) + jpeg + rng.randbytes(1024))
    carver = _carver(tmp_path, carve_chunk_size=512)
    (artifact,) = carver.carve_file(str(path), streaming=streaming)
    assert artifact.signature == "JPEG"
    assert artifact.offset == 1024
    assert artifact.size == len(jpeg)
    assert Path(artifact.output_path).read_bytes() == jpeg


@pytest.mark.parametrize("streaming", [False, True])
def test_scan_resumes_after_a_dropped_small_match(tmp_path: Path, streaming: bool) -> None:
    png = b"\x89PNG\r\n\x1a\n" + _filler(10) + JPEG_FOOTER + _filler(200) + b"IEND\xAE\x42\x60\x82"
    # The PNG header sits inside a JPEG match too small to keep.
    data = JPEG_HEADER + _filler(5) + png + _filler(10)
    carver = _carver(tmp_path, carve_chunk_size=4096)
    if streaming:
        assert carver.carve_stream(io.BytesIO(data), len(data)) == []
    else:
        assert carver.carve_bytes(data) == []
