import os
from pathlib import Path

from artifactscope.infra.filesystem import format_hex_dump, hex_view, walk_files


def test_walk_files_respects_depth(tmp_path: Path) -> None:
    (tmp_path / "a" / "b" / "c").mkdir(parents=True)
    (tmp_path / "top.rem").write_bytes(b"x")
    (tmp_path / "a" / "one.DAT").write_bytes(b"xy")
    (tmp_path / "a" / "b" / "c" / "deep.key").write_bytes(b"xyz")

    everything = walk_files(tmp_path)
    assert sorted(os.path.basename(e.path) for e in everything) == ["deep.key", "one.DAT", "top.rem"]
    dat = next(e for e in everything if e.path.endswith("one.DAT"))
    assert dat.extension == ".dat"
    assert dat.size == 2
    assert os.path.isabs(dat.path)

    shallow = walk_files(tmp_path, max_depth=1)
    assert sorted(os.path.basename(e.path) for e in shallow) == ["one.DAT", "top.rem"]


def test_walk_files_skips_symlinks(tmp_path: Path) -> None:
    target = tmp_path / "real.bin"
    target.write_bytes(b"data")
    (tmp_path / "link.bin").symlink_to(target)
    assert [os.path.basename(e.path) for e in walk_files(tmp_path)] == ["real.bin"]


def test_walk_files_missing_root_is_empty(tmp_path: Path) -> None:
    assert walk_files(tmp_path / "missing") == []


def test_format_hex_dump_layout() -> None:
    dump = format_hex_dump(b"ABCDEFGHIJKLMNOP\x00\x01QR")
    lines = dump.split("\n")
    assert lines[0] == "00000000  41 42 43 44 45 46 47 48 49 4A 4B 4C 4D 4E 4F 50  |ABCDEFGHIJKLMNOP|"
    assert lines[1].startswith("00000010  00 01 51 52 ")
    assert lines[1].endswith("  |..QR|")


def test_format_hex_dump_stops_at_max_bytes() -> None:
    dump = format_hex_dump(bytes(1024), max_bytes=64)
    assert len(dump.split("\n")) == 4


def test_hex_view_rows(tmp_path: Path) -> None:
    path = tmp_path / "blob.bin"
    path.write_bytes(bytes(range(40)))
    view = hex_view(str(path), 16, 100)
    assert view.total_size == 40
    assert len(view.rows) == 2
    address, hex_part, ascii_part = view.rows[0]
    assert address == "00000010"
    assert hex_part.split(" ")[:2] == ["10", "11"]
    assert len(ascii_part) == 16
    assert view.rows[1][0] == "00000020"


def test_hex_view_past_end(tmp_path: Path) -> None:
    path = tmp_path / "blob.bin"
    path.write_bytes(b"abc")
    assert hex_view(str(path), 10, 16).rows == []
