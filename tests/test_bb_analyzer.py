import struct
from pathlib import Path

from artifactscope.core.bb_analyzer import BackupAnalyzer
from artifactscope.infra.filesystem import walk_files

BASE_MS = 1700000000000


def _stamps(first: int, count: int) -> bytes:
    return b"".join(struct.pack(">q", BASE_MS + (first + k) * 1000) for k in range(count))


def _analyze(root: Path):
    return BackupAnalyzer("run-1", root).run(walk_files(root))


def test_dates_come_from_the_first_twenty_dat_files(tmp_path: Path) -> None:
    for i in range(25):
        (tmp_path / f"d{i:02d}.dat").write_bytes(_stamps(i, 1))
    result = _analyze(tmp_path)
    assert len(result.dat_files) == 25
    sources = [a.source for a in result.date_artifacts]
    assert sources == [f"d{i:02d}.dat @ offset 0x0" for i in range(20)]


def test_date_artifacts_are_truncated_to_fifty(tmp_path: Path) -> None:
    for i in range(6):
        (tmp_path / f"d{i}.dat").write_bytes(_stamps(i * 10, 10))
    result = _analyze(tmp_path)
    assert len(result.date_artifacts) == 50
    assert result.date_artifacts[-1].source == "d4.dat @ offset 0x48"
