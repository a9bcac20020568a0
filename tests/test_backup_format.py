from pathlib import Path

from artifactscope.core.backup_format import classify_backup_format, detect_backups
from artifactscope.core.models import BackupFormatType
from artifactscope.infra.filesystem import walk_files


def _write(root: Path, rel: str, data: bytes = b"\x00" * 8) -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def _classify(root: Path):
    return classify_backup_format(walk_files(root), root)


def test_qnx_magic_wins_over_bb10_bbb_layout(tmp_path: Path) -> None:
    _write(tmp_path, "Manifest.xml")
    _write(tmp_path, "PkgInfo")
    _write(tmp_path, "Archive/apps.tar", b"QNX\x00rest")
    result = _classify(tmp_path)
    assert result.type is BackupFormatType.BB10_TAR_QNX
    assert result.confidence == 95
    assert result.manifest_found and result.pkg_info_found
    assert result.archive_files == ["Archive/apps.tar"]


def test_qnx_magic_wins_even_after_per_in_walk_order(tmp_path: Path) -> None:
    _write(tmp_path, "a_settings.tar", b"PER\x00....")
    _write(tmp_path, "b_apps.tar", b"QNX\x00....")
    result = _classify(tmp_path)
    assert result.type is BackupFormatType.BB10_TAR_QNX
    assert result.confidence == 95


def test_per_magic_alone(tmp_path: Path) -> None:
    _write(tmp_path, "Manifest.xml")
    _write(tmp_path, "settings.tar", b"PER\x00....")
    result = _classify(tmp_path)
    assert result.type is BackupFormatType.BB10_TAR_PER
    assert result.confidence == 95


def test_bb10_bbb(tmp_path: Path) -> None:
    _write(tmp_path, "manifest.XML")
    _write(tmp_path, "pkginfo")
    _write(tmp_path, "Archive/media.tar")
    result = _classify(tmp_path)
    assert result.type is BackupFormatType.BB10_BBB
    assert result.confidence == 90


def test_bbb_v2_windows(tmp_path: Path) -> None:
    _write(tmp_path, "Manifest.xml")
    for i in range(4):
        _write(tmp_path, f"db{i}.dat")
    result = _classify(tmp_path)
    assert result.type is BackupFormatType.BBB_V2_WINDOWS
    assert result.confidence == 85


def test_three_dat_files_are_not_enough_for_v2(tmp_path: Path) -> None:
    _write(tmp_path, "Manifest.xml")
    for i in range(3):
        _write(tmp_path, f"db{i}.dat")
    assert _classify(tmp_path).type is BackupFormatType.UNKNOWN


def test_ipd(tmp_path: Path) -> None:
    _write(tmp_path, "backup.IPD")
    _write(tmp_path, "x.rem")
    _write(tmp_path, "y.dat")
    result = _classify(tmp_path)
    assert result.type is BackupFormatType.IPD
    assert result.confidence == 90


def test_bbb_v1_mac(tmp_path: Path) -> None:
    _write(tmp_path, "x.rem")
    _write(tmp_path, "y.dat")
    result = _classify(tmp_path)
    assert result.type is BackupFormatType.BBB_V1_MAC
    assert result.confidence == 70


def test_unknown_lists_counts(tmp_path: Path) -> None:
    _write(tmp_path, "x.rem")
    _write(tmp_path, "z.rem")
    result = _classify(tmp_path)
    assert result.type is BackupFormatType.UNKNOWN
    assert result.confidence == 30
    assert "2 .rem, 0 .dat, 0 .tar" in result.details


def test_detect_backups(tmp_path: Path) -> None:
    _write(tmp_path, "bb/one/a.rem", b"1234")
    _write(tmp_path, "bb/one/b.cod", b"12")
    _write(tmp_path, "bb/two/full.bbb", b"123")
    _write(tmp_path, "Library/MobileSync/Backup/abc/Manifest.db", b"12345")
    _write(tmp_path, "Library/MobileSync/Backup/abc/Info.plist", b"1")
    detections = detect_backups(walk_files(tmp_path))
    by_type = {d.type: d for d in detections}
    assert set(by_type) == {"blackberry_rem", "blackberry_bbb", "apple_mobilesync"}
    assert by_type["blackberry_rem"].files == 2
    assert by_type["blackberry_rem"].size == 6
    assert by_type["apple_mobilesync"].files == 2
    assert by_type["apple_mobilesync"].path.endswith("abc")
