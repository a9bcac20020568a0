import json
import logging
from pathlib import Path

from artifactscope.core.models import CarvedArtifact
from artifactscope.infra.filesystem import compute_blake3_hash, compute_sha256, hash_file
from artifactscope.reports.carve_manifest import generate_carve_manifest


def test_hash_file(tmp_path: Path) -> None:
    file_path = tmp_path / "data.bin"
    file_path.write_bytes(b"artifactscope")
    sha = compute_sha256(str(file_path))
    blake = compute_blake3_hash(str(file_path))
    result = hash_file(str(file_path))
    assert sha == result.sha256
    assert blake == result.blake3
    assert len(sha) == 64
    assert len(blake) == 64


def test_carve_manifest_records_both_digests(tmp_path: Path) -> None:
    carved = tmp_path / "carved_10.jpg"
    carved.write_bytes(b"\xFF\xD8\xFF" + bytes(200) + b"\xFF\xD9")
    digests = hash_file(str(carved))
    artifact = CarvedArtifact(
        signature="JPEG",
        extension="jpg",
        offset=16,
        size=carved.stat().st_size,
        output_path=str(carved),
        sha256=digests.sha256,
    )
    manifest = generate_carve_manifest("run-1", "image.bin", [artifact], tmp_path / "out" / "manifest.json")
    payload = json.loads(manifest.read_text(encoding="utf-8"))
    assert payload["session_id"] == "run-1"
    assert payload["source"] == "image.bin"
    entry = payload["artifacts"][0]
    assert entry["offset"] == 16
    assert entry["sha256"] == digests.sha256
    assert entry["blake3"] == digests.blake3


def test_carve_manifest_logs_structured_fields(tmp_path: Path, caplog) -> None:
    carved = tmp_path / "carved_0.png"
    carved.write_bytes(b"\x89PNG" + bytes(120))
    artifact = CarvedArtifact(
        signature="PNG",
        extension="png",
        offset=0,
        size=124,
        output_path=str(carved),
        sha256=hash_file(str(carved)).sha256,
    )
    output = tmp_path / "manifest.json"
    with caplog.at_level(logging.INFO, logger="artifactscope"):
        generate_carve_manifest("run-2", "disk.img", [artifact], output)
    (record,) = [r for r in caplog.records if r.getMessage() == "Carve manifest generated"]
    assert record.extra_data == {"output": str(output), "artifacts": 1}
