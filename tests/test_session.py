from pathlib import Path

import pytest

from artifactscope.config import OUTPUT_ENV_VAR, default_output_root
from artifactscope.core import engine
from artifactscope.core.errors import RootNotFoundError
from artifactscope.core.session import SessionService
from artifactscope.core.signatures import SignatureRegistry

JPEG = b"\xFF\xD8\xFF" + bytes(i % 32 for i in range(300)) + b"\xFF\xD9"


def test_missing_root_is_fatal(tmp_path: Path) -> None:
    service = SessionService(tmp_path / "runs")
    with pytest.raises(RootNotFoundError):
        service.create_session(tmp_path / "nope")


def test_sessions_are_isolated(tmp_path: Path) -> None:
    evidence = tmp_path / "evidence"
    evidence.mkdir()
    (evidence / "image.bin").write_bytes(bytes(32) + JPEG)
    service = SessionService(tmp_path / "runs")
    shared = SignatureRegistry()
    first = service.create_session(evidence, registry=shared)
    second = service.create_session(evidence, registry=shared)
    assert first.session_id != second.session_id
    assert first.output_dir != second.output_dir

    first.registry.set_enabled("JPEG", False)
    assert shared.get("JPEG").enabled
    assert second.registry.get("JPEG").enabled

    assert engine.carve(first, "image.bin") == []
    (artifact,) = engine.carve(second, "image.bin")
    assert artifact.offset == 32
    assert Path(artifact.output_path).parent == second.carved_dir
    assert (second.output_dir / engine.CARVE_MANIFEST_NAME).exists()


def test_cancelled_carve_returns_partial_results(tmp_path: Path) -> None:
    evidence = tmp_path / "image.bin"
    evidence.write_bytes(bytes(16) + JPEG)
    service = SessionService(tmp_path / "runs")
    session = service.create_session(evidence)
    session.cancel()
    assert engine.carve(session, evidence) == []
    assert session.cancelled


def test_progress_is_reported_as_int_percent(tmp_path: Path) -> None:
    evidence = tmp_path / "image.bin"
    evidence.write_bytes(bytes(16) + JPEG)
    seen = []
    service = SessionService(tmp_path / "runs")
    session = service.create_session(evidence, progress=lambda pct, msg: seen.append((pct, msg)))
    engine.carve(session, evidence)
    assert seen[-1] == (100, "Carved 1 files")
    assert all(isinstance(pct, int) and 0 <= pct <= 100 for pct, _ in seen)


def test_retire_removes_output(tmp_path: Path) -> None:
    service = SessionService(tmp_path / "runs")
    session = service.create_session(tmp_path)
    assert session.carved_dir.exists()
    service.retire(session)
    assert not session.output_dir.exists()
    assert session.is_cancelled()


def test_output_root_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(OUTPUT_ENV_VAR, str(tmp_path / "custom"))
    assert default_output_root() == tmp_path / "custom"
    monkeypatch.delenv(OUTPUT_ENV_VAR)
    assert default_output_root() == Path.home() / "artifactscope_runs"
