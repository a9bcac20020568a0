from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Sequence

from artifactscope.core.models import CarvedArtifact
from artifactscope.infra.filesystem import compute_blake3_hash, write_json
from artifactscope.infra.logging_utils import LOGGER, log_extra


def generate_carve_manifest(
    session_id: str, source: str, artifacts: Sequence[CarvedArtifact], output_path: Path
) -> Path:
    payload: Dict[str, Any] = {
        "session_id": session_id,
        "source": source,
        "artifacts": [
            {
                "signature": artifact.signature,
                "offset": artifact.offset,
                "size": artifact.size,
                "path": artifact.output_path,
                "sha256": artifact.sha256,
                "blake3": compute_blake3_hash(artifact.output_path),
            }
            for artifact in artifacts
        ],
    }
    write_json(output_path, payload)
    LOGGER.info("Carve manifest generated", extra=log_extra(output=str(output_path), artifacts=len(artifacts)))
    return output_path
