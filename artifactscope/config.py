from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

MIB = 1024 * 1024

OUTPUT_ENV_VAR = "ARTIFACTSCOPE_OUTPUT"


@dataclass(frozen=True)
class EngineLimits:
    chunk_size: int = 16 * MIB
    carve_chunk_size: int = 32 * MIB
    sync_threshold: int = 512 * MIB
    max_walk_depth: int = 10
    carve_cap_whole: int = 500
    carve_cap_streaming: int = 200
    min_carve_size: int = 100
    footerless_window: int = 1 * MIB
    search_hit_cap: int = 500
    search_context_bytes: int = 16
    search_context_chars: int = 200
    string_cap: int = 5000
    string_max_chars: int = 500
    entropy_sample: int = 4096
    entropy_threshold: float = 7.0
    decrypt_window: int = 1 * MIB
    heuristic_window: int = 1 * MIB
    date_scan_window: int = 512 * 1024
    date_binary_cap: int = 10
    date_text_cap: int = 5
    date_files_per_type: int = 20
    date_artifact_cap: int = 50
    hex_dump_bytes: int = 256


DEFAULT_LIMITS = EngineLimits()


def default_output_root() -> Path:
    override = os.environ.get(OUTPUT_ENV_VAR)
    if override:
        return Path(override)
    return Path.home() / "artifactscope_runs"
