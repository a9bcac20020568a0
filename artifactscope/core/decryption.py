"""Candidate-key decryption of ``.rem`` records.

Each key file is tried with every cipher. The winner is the plaintext with
the most printable strings, which is a ranking heuristic and not proof that
the key was right.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from artifactscope.config import DEFAULT_LIMITS, EngineLimits
from artifactscope.core.bb_artifacts import REMF_MAGIC, has_remf_header
from artifactscope.core.errors import CipherError
from artifactscope.core.heuristics import count_media_signatures, search_for_contacts, search_for_messages
from artifactscope.core.models import BBAnalysisResult, DecryptionAttempt, KeyFileRecord, RemFileRecord
from artifactscope.core.scanner import Checkpoint
from artifactscope.core.strings import count_strings
from artifactscope.infra.crypto import aes128_cbc_decrypt, tdes_cbc_decrypt, xor_stream
from artifactscope.infra.filesystem import read_file
from artifactscope.infra.logging_utils import LOGGER, log_extra

REMF_SUFFIX = " (REMF header stripped)"

CIPHERS: Tuple[Tuple[str, Callable[[bytes, bytes], bytes]], ...] = (
    ("XOR", xor_stream),
    ("AES-128-CBC", aes128_cbc_decrypt),
    ("3DES-CBC", tdes_cbc_decrypt),
)


def _score(plaintext: bytes, method: str, rem_path: str, limits: EngineLimits) -> DecryptionAttempt:
    window = limits.heuristic_window
    return DecryptionAttempt(
        method=method,
        success=True,
        extracted_strings=count_strings(plaintext),
        messages=search_for_messages(plaintext, window),
        contacts=search_for_contacts(plaintext, window),
        media=count_media_signatures(plaintext),
        rem_path=rem_path,
    )


def decrypt_rem(
    rem_path: str,
    key_files: Sequence[KeyFileRecord],
    root: Path,
    limits: EngineLimits = DEFAULT_LIMITS,
) -> DecryptionAttempt:
    """Try every (key, cipher) pair against ``rem_path``; key paths are relative to ``root``."""
    label = os.path.relpath(rem_path, str(root))
    try:
        content = read_file(rem_path)
    except OSError as exc:
        LOGGER.debug("Unreadable REM file", extra=log_extra(path=rem_path, error=str(exc)))
        return DecryptionAttempt(method="error", success=False, rem_path=label)

    stripped = has_remf_header(content)
    working = content[len(REMF_MAGIC) if stripped else 0:][:limits.decrypt_window]
    suffix = REMF_SUFFIX if stripped else ""
    best = DecryptionAttempt(method="none", success=False, rem_path=label)

    for key_file in key_files:
        try:
            key = read_file(str(root / key_file.path))
        except OSError as exc:
            LOGGER.debug("Unreadable key file", extra=log_extra(path=key_file.path, error=str(exc)))
            continue
        for name, transform in CIPHERS:
            try:
                plaintext = transform(working, key)
            except CipherError as exc:
                LOGGER.debug(
                    "Cipher attempt skipped",
                    extra=log_extra(cipher=name, key=key_file.filename, error=str(exc)),
                )
                continue
            score = count_strings(plaintext)
            if score > best.extracted_strings:
                best = _score(plaintext, f"{name} with {key_file.filename}{suffix}", label, limits)

    LOGGER.info(
        "Decryption finished",
        extra=log_extra(rem=label, method=best.method, strings=best.extracted_strings),
    )
    return best


def decrypt_all(
    result: BBAnalysisResult,
    root: Path,
    limits: EngineLimits = DEFAULT_LIMITS,
    checkpoint: Optional[Checkpoint] = None,
    progress: Optional[Callable[[float, str], None]] = None,
    attempts: Optional[Dict[str, DecryptionAttempt]] = None,
) -> Dict[str, DecryptionAttempt]:
    """Run every decryptable REM of an analysis, keyed by its relative path.

    Attempts are written into ``attempts`` as they finish, so a caller that
    passes its own dict keeps them when a cancellation unwinds the loop.
    """
    attempts = {} if attempts is None else attempts
    targets: List[RemFileRecord] = [rem for rem in result.rem_files if rem.decryptable]
    for i, rem in enumerate(targets):
        if checkpoint is not None:
            checkpoint()
        attempts[rem.path] = decrypt_rem(str(root / rem.path), result.key_files, root, limits)
        if progress is not None:
            progress(((i + 1) / len(targets)) * 100, f"Decrypted {rem.filename}")
    return attempts
