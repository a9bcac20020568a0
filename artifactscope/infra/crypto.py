from __future__ import annotations

from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from artifactscope.core.errors import CipherError

AES_KEY_LENGTH = 16
AES_BLOCK = 16
TDES_KEY_LENGTH = 24
TDES_BLOCK = 8


def xor_stream(data: bytes, key: bytes) -> bytes:
    if not key:
        raise CipherError("XOR key is empty")
    if not data:
        return b""
    size = len(data)
    keystream = (key * (size // len(key) + 1))[:size]
    mixed = int.from_bytes(data, "big") ^ int.from_bytes(keystream, "big")
    return mixed.to_bytes(size, "big")


def _truncate_to_block(data: bytes, block: int) -> bytes:
    usable = (len(data) // block) * block
    if usable == 0:
        raise CipherError(f"input shorter than one {block}-byte block")
    return data[:usable]


def aes128_cbc_decrypt(data: bytes, key: bytes) -> bytes:
    """AES-128-CBC, zero IV, no padding; input is cut down to whole blocks."""
    key_slice = key[:AES_KEY_LENGTH]
    if len(key_slice) < AES_KEY_LENGTH:
        raise CipherError(f"AES-128 needs {AES_KEY_LENGTH} key bytes, got {len(key_slice)}")
    body = _truncate_to_block(data, AES_BLOCK)
    decryptor = Cipher(
        algorithms.AES(key_slice),
        modes.CBC(bytes(AES_BLOCK)),
        backend=default_backend(),
    ).decryptor()
    return decryptor.update(body) + decryptor.finalize()


def tdes_cbc_decrypt(data: bytes, key: bytes) -> bytes:
    """DES-EDE3-CBC, zero IV, no padding; input is cut down to whole blocks."""
    key_slice = key[:TDES_KEY_LENGTH]
    if len(key_slice) < TDES_KEY_LENGTH:
        raise CipherError(f"3DES needs {TDES_KEY_LENGTH} key bytes, got {len(key_slice)}")
    body = _truncate_to_block(data, TDES_BLOCK)
    try:
        decryptor = Cipher(
            TripleDES(key_slice),
            modes.CBC(bytes(TDES_BLOCK)),
            backend=default_backend(),
        ).decryptor()
        return decryptor.update(body) + decryptor.finalize()
    except ValueError as exc:
        raise CipherError(str(exc)) from exc
