"""Segment cipher: AES-128-CBC with PKCS7 padding.

Matches the HLS ``METHOD=AES-128`` scheme so packaged segments play in any
HLS client once the key is released.
"""

from __future__ import annotations

from typing import Sequence

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..domain.constants import AES_IV_LENGTH, AES_KEY_LENGTH
from ..domain.errors import DecryptionError, ValidationError


def _check_key_iv(key: bytes, iv: bytes) -> None:
    if len(key) != AES_KEY_LENGTH:
        raise ValidationError(
            f"AES key must be {AES_KEY_LENGTH} bytes, got {len(key)}"
        )
    if len(iv) != AES_IV_LENGTH:
        raise ValidationError(f"AES IV must be {AES_IV_LENGTH} bytes, got {len(iv)}")


def encrypt_segment(plaintext: bytes, key: bytes, iv: bytes) -> bytes:
    """Encrypt one segment.

    Args:
        plaintext: Raw segment bytes (any length, including empty).
        key: 16-byte AES key.
        iv: 16-byte CBC IV.

    Returns:
        Ciphertext, a multiple of 16 bytes.
    """
    _check_key_iv(key, iv)

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def decrypt_segment(ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
    """Decrypt one segment.

    Raises:
        ValidationError: key or IV has the wrong length.
        DecryptionError: ciphertext is not block aligned or padding is invalid.
    """
    _check_key_iv(key, iv)
    if not ciphertext or len(ciphertext) % (algorithms.AES.block_size // 8):
        raise DecryptionError("Ciphertext length is not a multiple of the block size")

    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise DecryptionError(f"Invalid padding: {e}") from e


def encrypt_segments(
    segments: Sequence[bytes], keys: Sequence[bytes], ivs: Sequence[bytes]
) -> list[bytes]:
    if not (len(segments) == len(keys) == len(ivs)):
        raise ValidationError("segments, keys and ivs must have the same length")
    return [encrypt_segment(s, k, iv) for s, k, iv in zip(segments, keys, ivs)]
