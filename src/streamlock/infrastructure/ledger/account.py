"""Ed25519 ledger accounts (Aptos single-key scheme)."""

from __future__ import annotations

import hashlib
import re

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from ...domain.errors import InvalidAddressError, ValidationError

_ED25519_SCHEME = b"\x00"
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{1,64}$")


def normalize_address(address: str) -> str:
    """Return the long ``0x``-prefixed 64-hex-digit form of an address.

    Raises:
        InvalidAddressError: if the input is not a hex account address.
    """
    if not isinstance(address, str) or not _ADDRESS_RE.match(address):
        raise InvalidAddressError(str(address))
    return "0x" + address[2:].lower().rjust(64, "0")


def is_valid_address(address: str) -> bool:
    try:
        normalize_address(address)
    except InvalidAddressError:
        return False
    return True


def address_from_public_key(public_key: bytes) -> str:
    """Authentication key of a single Ed25519 public key, used as its address."""
    return "0x" + hashlib.sha3_256(public_key + _ED25519_SCHEME).hexdigest()


def verify_signature(public_key: bytes, message: bytes, signature: bytes) -> bool:
    """Check an Ed25519 signature against a raw 32-byte public key."""
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message)
    except (InvalidSignature, ValueError):
        return False
    return True


class Ed25519Account:
    """A signing account. Satisfies ``LedgerSigner``."""

    def __init__(self, private_key: Ed25519PrivateKey):
        self._private_key = private_key
        self._public_key_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self._address = address_from_public_key(self._public_key_bytes)

    @classmethod
    def generate(cls) -> "Ed25519Account":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_private_key_hex(cls, private_key_hex: str) -> "Ed25519Account":
        raw = private_key_hex
        for prefix in ("ed25519-priv-", "0x"):
            if raw.startswith(prefix):
                raw = raw[len(prefix):]
        try:
            key_bytes = bytes.fromhex(raw)
        except ValueError as e:
            raise ValidationError(f"Private key must be hex: {e}") from e
        if len(key_bytes) != 32:
            raise ValidationError("Ed25519 private key must be 32 bytes")
        return cls(Ed25519PrivateKey.from_private_bytes(key_bytes))

    @property
    def address(self) -> str:
        return self._address

    @property
    def public_key_hex(self) -> str:
        return "0x" + self._public_key_bytes.hex()

    @property
    def private_key_hex(self) -> str:
        raw = self._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return "0x" + raw.hex()

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        return verify_signature(self._public_key_bytes, message, signature)
