"""Key derivation and key handling for peerlink."""

import base64
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives import hashes

from .types import (
    InvalidSecretError,
    KEY_DOMAIN_SEPARATOR,
    KEY_SIZE,
    NETWORK_DATA_SEPARATOR,
    PURPOSE_ENCRYPTION,
    PURPOSE_IDENTITY,
    PURPOSE_NETWORK,
    PURPOSE_SIGNING,
)


class SecretProvider(ABC):
    """
    Turns a remembered secret phrase into raw seed bytes.

    Phrase generation, validation and expansion live outside this package;
    implementations raise InvalidSecretError for phrases they cannot use.
    """

    @abstractmethod
    def seed_from_phrase(self, phrase: str, passphrase: Optional[str] = None) -> bytes:
        """Expand a phrase (plus optional passphrase) into seed bytes."""
        pass


@dataclass(frozen=True)
class KeyMaterial:
    """Purpose-scoped 256-bit keys derived from one shared seed."""
    encryption: bytes
    signing: bytes
    identity: bytes
    network: bytes

    def __repr__(self) -> str:
        return f"KeyMaterial(encryption={key_fingerprint(self.encryption)!r}, ...)"


def _sha256(*parts: bytes) -> bytes:
    digest = hashes.Hash(hashes.SHA256())
    for part in parts:
        digest.update(part)
    return digest.finalize()


def derive_key(seed: bytes, purpose: str) -> bytes:
    """
    Derive a 32-byte key for a purpose from a shared seed.

    key = SHA-256(seed || purpose || domain separator)

    An empty seed is accepted; the key then depends only on the purpose,
    so callers must make sure the seed carries real entropy.

    Args:
        seed: Raw seed bytes from secret provisioning
        purpose: Purpose label, e.g. "encryption" or "signing"

    Returns:
        32-byte key

    Raises:
        InvalidSecretError: If the seed is not bytes or the purpose is not a string
    """
    if not isinstance(seed, (bytes, bytearray, memoryview)):
        raise InvalidSecretError(f"Seed must be bytes, got {type(seed).__name__}")
    if not isinstance(purpose, str):
        raise InvalidSecretError(f"Purpose must be a string, got {type(purpose).__name__}")

    return _sha256(bytes(seed), purpose.encode("utf-8"), KEY_DOMAIN_SEPARATOR)


def derive_key_material(seed: bytes) -> KeyMaterial:
    """Derive the full set of session keys from a seed."""
    return KeyMaterial(
        encryption=derive_key(seed, PURPOSE_ENCRYPTION),
        signing=derive_key(seed, PURPOSE_SIGNING),
        identity=derive_key(seed, PURPOSE_IDENTITY),
        network=derive_key(seed, PURPOSE_NETWORK),
    )


def derive_network_key(phrase: str) -> bytes:
    """
    Derive the key used to protect shared network data directly from a phrase.

    key = SHA-256(phrase || "network_data_encryption")
    """
    if not isinstance(phrase, str):
        raise InvalidSecretError(f"Phrase must be a string, got {type(phrase).__name__}")
    return _sha256(phrase.encode("utf-8"), NETWORK_DATA_SEPARATOR)


def key_fingerprint(key: bytes) -> str:
    """
    Generate a human-readable fingerprint for a key.

    The fingerprint is a truncated SHA-256 hash, so it is safe to show.

    Returns:
        A fingerprint string like "A7B3C9D1 E5F28A4B"
    """
    hash_bytes = hashlib.sha256(key).digest()
    hex_bytes = [f"{b:02X}" for b in hash_bytes[:8]]
    groups = [hex_bytes[i] + hex_bytes[i + 1] for i in range(0, 8, 2)]
    return " ".join(groups)


def export_key(key: bytes) -> str:
    """Encode a key as unpadded base64url text."""
    if len(key) != KEY_SIZE:
        raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
    return base64.urlsafe_b64encode(key).rstrip(b"=").decode("ascii")


def import_key(text: str) -> bytes:
    """
    Decode a key exported with export_key.

    Raises:
        InvalidSecretError: If the text is not a valid 32-byte key
    """
    padding = -len(text) % 4
    try:
        key = base64.urlsafe_b64decode(text + "=" * padding)
    except (ValueError, TypeError) as e:
        raise InvalidSecretError(f"Invalid key encoding: {e}") from e

    if len(key) != KEY_SIZE:
        raise InvalidSecretError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
    return key
