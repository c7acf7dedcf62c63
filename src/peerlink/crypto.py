"""Authenticated encryption of message payloads (AES-256-GCM)."""

import logging
import os
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .keys import derive_network_key
from .types import (
    DecryptError,
    EncryptError,
    KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
)

logger = logging.getLogger(__name__)


def _cipher(key: bytes, error: type) -> AESGCM:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
        size = len(key) if isinstance(key, (bytes, bytearray)) else type(key).__name__
        raise error(f"Key must be {KEY_SIZE} bytes, got {size}")
    return AESGCM(bytes(key))


def encrypt(key: bytes, plaintext: bytes) -> bytes:
    """
    Encrypt a payload under a derived key.

    A fresh 96-bit nonce is drawn from os.urandom for every call and
    prepended to the output.

    Args:
        key: 32-byte key from derive_key
        plaintext: Bytes to protect

    Returns:
        nonce (12 bytes) || ciphertext || tag (16 bytes)

    Raises:
        EncryptError: If the key is invalid
    """
    cipher = _cipher(key, EncryptError)
    nonce = os.urandom(NONCE_SIZE)
    return nonce + cipher.encrypt(nonce, bytes(plaintext), None)


def decrypt(key: bytes, blob: bytes) -> bytes:
    """
    Decrypt a blob produced by encrypt.

    Args:
        key: 32-byte key from derive_key
        blob: nonce || ciphertext || tag

    Returns:
        The plaintext bytes

    Raises:
        DecryptError: If the blob is truncated, was tampered with, or the key is wrong
    """
    cipher = _cipher(key, DecryptError)
    nonce, ciphertext = split_blob(blob)

    try:
        return cipher.decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        logger.debug("Rejected ciphertext blob of %d bytes: authentication failed", len(blob))
        raise DecryptError("Authentication failed: wrong key or tampered data") from e


def split_blob(blob: bytes) -> Tuple[bytes, bytes]:
    """
    Split a ciphertext blob into (nonce, ciphertext-with-tag).

    Raises:
        DecryptError: If the blob cannot hold a nonce and a tag
    """
    if len(blob) < NONCE_SIZE + TAG_SIZE:
        raise DecryptError(
            f"Ciphertext too short: {len(blob)} bytes (minimum {NONCE_SIZE + TAG_SIZE})"
        )
    blob = bytes(blob)
    return blob[:NONCE_SIZE], blob[NONCE_SIZE:]


def encrypt_text(key: bytes, text: str) -> bytes:
    """Encrypt a text message as UTF-8."""
    try:
        data = text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise EncryptError(f"Text is not encodable as UTF-8: {e}") from e
    return encrypt(key, data)


def decrypt_text(key: bytes, blob: bytes) -> str:
    """
    Decrypt a blob that is expected to hold UTF-8 text.

    Raises:
        DecryptError: If decryption fails or the plaintext is not valid UTF-8
    """
    plaintext = decrypt(key, blob)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptError(f"Decrypted payload is not valid UTF-8: {e}") from e


def encrypt_network_data(data: str, phrase: str) -> bytes:
    """
    Encrypt text for sharing with peers that know the same phrase.

    The key comes from derive_network_key(phrase).
    """
    return encrypt_text(derive_network_key(phrase), data)


def decrypt_network_data(blob: bytes, phrase: str) -> str:
    """Decrypt data produced by encrypt_network_data."""
    return decrypt_text(derive_network_key(phrase), blob)
