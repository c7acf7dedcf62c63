"""Type definitions and protocol constants for peerlink."""


# Wire protocol constants
PROTOCOL_VERSION = 0x01
HEADER_SIZE = 17  # version + kind + mode + timestamp + sequence + sender length
PAYLOAD_LENGTH_SIZE = 4
MIN_MESSAGE_SIZE = HEADER_SIZE + 1 + PAYLOAD_LENGTH_SIZE  # one-byte sender id
MAX_SENDER_ID_SIZE = 0xFFFF
MAX_SEQUENCE = 0xFFFFFFFF
SEQUENCE_MODULUS = 1 << 32
MAX_TIMESTAMP = 0xFFFFFFFFFFFFFFFF

# Payload modes
PAYLOAD_PLAIN = 0x00
PAYLOAD_ENCRYPTED = 0x01

# AEAD constants (AES-256-GCM)
KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16

# Largest text body a single message may carry (fits a UDP datagram with headers)
MAX_TEXT_SIZE = 60000

# Key derivation constants
KEY_DOMAIN_SEPARATOR = b"peerlink-v1-domain"
NETWORK_DATA_SEPARATOR = b"network_data_encryption"

PURPOSE_ENCRYPTION = "encryption"
PURPOSE_SIGNING = "signing"
PURPOSE_IDENTITY = "identity"
PURPOSE_NETWORK = "network"


# Exception types
class PeerLinkError(Exception):
    """Base exception for peerlink errors."""
    pass


class DecodeError(PeerLinkError):
    """Malformed or truncated wire bytes."""
    pass


class EncryptError(PeerLinkError):
    """Encryption failed."""
    pass


class DecryptError(PeerLinkError):
    """Decryption failed (truncated blob, bad tag, wrong key or invalid content)."""
    pass


class InvalidSecretError(PeerLinkError):
    """Secret material is missing or unusable."""
    pass


class ConfigError(PeerLinkError):
    """Invalid configuration value."""
    pass
