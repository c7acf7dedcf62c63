"""
peerlink - Secure messaging core for peer-to-peer chat

Wire messages, per-peer connection state and AES-256-GCM payload protection
with keys derived from a shared secret.
"""

from .keys import (
    SecretProvider,
    KeyMaterial,
    derive_key,
    derive_key_material,
    derive_network_key,
    key_fingerprint,
    export_key,
    import_key,
)
from .crypto import (
    encrypt,
    decrypt,
    encrypt_text,
    decrypt_text,
    encrypt_network_data,
    decrypt_network_data,
)
from .message import (
    MessageKind,
    PlainPayload,
    EncryptedPayload,
    WireMessage,
    encode_message,
    decode_message,
    is_wire_message,
    message_text,
)
from .clock import Clock, SystemClock, ManualClock
from .endpoint import Endpoint
from .config import HolePunchConfig
from .connection import ConnectionStatus, ConnectionRole, PeerConnection
from .peers import PeerTable
from .factory import MessageFactory, open_text
from .types import (
    PeerLinkError,
    DecodeError,
    EncryptError,
    DecryptError,
    InvalidSecretError,
    ConfigError,
    PROTOCOL_VERSION,
    NONCE_SIZE,
    KEY_SIZE,
    MAX_TEXT_SIZE,
)

__version__ = "0.1.0"

__all__ = [
    # Keys
    "SecretProvider",
    "KeyMaterial",
    "derive_key",
    "derive_key_material",
    "derive_network_key",
    "key_fingerprint",
    "export_key",
    "import_key",
    # Crypto
    "encrypt",
    "decrypt",
    "encrypt_text",
    "decrypt_text",
    "encrypt_network_data",
    "decrypt_network_data",
    # Messages
    "MessageKind",
    "PlainPayload",
    "EncryptedPayload",
    "WireMessage",
    "encode_message",
    "decode_message",
    "is_wire_message",
    "message_text",
    # Connections
    "Clock",
    "SystemClock",
    "ManualClock",
    "Endpoint",
    "HolePunchConfig",
    "ConnectionStatus",
    "ConnectionRole",
    "PeerConnection",
    "PeerTable",
    # Factory
    "MessageFactory",
    "open_text",
    # Errors
    "PeerLinkError",
    "DecodeError",
    "EncryptError",
    "DecryptError",
    "InvalidSecretError",
    "ConfigError",
    # Constants
    "PROTOCOL_VERSION",
    "NONCE_SIZE",
    "KEY_SIZE",
    "MAX_TEXT_SIZE",
]
