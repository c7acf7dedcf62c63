"""Wire message model and its binary encoding."""

import logging
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Union

from .types import (
    DecodeError,
    HEADER_SIZE,
    MAX_SENDER_ID_SIZE,
    MAX_SEQUENCE,
    MAX_TIMESTAMP,
    MIN_MESSAGE_SIZE,
    NONCE_SIZE,
    PAYLOAD_ENCRYPTED,
    PAYLOAD_LENGTH_SIZE,
    PAYLOAD_PLAIN,
    PROTOCOL_VERSION,
    TAG_SIZE,
)

logger = logging.getLogger(__name__)

# version, kind, mode, timestamp, sequence, sender id length
_HEADER = struct.Struct(">BBBQIH")
_PAYLOAD_LENGTH = struct.Struct(">I")


class MessageKind(IntEnum):
    """Message types for peer-to-peer communication."""
    HANDSHAKE = 0x01
    HANDSHAKE_ACK = 0x02
    PING = 0x03
    PONG = 0x04
    TEXT = 0x05
    CLOSE = 0x06
    UNKNOWN = 0xFF
    """Reserved: any tag this version does not understand."""

    @classmethod
    def from_tag(cls, tag: int) -> "MessageKind":
        """Map a wire tag to a kind, falling back to UNKNOWN."""
        try:
            return cls(tag)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_control(self) -> bool:
        """Control messages never carry a payload."""
        return self in _CONTROL_KINDS

    @property
    def is_liveness(self) -> bool:
        """Messages that prove the peer is reachable."""
        return self in _LIVENESS_KINDS


_CONTROL_KINDS = frozenset({
    MessageKind.HANDSHAKE,
    MessageKind.HANDSHAKE_ACK,
    MessageKind.PING,
    MessageKind.PONG,
    MessageKind.CLOSE,
})

_LIVENESS_KINDS = frozenset({
    MessageKind.HANDSHAKE_ACK,
    MessageKind.PING,
    MessageKind.PONG,
})


@dataclass(frozen=True)
class PlainPayload:
    """Payload carried as-is (UTF-8 text, or empty for control messages)."""
    data: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "data", bytes(self.data))

    @property
    def encrypted(self) -> bool:
        return False

    def to_bytes(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class EncryptedPayload:
    """AEAD-protected payload: public nonce plus ciphertext with tag."""
    nonce: bytes  # 12 bytes
    ciphertext: bytes  # message + 16-byte tag

    def __post_init__(self) -> None:
        object.__setattr__(self, "nonce", bytes(self.nonce))
        object.__setattr__(self, "ciphertext", bytes(self.ciphertext))
        if len(self.nonce) != NONCE_SIZE:
            raise ValueError(f"Nonce must be {NONCE_SIZE} bytes, got {len(self.nonce)}")
        if len(self.ciphertext) < TAG_SIZE:
            raise ValueError(f"Ciphertext must hold at least a {TAG_SIZE}-byte tag")

    @property
    def encrypted(self) -> bool:
        return True

    @classmethod
    def from_blob(cls, blob: bytes) -> "EncryptedPayload":
        """Split a nonce || ciphertext blob."""
        return cls(nonce=bytes(blob[:NONCE_SIZE]), ciphertext=bytes(blob[NONCE_SIZE:]))

    def to_bytes(self) -> bytes:
        return self.nonce + self.ciphertext


Payload = Union[PlainPayload, EncryptedPayload]


@dataclass(frozen=True)
class WireMessage:
    """A single peer-to-peer message. Immutable once built."""
    kind: MessageKind
    sender_id: str
    timestamp: int
    sequence_num: int
    payload: Payload = field(default_factory=PlainPayload)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, MessageKind):
            raise ValueError(f"Unknown message kind: {self.kind!r}")
        if not self.sender_id:
            raise ValueError("Sender id must not be empty")
        if len(self.sender_id.encode("utf-8")) > MAX_SENDER_ID_SIZE:
            raise ValueError(f"Sender id exceeds {MAX_SENDER_ID_SIZE} bytes")
        for name in ("timestamp", "sequence_num"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
        if not 0 <= self.timestamp <= MAX_TIMESTAMP:
            raise ValueError(f"Timestamp out of range: {self.timestamp}")
        if not 0 <= self.sequence_num <= MAX_SEQUENCE:
            raise ValueError(f"Sequence number out of range: {self.sequence_num}")
        if self.kind.is_control and (self.payload.encrypted or self.payload.to_bytes()):
            raise ValueError(f"{self.kind.name} messages carry no payload")

    @property
    def encrypted(self) -> bool:
        """Whether the payload is an AEAD blob."""
        return self.payload.encrypted


def encode_message(message: WireMessage) -> bytes:
    """
    Encode a message to bytes.

    Format (big-endian, 17-byte fixed header):
        [0]      version (0x01)
        [1]      kind tag
        [2]      payload mode (0x00 plain, 0x01 encrypted)
        [3-10]   timestamp (uint64 seconds)
        [11-14]  sequence number (uint32)
        [15-16]  sender id length N (uint16)
        [17..]   sender id (N bytes UTF-8)
        [..]     payload length L (uint32)
        [..]     payload (L bytes)

    Args:
        message: WireMessage to encode

    Returns:
        Encoded bytes
    """
    sender = message.sender_id.encode("utf-8")
    payload = message.payload.to_bytes()
    mode = PAYLOAD_ENCRYPTED if message.payload.encrypted else PAYLOAD_PLAIN

    return (
        _HEADER.pack(
            PROTOCOL_VERSION,
            int(message.kind),
            mode,
            message.timestamp,
            message.sequence_num,
            len(sender),
        )
        + sender
        + _PAYLOAD_LENGTH.pack(len(payload))
        + payload
    )


def decode_message(data: bytes) -> WireMessage:
    """
    Decode bytes received from a peer.

    Input is treated as hostile: every length is checked and every failure
    surfaces as DecodeError.

    Args:
        data: Encoded message bytes

    Returns:
        Decoded WireMessage

    Raises:
        DecodeError: If data is truncated or malformed
    """
    if len(data) < MIN_MESSAGE_SIZE:
        raise DecodeError(f"Data too short: {len(data)} bytes (minimum {MIN_MESSAGE_SIZE})")

    data = bytes(data)
    version, tag, mode, timestamp, sequence_num, sender_len = _HEADER.unpack_from(data, 0)

    if version != PROTOCOL_VERSION:
        raise DecodeError(f"Unknown version: {version}")

    if mode not in (PAYLOAD_PLAIN, PAYLOAD_ENCRYPTED):
        raise DecodeError(f"Unknown payload mode: {mode}")

    if sender_len == 0:
        raise DecodeError("Empty sender id")

    offset = HEADER_SIZE
    if len(data) < offset + sender_len + PAYLOAD_LENGTH_SIZE:
        raise DecodeError("Truncated sender id")

    try:
        sender_id = data[offset : offset + sender_len].decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Sender id is not valid UTF-8: {e}") from e
    offset += sender_len

    (payload_len,) = _PAYLOAD_LENGTH.unpack_from(data, offset)
    offset += PAYLOAD_LENGTH_SIZE

    remaining = len(data) - offset
    if remaining < payload_len:
        raise DecodeError(f"Truncated payload: expected {payload_len} bytes, got {remaining}")
    if remaining > payload_len:
        raise DecodeError(f"Trailing data: {remaining - payload_len} bytes after payload")

    raw_payload = data[offset:]
    kind = MessageKind.from_tag(tag)

    if mode == PAYLOAD_ENCRYPTED:
        if len(raw_payload) < NONCE_SIZE + TAG_SIZE:
            raise DecodeError(f"Encrypted payload too short: {len(raw_payload)} bytes")
        payload = EncryptedPayload.from_blob(raw_payload)
    else:
        payload = PlainPayload(raw_payload)

    try:
        return WireMessage(
            kind=kind,
            sender_id=sender_id,
            timestamp=timestamp,
            sequence_num=sequence_num,
            payload=payload,
        )
    except ValueError as e:
        raise DecodeError(f"Invalid message: {e}") from e


def is_wire_message(data: bytes) -> bool:
    """
    Check if data looks like an encoded wire message.

    Args:
        data: Bytes to check

    Returns:
        True if data appears to be a wire message
    """
    if len(data) < MIN_MESSAGE_SIZE:
        return False

    return data[0] == PROTOCOL_VERSION and data[2] in (PAYLOAD_PLAIN, PAYLOAD_ENCRYPTED)


def message_text(message: WireMessage) -> str:
    """
    Return the text of a plaintext TEXT message.

    Raises:
        DecodeError: If the message is not plain text or is not valid UTF-8
    """
    if message.kind != MessageKind.TEXT:
        raise DecodeError(f"Expected a TEXT message, got {message.kind.name}")
    if message.payload.encrypted:
        raise DecodeError("Payload is encrypted")
    try:
        return message.payload.to_bytes().decode("utf-8")
    except UnicodeDecodeError as e:
        logger.debug("Text message from %s has invalid UTF-8 payload", message.sender_id)
        raise DecodeError(f"Text payload is not valid UTF-8: {e}") from e
