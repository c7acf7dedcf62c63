"""
Builders for well-formed wire messages.

MessageFactory stamps every message with the sender id, the current time and
the next sequence number of the connection it is sent on. Text messages are
sealed with the AEAD codec when a key is given.
"""

import logging
from typing import Optional

from .clock import Clock
from .connection import PeerConnection
from .crypto import decrypt_text, encrypt
from .message import (
    EncryptedPayload,
    MessageKind,
    PlainPayload,
    WireMessage,
    message_text,
)
from .types import DecodeError, DecryptError, MAX_TEXT_SIZE

logger = logging.getLogger(__name__)


class MessageFactory:
    """Creates outgoing messages for one local peer."""

    def __init__(self, sender_id: str, clock: Optional[Clock] = None) -> None:
        if not sender_id:
            raise ValueError("Sender id must not be empty")
        self.sender_id = sender_id
        self._clock = clock

    def _build(self, kind: MessageKind, connection: PeerConnection, payload=None) -> WireMessage:
        clock = self._clock or connection.clock
        return WireMessage(
            kind=kind,
            sender_id=self.sender_id,
            timestamp=clock.now(),
            sequence_num=connection.next_sequence(),
            payload=payload if payload is not None else PlainPayload(),
        )

    def handshake(self, connection: PeerConnection) -> WireMessage:
        """Opening message of a handshake."""
        return self._build(MessageKind.HANDSHAKE, connection)

    def handshake_ack(self, connection: PeerConnection) -> WireMessage:
        """Answer to a handshake."""
        return self._build(MessageKind.HANDSHAKE_ACK, connection)

    def ping(self, connection: PeerConnection) -> WireMessage:
        return self._build(MessageKind.PING, connection)

    def pong(self, connection: PeerConnection) -> WireMessage:
        return self._build(MessageKind.PONG, connection)

    def close(self, connection: PeerConnection) -> WireMessage:
        return self._build(MessageKind.CLOSE, connection)

    def text(
        self,
        connection: PeerConnection,
        text: str,
        key: Optional[bytes] = None,
    ) -> WireMessage:
        """
        Build a text message, encrypted when a key is given.

        Args:
            connection: Connection the message will be sent on
            text: Message text
            key: Optional 32-byte encryption key from derive_key

        Returns:
            WireMessage of kind TEXT

        Raises:
            ValueError: If the text is not a string, not encodable or too large
            EncryptError: If the key is invalid
        """
        if not isinstance(text, str):
            raise ValueError(f"Text must be a string, got {type(text).__name__}")

        try:
            data = text.encode("utf-8")
        except UnicodeEncodeError as e:
            raise ValueError(f"Text is not valid UTF-8: {e}") from e

        if len(data) > MAX_TEXT_SIZE:
            raise ValueError(f"Message too large: {len(data)} bytes (max {MAX_TEXT_SIZE})")

        if key is None:
            payload = PlainPayload(data)
        else:
            payload = EncryptedPayload.from_blob(encrypt(key, data))

        return self._build(MessageKind.TEXT, connection, payload)


def open_text(message: WireMessage, key: Optional[bytes] = None) -> str:
    """
    Read the text of a received TEXT message.

    Args:
        message: A decoded message
        key: Key to use when the payload is encrypted

    Returns:
        The message text

    Raises:
        DecodeError: If the message is not TEXT or its plaintext is not UTF-8
        DecryptError: If the payload is encrypted and cannot be decrypted
    """
    if message.kind != MessageKind.TEXT:
        raise DecodeError(f"Expected a TEXT message, got {message.kind.name}")

    if not message.payload.encrypted:
        return message_text(message)

    if key is None:
        raise DecryptError("Payload is encrypted but no key was given")

    try:
        return decrypt_text(key, message.payload.to_bytes())
    except DecryptError:
        logger.debug(
            "Could not decrypt text %d from %s", message.sequence_num, message.sender_id
        )
        raise
