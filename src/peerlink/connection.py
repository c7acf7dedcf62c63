"""
Per-peer connection state.

A PeerConnection tracks one remote peer: where it is, how far the handshake
got, when it was last heard from and which sequence number to send next.
The transport loop feeds it events; it never performs I/O itself.
"""

import logging
import threading
from datetime import timedelta
from enum import Enum
from typing import Optional, Union

from .clock import Clock, SystemClock
from .config import HolePunchConfig
from .endpoint import Endpoint
from .message import MessageKind, WireMessage
from .replay import ReplayState, record_sequence, validate_sequence
from .types import MAX_SEQUENCE

logger = logging.getLogger(__name__)

Timeout = Union[int, float, timedelta]


class ConnectionStatus(Enum):
    """Lifecycle of a connection to a peer."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class ConnectionRole(Enum):
    """Which side started the handshake."""
    INITIATOR = "initiator"
    RESPONDER = "responder"


def _seconds(timeout: Timeout) -> float:
    if isinstance(timeout, timedelta):
        return timeout.total_seconds()
    return timeout


class PeerConnection:
    """
    Connection bookkeeping for a single remote peer.

    Transitions:
        DISCONNECTED -> CONNECTING   connect() or an incoming HANDSHAKE
        CONNECTING   -> CONNECTED    HANDSHAKE_ACK received, or mark_connected()
        CONNECTING   -> FAILED       check_timeout() or fail()
        CONNECTED    -> FAILED       fail()
        CONNECTED/FAILED -> DISCONNECTED   reset()
        CONNECTING/CONNECTED -> DISCONNECTED   an incoming CLOSE
        CONNECTED/FAILED -> CONNECTING   an incoming HANDSHAKE (peer restarted)

    Transitions that are not allowed from the current state are ignored and
    return False. All mutators hold a per-connection lock.
    """

    def __init__(
        self,
        peer_id: str,
        local_addr: Endpoint,
        remote_addr: Endpoint,
        clock: Optional[Clock] = None,
        config: Optional[HolePunchConfig] = None,
    ) -> None:
        self.peer_id = peer_id
        self.local_addr = local_addr
        self.remote_addr = remote_addr
        self._clock = clock or SystemClock()
        self._config = config or HolePunchConfig()
        self._lock = threading.Lock()

        self._state = ConnectionStatus.DISCONNECTED
        self._role: Optional[ConnectionRole] = None
        self._sequence_num = 0
        self._last_contact = self._clock.now()
        self._connecting_since: Optional[int] = None
        self._failure_reason: Optional[str] = None
        self._consecutive_failures = 0
        self._replay = ReplayState(window=self._config.replay_window)

    def __repr__(self) -> str:
        return (
            f"PeerConnection(peer_id={self.peer_id!r}, remote_addr={self.remote_addr}, "
            f"state={self._state.name})"
        )

    @property
    def state(self) -> ConnectionStatus:
        return self._state

    @property
    def role(self) -> Optional[ConnectionRole]:
        return self._role

    @property
    def sequence_num(self) -> int:
        """The last sequence number issued for this connection."""
        return self._sequence_num

    @property
    def last_contact(self) -> int:
        return self._last_contact

    @property
    def failure_reason(self) -> Optional[str]:
        return self._failure_reason

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionStatus.CONNECTED

    # ------------------------------------------------------------------
    # Sequencing and liveness
    # ------------------------------------------------------------------

    def next_sequence(self) -> int:
        """Returns the next sequence number, wrapping from 2^32 - 1 to 0."""
        with self._lock:
            self._sequence_num = (self._sequence_num + 1) & MAX_SEQUENCE
            return self._sequence_num

    def needs_keepalive(self, timeout: Timeout) -> bool:
        """Whether more than `timeout` has passed since the peer was last heard."""
        return self._clock.now() - self._last_contact > _seconds(timeout)

    def record_contact(self, timestamp: Optional[int] = None) -> None:
        """Record a liveness signal. Older timestamps never move last_contact back."""
        if timestamp is None:
            timestamp = self._clock.now()
        with self._lock:
            if timestamp > self._last_contact:
                self._last_contact = timestamp

    def accept_sequence(self, sequence_num: int) -> bool:
        """
        Check an incoming sequence number for duplicates and remember it.

        Returns:
            False if the number was already seen or is too old to judge
        """
        with self._lock:
            if not validate_sequence(self._replay, sequence_num):
                return False
            self._replay = record_sequence(self._replay, sequence_num)
            return True

    def record_failure(self) -> bool:
        """
        Count a message from this peer that could not be decoded or decrypted.

        Only counted while a session is being set up or is up.

        Returns:
            True if this failure pushed the connection into FAILED
        """
        with self._lock:
            if self._state not in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED):
                return False
            self._consecutive_failures += 1
            if self._consecutive_failures < self._config.max_consecutive_failures:
                return False
            return self._transition(
                ConnectionStatus.FAILED,
                reason=f"{self._consecutive_failures} consecutive bad messages",
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> bool:
        """Start a locally initiated handshake."""
        with self._lock:
            if self._state != ConnectionStatus.DISCONNECTED:
                return False
            self._role = ConnectionRole.INITIATOR
            return self._transition(ConnectionStatus.CONNECTING)

    def accept_handshake(self) -> bool:
        """Respond to a handshake from a peer we were not talking to."""
        with self._lock:
            if self._state != ConnectionStatus.DISCONNECTED:
                return False
            self._role = ConnectionRole.RESPONDER
            return self._transition(ConnectionStatus.CONNECTING)

    def mark_connected(self) -> bool:
        """Complete the handshake (ack received, or ack sent as responder)."""
        with self._lock:
            if self._state != ConnectionStatus.CONNECTING:
                return False
            return self._transition(ConnectionStatus.CONNECTED)

    def fail(self, reason: str = "") -> bool:
        """Mark the connection failed after an externally detected error."""
        with self._lock:
            if self._state not in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED):
                return False
            return self._transition(ConnectionStatus.FAILED, reason=reason or None)

    def check_timeout(self, connection_timeout: Optional[Timeout] = None) -> bool:
        """
        Fail a handshake that has been pending for too long.

        Returns:
            True if the connection was moved to FAILED
        """
        if connection_timeout is None:
            connection_timeout = self._config.connection_timeout
        with self._lock:
            if self._state != ConnectionStatus.CONNECTING or self._connecting_since is None:
                return False
            if self._clock.now() - self._connecting_since <= _seconds(connection_timeout):
                return False
            return self._transition(ConnectionStatus.FAILED, reason="connection timed out")

    def reset(self) -> bool:
        """Return a connected or failed connection to DISCONNECTED."""
        with self._lock:
            if self._state not in (ConnectionStatus.CONNECTED, ConnectionStatus.FAILED):
                return False
            return self._transition(ConnectionStatus.DISCONNECTED)

    def handle_message(self, message: WireMessage) -> bool:
        """
        Apply a decoded message from the transport.

        Liveness kinds (HANDSHAKE_ACK, PING, PONG) refresh last_contact;
        HANDSHAKE, HANDSHAKE_ACK and CLOSE drive the state machine.
        A HANDSHAKE on a CONNECTED or FAILED connection means the peer
        restarted: the old session is dropped and a new one begins.
        Duplicates and messages from another sender are ignored.

        Returns:
            False if the message was ignored
        """
        if message.sender_id != self.peer_id:
            logger.debug(
                "Ignoring message from %s on connection to %s", message.sender_id, self.peer_id
            )
            return False

        if message.kind == MessageKind.HANDSHAKE:
            with self._lock:
                if self._state != ConnectionStatus.CONNECTING:
                    # a new session starts its own numbering
                    self._replay = ReplayState(window=self._config.replay_window)
                if self._state in (ConnectionStatus.CONNECTED, ConnectionStatus.FAILED):
                    # the peer restarted; drop the old session and answer as responder
                    self._transition(ConnectionStatus.DISCONNECTED)

        if not self.accept_sequence(message.sequence_num):
            logger.debug(
                "Dropping duplicate sequence %d from %s", message.sequence_num, self.peer_id
            )
            return False

        with self._lock:
            self._consecutive_failures = 0

        if message.kind.is_liveness:
            # receive time on our clock; the sender's clock may be skewed
            self.record_contact()

        if message.kind == MessageKind.HANDSHAKE:
            self.accept_handshake()
        elif message.kind == MessageKind.HANDSHAKE_ACK:
            self.mark_connected()
        elif message.kind == MessageKind.CLOSE:
            with self._lock:
                if self._state in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED):
                    self._transition(ConnectionStatus.DISCONNECTED)

        return True

    def _transition(self, new_state: ConnectionStatus, reason: Optional[str] = None) -> bool:
        """Apply a state change. Caller must hold the lock."""
        old_state = self._state
        self._state = new_state

        if new_state == ConnectionStatus.CONNECTING:
            self._connecting_since = self._clock.now()
            self._failure_reason = None
            self._consecutive_failures = 0
        elif new_state == ConnectionStatus.CONNECTED:
            self._connecting_since = None
            self._consecutive_failures = 0
        elif new_state == ConnectionStatus.FAILED:
            self._connecting_since = None
            self._failure_reason = reason
        elif new_state == ConnectionStatus.DISCONNECTED:
            self._role = None
            self._connecting_since = None
            self._consecutive_failures = 0

        if new_state == ConnectionStatus.FAILED:
            logger.warning(
                "Connection to %s failed (%s -> %s): %s",
                self.peer_id, old_state.value, new_state.value, reason or "no reason given",
            )
        else:
            logger.debug(
                "Connection to %s: %s -> %s", self.peer_id, old_state.value, new_state.value
            )
        return True
