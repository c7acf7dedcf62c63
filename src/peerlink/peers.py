"""The set of peers a node currently knows about."""

import threading
from typing import Optional

from .connection import ConnectionStatus, PeerConnection, Timeout


class PeerTable:
    """Thread-safe mapping of peer id to PeerConnection."""

    def __init__(self) -> None:
        self._peers: dict[str, PeerConnection] = {}
        self._lock = threading.Lock()

    def add(self, connection: PeerConnection) -> PeerConnection:
        """Add a connection candidate, keeping an existing one for the same peer."""
        with self._lock:
            return self._peers.setdefault(connection.peer_id, connection)

    def get(self, peer_id: str) -> Optional[PeerConnection]:
        with self._lock:
            return self._peers.get(peer_id)

    def remove(self, peer_id: str) -> Optional[PeerConnection]:
        """Forget a peer."""
        with self._lock:
            return self._peers.pop(peer_id, None)

    def all(self) -> list[PeerConnection]:
        with self._lock:
            return list(self._peers.values())

    def with_status(self, status: ConnectionStatus) -> list[PeerConnection]:
        """Returns connections currently in the given state."""
        return [c for c in self.all() if c.state == status]

    def needing_keepalive(self, timeout: Timeout) -> list[PeerConnection]:
        """Returns connected peers that have been silent for longer than timeout."""
        return [
            c for c in self.with_status(ConnectionStatus.CONNECTED)
            if c.needs_keepalive(timeout)
        ]

    def expire_handshakes(
        self, connection_timeout: Optional[Timeout] = None
    ) -> list[PeerConnection]:
        """Fail every pending handshake that timed out; returns the ones that failed."""
        return [c for c in self.all() if c.check_timeout(connection_timeout)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._peers)

    def __contains__(self, peer_id: str) -> bool:
        with self._lock:
            return peer_id in self._peers
