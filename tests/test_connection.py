"""Tests for per-peer connection state."""

import threading
from datetime import timedelta

import pytest
from peerlink.clock import ManualClock
from peerlink.config import HolePunchConfig
from peerlink.connection import ConnectionRole, ConnectionStatus, PeerConnection
from peerlink.endpoint import Endpoint
from peerlink.message import MessageKind, WireMessage
from peerlink.peers import PeerTable
from .test_vectors import ALICE_ID, BOB_ID

START = 1_700_000_000


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def conn(clock):
    """Alice's view of her connection to Bob."""
    return PeerConnection(
        peer_id=BOB_ID,
        local_addr=Endpoint.of("192.168.1.10", 41000),
        remote_addr=Endpoint.of("2001:db8::7", 41001),
        clock=clock,
    )


def _from_bob(kind: MessageKind, sequence_num: int, timestamp: int = START) -> WireMessage:
    return WireMessage(kind=kind, sender_id=BOB_ID, timestamp=timestamp, sequence_num=sequence_num)


class TestSequence:
    """Test sequence number issuance."""

    def test_starts_at_one(self, conn) -> None:
        assert conn.sequence_num == 0
        assert conn.next_sequence() == 1
        assert conn.next_sequence() == 2
        assert conn.sequence_num == 2

    def test_wraparound(self, conn) -> None:
        conn._sequence_num = 2**32 - 1
        assert conn.next_sequence() == 0
        assert conn.next_sequence() == 1

    def test_concurrent_issuance_has_no_duplicates(self, conn) -> None:
        issued = []
        lock = threading.Lock()

        def worker() -> None:
            local = [conn.next_sequence() for _ in range(500)]
            with lock:
                issued.extend(local)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(issued) == 4000
        assert len(set(issued)) == 4000
        assert conn.sequence_num == 4000


class TestKeepalive:
    """Test liveness tracking."""

    def test_boundary(self, conn, clock) -> None:
        conn.record_contact(START)

        clock.set(START + 29)
        assert not conn.needs_keepalive(30)

        clock.set(START + 30)
        assert not conn.needs_keepalive(30)

        clock.set(START + 31)
        assert conn.needs_keepalive(30)

    def test_accepts_timedelta(self, conn, clock) -> None:
        clock.advance(31)
        assert conn.needs_keepalive(timedelta(seconds=30))
        assert not conn.needs_keepalive(timedelta(minutes=1))

    def test_predicate_has_no_side_effects(self, conn, clock) -> None:
        clock.advance(100)
        assert conn.needs_keepalive(30)
        assert conn.needs_keepalive(30)
        assert conn.last_contact == START

    def test_contact_never_regresses(self, conn) -> None:
        conn.record_contact(START + 50)
        conn.record_contact(START + 10)
        assert conn.last_contact == START + 50

    def test_contact_defaults_to_now(self, conn, clock) -> None:
        clock.advance(5)
        conn.record_contact()
        assert conn.last_contact == START + 5

    def test_liveness_messages_refresh_contact(self, conn, clock) -> None:
        clock.advance(40)
        assert conn.needs_keepalive(30)

        assert conn.handle_message(_from_bob(MessageKind.PONG, 1))
        assert not conn.needs_keepalive(30)
        assert conn.last_contact == START + 40

    def test_text_does_not_refresh_contact(self, conn, clock) -> None:
        clock.advance(40)
        conn.handle_message(_from_bob(MessageKind.TEXT, 1))
        assert conn.last_contact == START


class TestLifecycle:
    """Test state transitions."""

    def test_initial_state(self, conn) -> None:
        assert conn.state == ConnectionStatus.DISCONNECTED
        assert conn.role is None
        assert not conn.is_connected

    def test_initiator_path(self, conn) -> None:
        assert conn.connect()
        assert conn.state == ConnectionStatus.CONNECTING
        assert conn.role == ConnectionRole.INITIATOR

        assert conn.handle_message(_from_bob(MessageKind.HANDSHAKE_ACK, 1))
        assert conn.state == ConnectionStatus.CONNECTED
        assert conn.role == ConnectionRole.INITIATOR

    def test_responder_path(self, conn) -> None:
        assert conn.handle_message(_from_bob(MessageKind.HANDSHAKE, 1))
        assert conn.state == ConnectionStatus.CONNECTING
        assert conn.role == ConnectionRole.RESPONDER

        # ack sent back
        assert conn.mark_connected()
        assert conn.state == ConnectionStatus.CONNECTED

    def test_cannot_skip_connecting(self, conn) -> None:
        assert not conn.mark_connected()
        conn.handle_message(_from_bob(MessageKind.HANDSHAKE_ACK, 1))
        assert conn.state == ConnectionStatus.DISCONNECTED

    def test_connect_twice(self, conn) -> None:
        assert conn.connect()
        assert not conn.connect()
        assert conn.state == ConnectionStatus.CONNECTING

    def test_fail_and_reset(self, conn) -> None:
        assert not conn.fail("socket error")

        conn.connect()
        assert conn.fail("socket error")
        assert conn.state == ConnectionStatus.FAILED
        assert conn.failure_reason == "socket error"

        assert conn.reset()
        assert conn.state == ConnectionStatus.DISCONNECTED
        assert conn.role is None

    def test_reset_from_connected(self, conn) -> None:
        conn.connect()
        conn.mark_connected()
        assert conn.reset()
        assert conn.state == ConnectionStatus.DISCONNECTED

    def test_reset_requires_connected_or_failed(self, conn) -> None:
        assert not conn.reset()
        conn.connect()
        assert not conn.reset()
        assert conn.state == ConnectionStatus.CONNECTING

    def test_handshake_timeout(self, conn, clock) -> None:
        conn.connect()

        clock.advance(10)
        assert not conn.check_timeout()

        clock.advance(1)
        assert conn.check_timeout()
        assert conn.state == ConnectionStatus.FAILED
        assert conn.failure_reason == "connection timed out"

    def test_timeout_ignored_when_connected(self, conn, clock) -> None:
        conn.connect()
        conn.mark_connected()
        clock.advance(60)
        assert not conn.check_timeout(timedelta(seconds=10))

    def test_close(self, conn) -> None:
        conn.connect()
        conn.mark_connected()

        assert conn.handle_message(_from_bob(MessageKind.CLOSE, 1))
        assert conn.state == ConnectionStatus.DISCONNECTED

    def test_reconnect_after_close(self, conn) -> None:
        """A fresh handshake restarts the peer's numbering."""
        conn.handle_message(_from_bob(MessageKind.HANDSHAKE, 1))
        conn.mark_connected()
        conn.handle_message(_from_bob(MessageKind.CLOSE, 2))

        assert conn.handle_message(_from_bob(MessageKind.HANDSHAKE, 1))
        assert conn.state == ConnectionStatus.CONNECTING


class TestIncomingMessages:
    """Test duplicate detection and failure counting."""

    def test_duplicate_dropped(self, conn) -> None:
        assert conn.handle_message(_from_bob(MessageKind.PING, 5))
        assert not conn.handle_message(_from_bob(MessageKind.PING, 5))

    def test_out_of_order_within_window(self, conn) -> None:
        assert conn.handle_message(_from_bob(MessageKind.PING, 10))
        assert conn.handle_message(_from_bob(MessageKind.PING, 8))
        assert not conn.handle_message(_from_bob(MessageKind.PING, 8))

    def test_stale_outside_window(self, conn) -> None:
        assert conn.handle_message(_from_bob(MessageKind.PING, 1000))
        assert not conn.handle_message(_from_bob(MessageKind.PING, 1000 - 64))
        assert conn.handle_message(_from_bob(MessageKind.PING, 1000 - 63))

    def test_accepts_across_wraparound(self, conn) -> None:
        assert conn.accept_sequence(2**32 - 1)
        assert conn.accept_sequence(0)
        assert conn.accept_sequence(1)
        assert not conn.accept_sequence(2**32 - 1)

    def test_other_sender_ignored(self, conn) -> None:
        msg = WireMessage(kind=MessageKind.PING, sender_id=ALICE_ID, timestamp=START, sequence_num=1)
        assert not conn.handle_message(msg)

    def test_repeated_failures_fail_connection(self, conn) -> None:
        conn.connect()
        conn.mark_connected()

        for _ in range(4):
            assert not conn.record_failure()
        assert conn.record_failure()
        assert conn.state == ConnectionStatus.FAILED

    def test_good_message_resets_failure_count(self, conn) -> None:
        conn.connect()
        conn.mark_connected()

        for _ in range(4):
            conn.record_failure()
        conn.handle_message(_from_bob(MessageKind.PING, 1))
        assert not conn.record_failure()
        assert conn.state == ConnectionStatus.CONNECTED

    def test_failure_threshold_from_config(self, clock) -> None:
        conn = PeerConnection(
            peer_id=BOB_ID,
            local_addr=Endpoint.of("10.0.0.1", 1),
            remote_addr=Endpoint.of("10.0.0.2", 2),
            clock=clock,
            config=HolePunchConfig(max_consecutive_failures=1),
        )
        conn.connect()
        assert conn.record_failure()

    def test_failures_before_connect_not_counted(self, conn) -> None:
        """Garbage received while disconnected does not count against a new session."""
        for _ in range(5):
            assert not conn.record_failure()

        conn.connect()
        assert not conn.record_failure()
        assert conn.state == ConnectionStatus.CONNECTING

    def test_new_handshake_clears_failure_count(self, conn) -> None:
        conn.connect()
        for _ in range(4):
            conn.record_failure()
        conn.fail("socket error")
        conn.reset()

        conn.connect()
        assert not conn.record_failure()
        assert conn.state == ConnectionStatus.CONNECTING

    def test_peer_restart_while_connected(self, conn) -> None:
        """A peer that restarts numbering from 1 gets a fresh session."""
        assert conn.handle_message(_from_bob(MessageKind.HANDSHAKE, 1))
        for n in range(2, 11):
            assert conn.handle_message(_from_bob(MessageKind.TEXT, n))
        conn.mark_connected()

        assert conn.handle_message(_from_bob(MessageKind.HANDSHAKE, 1))
        assert conn.state == ConnectionStatus.CONNECTING
        assert conn.role == ConnectionRole.RESPONDER

        accepted = [conn.handle_message(_from_bob(MessageKind.TEXT, n)) for n in range(2, 11)]
        assert all(accepted)

        assert conn.mark_connected()

    def test_peer_restart_after_failure(self, conn) -> None:
        conn.connect()
        conn.handle_message(_from_bob(MessageKind.PING, 5))
        conn.fail("socket error")

        assert conn.handle_message(_from_bob(MessageKind.HANDSHAKE, 1))
        assert conn.state == ConnectionStatus.CONNECTING
        assert conn.role == ConnectionRole.RESPONDER
        assert conn.failure_reason is None

    def test_duplicate_handshake_while_connecting_dropped(self, conn) -> None:
        assert conn.handle_message(_from_bob(MessageKind.HANDSHAKE, 1))
        assert not conn.handle_message(_from_bob(MessageKind.HANDSHAKE, 1))
        assert conn.state == ConnectionStatus.CONNECTING


class TestPeerTable:
    """Test the set of known peers."""

    def test_add_get_remove(self, conn) -> None:
        table = PeerTable()
        assert table.add(conn) is conn
        assert BOB_ID in table
        assert table.get(BOB_ID) is conn
        assert len(table) == 1

        assert table.remove(BOB_ID) is conn
        assert table.get(BOB_ID) is None
        assert table.remove(BOB_ID) is None

    def test_add_keeps_existing(self, conn, clock) -> None:
        table = PeerTable()
        table.add(conn)
        other = PeerConnection(BOB_ID, conn.local_addr, conn.remote_addr, clock=clock)
        assert table.add(other) is conn

    def test_needing_keepalive(self, conn, clock) -> None:
        table = PeerTable()
        table.add(conn)
        conn.connect()
        conn.mark_connected()

        clock.advance(31)
        assert table.needing_keepalive(30) == [conn]

    def test_expire_handshakes(self, conn, clock) -> None:
        table = PeerTable()
        table.add(conn)
        conn.connect()

        clock.advance(11)
        assert table.expire_handshakes() == [conn]
        assert table.with_status(ConnectionStatus.FAILED) == [conn]

    def test_sweeps_accept_timedelta(self, conn, clock) -> None:
        table = PeerTable()
        table.add(conn)
        conn.connect()

        clock.advance(4)
        assert table.expire_handshakes(timedelta(seconds=5)) == []
        clock.advance(2)
        assert table.expire_handshakes(timedelta(seconds=5)) == [conn]

        conn.reset()
        conn.connect()
        conn.mark_connected()
        clock.advance(20)
        assert table.needing_keepalive(timedelta(seconds=30)) == []
        clock.advance(11)
        assert table.needing_keepalive(timedelta(seconds=30)) == [conn]
