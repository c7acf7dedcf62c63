"""Duplicate detection for incoming sequence numbers.

Sequence numbers are 32-bit and wrap, so ordering uses serial number
arithmetic: a number is newer than another when it is ahead by less than
half the sequence space.
"""

from dataclasses import dataclass, field
from typing import Optional

from .types import MAX_SEQUENCE, SEQUENCE_MODULUS

_HALF_SPACE = SEQUENCE_MODULUS // 2


def sequence_distance(a: int, b: int) -> int:
    """Signed distance from b to a, in the range [-2^31, 2^31)."""
    diff = (a - b) % SEQUENCE_MODULUS
    return diff - SEQUENCE_MODULUS if diff >= _HALF_SPACE else diff


@dataclass
class ReplayState:
    """Tracks sequence numbers recently received from a peer.

    Attributes:
        window: How many numbers behind the highest one are remembered.
        highest: The newest sequence number seen, or None before the first.
        seen: Recently seen numbers inside the window.
    """

    window: int = 64
    highest: Optional[int] = None
    seen: frozenset = field(default_factory=frozenset)


def validate_sequence(state: ReplayState, sequence_num: int) -> bool:
    """Validate an incoming sequence number against the current state.

    Rejects numbers that are:
        - Outside the 32-bit range
        - Already seen (duplicate or replay)
        - Too far behind the newest number (outside the window)

    Returns:
        True if the number should be accepted.
    """
    if not 0 <= sequence_num <= MAX_SEQUENCE:
        return False

    if state.highest is None:
        return True

    if sequence_num in state.seen:
        return False

    return sequence_distance(sequence_num, state.highest) > -state.window


def record_sequence(state: ReplayState, sequence_num: int) -> ReplayState:
    """Record a received sequence number and return updated state."""
    highest = state.highest
    if highest is None or sequence_distance(sequence_num, highest) > 0:
        highest = sequence_num

    # Prune numbers that fell out of the window
    seen = frozenset(
        s for s in state.seen | {sequence_num}
        if sequence_distance(s, highest) > -state.window
    )

    return ReplayState(window=state.window, highest=highest, seen=seen)
