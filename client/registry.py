"""
Remote participant tracking.
Maps callsigns heard on the air to spawned entities and drops the ones
that have gone quiet.
"""

import time

from common.config import EVICTION_TIMEOUT
from common.packet import Direction
from client.interpolation import Facing, MotionState


class RemoteParticipant:
    """A remote station we have heard at least one position report from."""

    def __init__(self, callsign: str, handle: int, motion: MotionState,
                 now: float):
        self.callsign = callsign
        self.handle = handle            # Entity handle in the world
        self.motion = motion
        self.last_seen = now
        self.is_local = False

    def touch(self, now: float):
        """Update the last-seen timestamp."""
        self.last_seen = now

    def is_timed_out(self, now: float, timeout: float = EVICTION_TIMEOUT) -> bool:
        return now - self.last_seen > timeout

    def __repr__(self):
        return (f"RemoteParticipant({self.callsign!r}, handle={self.handle}, "
                f"last_seen={self.last_seen:.1f})")


class ParticipantRegistry:
    """
    Callsign -> RemoteParticipant, in the order stations were first heard.
    At most one record per callsign; the local station is never tracked.
    """

    def __init__(self, world, local_callsign: str,
                 timeout: float = EVICTION_TIMEOUT, verbose: bool = True):
        self.world = world
        self.local_callsign = local_callsign
        self.timeout = timeout
        self.verbose = verbose
        self.participants = {}    # upper-cased callsign -> RemoteParticipant

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    @staticmethod
    def _key(callsign: str) -> str:
        # Callsigns are case-insensitive on the air
        return callsign.upper()

    def is_local(self, callsign: str) -> bool:
        return self._key(callsign) == self._key(self.local_callsign)

    def resolve(self, callsign: str, x: float, y: float,
                direction: str = Direction.SOUTH, now: float = None) -> tuple:
        """
        Find or create the participant for a position report.

        Returns:
            (participant, created) - created is True when a new entity
            was spawned for this report.
        """
        if self.is_local(callsign):
            raise ValueError(f"Refusing to track local callsign {callsign}")
        if now is None:
            now = time.monotonic()

        key = self._key(callsign)
        participant = self.participants.get(key)
        if participant is not None:
            if self.world.is_alive(participant.handle):
                participant.touch(now)
                return participant, False
            # Entity vanished behind our back: forget it, start over
            self._log(f"[REGISTRY] Entity for {callsign} no longer exists "
                      f"- dropping stale entry")
            del self.participants[key]

        handle = self.world.spawn(callsign, x, y, Facing.idle(direction))
        participant = RemoteParticipant(
            callsign, handle, MotionState.at_rest(x, y, direction, now), now
        )
        self.participants[key] = participant
        return participant, True

    def touch(self, callsign: str, now: float = None) -> bool:
        """Refresh last_seen for a tracked station. Never creates a record."""
        participant = self.participants.get(self._key(callsign))
        if participant is None:
            return False
        participant.touch(time.monotonic() if now is None else now)
        return True

    def remove(self, callsign: str):
        """Forget a participant and despawn its entity."""
        participant = self.participants.pop(self._key(callsign), None)
        if participant is not None:
            self.world.despawn(participant.handle)
        return participant

    def sweep(self, now: float = None) -> list:
        """Remove silent or orphaned participants. Returns the removed ones."""
        if now is None:
            now = time.monotonic()
        stale = [
            p for p in self.participants.values()
            if p.is_timed_out(now, self.timeout)
            or not self.world.is_alive(p.handle)
        ]
        for p in stale:
            self.remove(p.callsign)
        return stale

    def get(self, callsign: str) -> RemoteParticipant:
        return self.participants.get(self._key(callsign))

    def __contains__(self, callsign: str) -> bool:
        return self._key(callsign) in self.participants

    def all_participants(self):
        """List of all tracked participants, oldest first."""
        return list(self.participants.values())

    @property
    def count(self) -> int:
        return len(self.participants)
