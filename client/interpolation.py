"""
Motion reconciliation for remote players.

Position reports arrive every ~30 seconds at best, so each new report
starts a short eased glide from wherever the player is currently drawn
to the reported spot, instead of teleporting.
"""

import math

from common.config import MOVE_DURATION, MOVE_THRESHOLD
from common.packet import Direction


class Facing:
    """Animation facings: a walk and an idle variant per direction."""
    WALK_NORTH = 'walk_north'
    WALK_SOUTH = 'walk_south'
    WALK_EAST = 'walk_east'
    WALK_WEST = 'walk_west'
    IDLE_NORTH = 'idle_north'
    IDLE_SOUTH = 'idle_south'
    IDLE_EAST = 'idle_east'
    IDLE_WEST = 'idle_west'

    @staticmethod
    def walking(direction: str) -> str:
        return f"walk_{direction}"

    @staticmethod
    def idle(direction: str) -> str:
        return f"idle_{direction}"

    @staticmethod
    def direction_of(facing: str) -> str:
        direction = facing.split('_', 1)[-1]
        return direction if direction in Direction.ALL else Direction.SOUTH


def dominant_direction(dx: float, dy: float) -> str:
    """Direction of travel by dominant axis; +y is north."""
    if abs(dx) > abs(dy):
        return Direction.EAST if dx > 0 else Direction.WEST
    return Direction.NORTH if dy > 0 else Direction.SOUTH


def ease_out_cubic(progress: float) -> float:
    return 1.0 - (1.0 - progress) ** 3


class MotionState:
    """Interpolation state for one remote player."""

    __slots__ = ('x', 'y', 'start_x', 'start_y', 'target_x', 'target_y',
                 'move_start_time', 'move_duration', 'in_transit', 'facing')

    def __init__(self, x: float, y: float, facing: str = Facing.IDLE_SOUTH,
                 now: float = 0.0, move_duration: float = MOVE_DURATION):
        # Rendered position
        self.x = x
        self.y = y
        self.start_x = x
        self.start_y = y
        self.target_x = x
        self.target_y = y
        self.move_start_time = now
        self.move_duration = move_duration
        self.in_transit = False
        self.facing = facing

    @classmethod
    def at_rest(cls, x: float, y: float, direction: str = Direction.SOUTH,
                now: float = 0.0) -> 'MotionState':
        """State for a player seen for the first time: parked, no glide."""
        return cls(x, y, Facing.idle(direction), now)

    def progress(self, now: float) -> float:
        if self.move_duration <= 0:
            return 1.0
        elapsed = now - self.move_start_time
        return max(0.0, min(1.0, elapsed / self.move_duration))

    def position_at(self, now: float) -> tuple:
        """Where the player should be drawn at time `now`."""
        if not self.in_transit:
            return (self.x, self.y)
        p = self.progress(now)
        if p >= 1.0:
            return (self.target_x, self.target_y)
        eased = ease_out_cubic(p)
        return (self.start_x + (self.target_x - self.start_x) * eased,
                self.start_y + (self.target_y - self.start_y) * eased)


class MotionReconciler:
    """
    Starts and advances motion segments.

    A report within `threshold` of where the player is already headed
    (or standing, if idle) is ignored, so duplicated or jittered reports
    never restart a glide.
    """

    def __init__(self, move_duration: float = MOVE_DURATION,
                 threshold: float = MOVE_THRESHOLD):
        self.move_duration = move_duration
        self.threshold = threshold

    def on_snapshot(self, motion: MotionState, x: float, y: float,
                    now: float) -> bool:
        """
        Feed a position report for a known player.

        Returns:
            True if a new motion segment was started.
        """
        if motion.in_transit:
            ref_x, ref_y = motion.target_x, motion.target_y
        else:
            ref_x, ref_y = motion.x, motion.y
        if math.hypot(x - ref_x, y - ref_y) <= self.threshold:
            return False

        # Restart from the current interpolated spot to avoid a jump
        cur_x, cur_y = motion.position_at(now)
        motion.x, motion.y = cur_x, cur_y
        motion.start_x, motion.start_y = cur_x, cur_y
        motion.target_x, motion.target_y = x, y
        motion.move_start_time = now
        motion.move_duration = self.move_duration
        motion.in_transit = True
        motion.facing = Facing.walking(dominant_direction(x - cur_x, y - cur_y))
        return True

    def advance(self, motion: MotionState, now: float) -> bool:
        """Step one player's glide. Returns True if it moved."""
        if not motion.in_transit:
            return False

        if motion.progress(now) >= 1.0:
            # Done: snap exactly and fall back to idle
            motion.x, motion.y = motion.target_x, motion.target_y
            motion.in_transit = False
            motion.facing = Facing.idle(Facing.direction_of(motion.facing))
        else:
            motion.x, motion.y = motion.position_at(now)
        return True

    def tick(self, now: float, participants) -> list:
        """
        Advance every in-transit participant.

        Args:
            now: current time (seconds, same clock as on_snapshot)
            participants: iterable of objects with a `motion` attribute

        Returns:
            list of participants whose position changed this tick
        """
        moved = []
        for participant in participants:
            if self.advance(participant.motion, now):
                moved.append(participant)
        return moved
