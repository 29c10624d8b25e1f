"""
Per-session game networking state and the once-per-frame tick that
moves data between the TNC bridge, the participant registry and the
motion reconciler.
"""

import random
import time

from common.ax25 import SetupError
from common.config import (
    CHAT_HISTORY_LIMIT, POSITION_UPDATE_INTERVAL, POSITION_UPDATE_JITTER,
    WELCOME_MESSAGE
)
from common.message import MessageKind, position_from_json
from common.net import KissTnc, TncAddress
from common.packet import Direction, encode_chat, encode_position
from client.bridge import TncBridge
from client.interpolation import MotionReconciler
from client.registry import ParticipantRegistry
from client.world import RemoteWorld


class PositionBroadcaster:
    """
    Decides when the local position goes out. The first report is due
    immediately; after that every `interval` seconds, nudged by a random
    offset in [-jitter, +jitter] so stations sharing a channel drift
    apart instead of keying up together.
    """

    def __init__(self, interval: int = POSITION_UPDATE_INTERVAL,
                 jitter: int = POSITION_UPDATE_JITTER,
                 rng: random.Random = None):
        self.interval = interval
        self.jitter = jitter
        self.rng = rng or random.Random()
        self.next_due = None

    def _next_interval(self) -> int:
        offset = self.rng.randint(-self.jitter, self.jitter)
        return max(1, self.interval + offset)

    def due(self, now: float) -> bool:
        """True (and schedules the next one) if a report should go out."""
        if self.next_due is not None and now < self.next_due:
            return False
        self.next_due = now + self._next_interval()
        return True


class GameSession:
    """
    Everything the tick needs, scoped to one session: local identity,
    the bridge (None when running without radio), remote players and
    chat history.
    """

    def __init__(self, callsign: str, bridge: TncBridge = None,
                 world: RemoteWorld = None,
                 broadcaster: PositionBroadcaster = None,
                 reconciler: MotionReconciler = None,
                 metrics=None, verbose: bool = True):
        self.callsign = callsign
        self.bridge = bridge
        self.world = world or RemoteWorld()
        self.registry = ParticipantRegistry(self.world, callsign,
                                            verbose=verbose)
        self.reconciler = reconciler or MotionReconciler()
        self.broadcaster = broadcaster or PositionBroadcaster()
        self.metrics = metrics
        self.verbose = verbose

        self.chat_messages = [WELCOME_MESSAGE]

        # Local player, updated by the input/physics side
        self.local_x = 0.0
        self.local_y = 0.0
        self.local_facing = Direction.SOUTH

        self.current_tick = 0

    @classmethod
    def connect(cls, callsign: str, tnc_host: str, tnc_port: int,
                opener=KissTnc.open, metrics=None, verbose: bool = True,
                **kwargs) -> 'GameSession':
        """
        Start a session with a radio link. If the link cannot be set up
        the session still starts, single-player, with no bridge.
        """
        try:
            bridge = TncBridge.start(
                TncAddress.build(tnc_host, tnc_port), callsign,
                opener=opener, verbose=verbose, metrics=metrics
            )
        except SetupError as e:
            print(f"[!] {e} - continuing without radio", flush=True)
            bridge = None
        return cls(callsign, bridge=bridge, metrics=metrics,
                   verbose=verbose, **kwargs)

    def _log(self, msg: str):
        if self.verbose:
            print(msg, flush=True)

    @property
    def online(self) -> bool:
        return self.bridge is not None and self.bridge.running

    # -- per-frame ---------------------------------------------------------

    def tick(self, now: float = None):
        """Run one frame of networking work."""
        tick_start = time.perf_counter()
        if now is None:
            now = time.monotonic()

        # 1. Pull in whatever the radio delivered
        self.process_inbound(now)

        # 2. Advance remote player glides
        moved = self.reconciler.tick(now, self.registry.all_participants())
        for p in moved:
            self.world.place(p.handle, p.motion.x, p.motion.y,
                             p.motion.facing)

        # 3. Drop players who went quiet
        evicted = self.registry.sweep(now)
        for p in evicted:
            self._log(f"[SESSION] Player timed out: {p.callsign}")
        if evicted and self.metrics:
            self.metrics.log_participants(self.registry.count)

        # 4. Report our own position when due
        if self.broadcaster.due(now):
            self.send_position()

        if self.metrics:
            duration = (time.perf_counter() - tick_start) * 1000.0
            self.metrics.log_tick_time(self.current_tick, duration)
        self.current_tick += 1

    def process_inbound(self, now: float) -> int:
        """Drain the bridge and dispatch every message. Returns the count."""
        if self.bridge is None:
            return 0

        messages = self.bridge.drain_inbound()
        for message in messages:
            if message.kind == MessageKind.POSITION:
                self._handle_position(message.content, now)
            elif message.kind == MessageKind.CHAT:
                self._handle_chat(message.content, now)
        return len(messages)

    def _handle_position(self, content: str, now: float):
        try:
            packet = position_from_json(content)
        except ValueError as e:
            self._log(f"[!] {e}")
            return

        # Our own reports can come back via a digipeater
        if self.registry.is_local(packet.callsign):
            return

        participant, created = self.registry.resolve(
            packet.callsign, packet.x, packet.y, packet.facing, now
        )
        if created:
            self._log(f"[SESSION] New player joined: {packet.callsign}")
            if self.metrics:
                self.metrics.log_participants(self.registry.count)
            return

        motion = participant.motion
        start = (motion.x, motion.y)
        if self.reconciler.on_snapshot(motion, packet.x, packet.y, now):
            self._log(f"[SESSION] Updating position for {packet.callsign}: "
                      f"{start} -> {(packet.x, packet.y)}")

    def _handle_chat(self, line: str, now: float):
        self._log(f"[SESSION] Chat message received: {line}")
        self.add_chat(line)

        # Chat keeps a known station alive but never creates one
        callsign, sep, _ = line.partition(': ')
        if sep and not self.registry.is_local(callsign):
            self.registry.touch(callsign, now)

    # -- outbound ----------------------------------------------------------

    def add_chat(self, line: str):
        self.chat_messages.append(line)
        if len(self.chat_messages) > CHAT_HISTORY_LIMIT:
            self.chat_messages = self.chat_messages[-CHAT_HISTORY_LIMIT:]

    def send_chat(self, text: str) -> bool:
        """Echo a chat line locally and queue it for transmission."""
        if not text.strip():
            return False
        self.add_chat(f"{self.callsign}: {text}")
        if self.bridge is not None:
            self.bridge.enqueue_outbound(MessageKind.CHAT,
                                         encode_chat(self.callsign, text))
        return True

    def set_local_position(self, x: float, y: float, facing: str = None):
        self.local_x = x
        self.local_y = y
        if facing is not None:
            self.local_facing = facing

    def send_position(self):
        """Queue a report of the local player's position."""
        if self.bridge is None:
            return
        line = encode_position(self.callsign, self.local_x, self.local_y,
                               self.local_facing)
        self.bridge.enqueue_outbound(MessageKind.POSITION, line)
        self._log(f"[SESSION] Position update sent for {self.callsign}")

    # -- queries -----------------------------------------------------------

    def get_remote_states(self) -> dict:
        """Remote player states for rendering, keyed by callsign."""
        states = {}
        for p in self.registry.all_participants():
            entity = self.world.get(p.handle)
            if entity is not None:
                states[p.callsign] = entity.to_dict()
        return states

    def shutdown(self):
        if self.bridge is not None:
            self.bridge.stop()
            self.bridge = None
