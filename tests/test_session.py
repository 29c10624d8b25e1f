"""
Unit tests for the per-tick session logic, driven through a fake bridge.
"""

import random
import unittest

from common.ax25 import SetupError
from common.config import CHAT_HISTORY_LIMIT, WELCOME_MESSAGE
from common.message import GameMessage, MessageKind, position_to_json
from common.metrics_logger import MetricsLogger
from common.packet import Direction, PositionPacket, decode
from client.interpolation import Facing
from client.session import GameSession, PositionBroadcaster


class FakeBridge:
    """Queues in, records out. Same surface the session uses."""

    def __init__(self):
        self.pending = []
        self.sent = []
        self.running = True

    def deliver_position(self, callsign, x, y, direction=Direction.SOUTH):
        packet = PositionPacket(callsign, x, y, direction)
        self.pending.append(GameMessage(position_to_json(packet),
                                        MessageKind.POSITION))

    def deliver_chat(self, line):
        self.pending.append(GameMessage(line, MessageKind.CHAT))

    def drain_inbound(self):
        messages, self.pending = self.pending, []
        return messages

    def enqueue_outbound(self, kind, text):
        self.sent.append((kind, text))

    def stop(self):
        self.running = False


class SilentBroadcaster(PositionBroadcaster):
    def due(self, now):
        return False


class TestGameSession(unittest.TestCase):

    def setUp(self):
        self.bridge = FakeBridge()
        self.session = GameSession('N0CALL-1', bridge=self.bridge,
                                   broadcaster=SilentBroadcaster(),
                                   verbose=False)

    def test_starts_with_welcome(self):
        self.assertEqual(self.session.chat_messages, [WELCOME_MESSAGE])
        self.assertTrue(self.session.online)

    def test_join_spawns_at_reported_position(self):
        self.bridge.deliver_position('K1ABC', 10, 20, Direction.WEST)
        self.session.tick(now=0.0)
        states = self.session.get_remote_states()
        self.assertEqual(states['K1ABC'],
                         {'callsign': 'K1ABC', 'x': 10, 'y': 20,
                          'facing': Facing.IDLE_WEST})

    def test_own_reports_filtered(self):
        self.bridge.deliver_position('N0CALL-1', 10, 20)
        self.bridge.deliver_position('n0call-1', 10, 20)
        self.session.tick(now=0.0)
        self.assertEqual(self.session.registry.count, 0)
        self.assertEqual(self.session.world.count, 0)

    def test_second_report_glides(self):
        self.bridge.deliver_position('K1ABC', 0, 0)
        self.session.tick(now=0.0)
        self.bridge.deliver_position('K1ABC', 100, 0)
        self.session.tick(now=30.0)
        self.session.tick(now=31.0)

        entity = self.session.get_remote_states()['K1ABC']
        self.assertAlmostEqual(entity['x'], 87.5)
        self.assertEqual(entity['facing'], Facing.WALK_EAST)

        self.session.tick(now=32.0)
        entity = self.session.get_remote_states()['K1ABC']
        self.assertEqual((entity['x'], entity['y']), (100, 0))
        self.assertEqual(entity['facing'], Facing.IDLE_EAST)

    def test_duplicate_report_is_noop(self):
        self.bridge.deliver_position('K1ABC', 0, 0)
        self.session.tick(now=0.0)
        self.bridge.deliver_position('K1ABC', 0, 0)
        self.session.tick(now=5.0)
        motion = self.session.registry.get('K1ABC').motion
        self.assertFalse(motion.in_transit)

    def test_silent_player_evicted(self):
        self.bridge.deliver_position('K1ABC', 0, 0)
        self.session.tick(now=0.0)
        handle = self.session.registry.get('K1ABC').handle

        self.session.tick(now=119.0)
        self.assertIn('K1ABC', self.session.registry)
        self.session.tick(now=121.0)
        self.assertNotIn('K1ABC', self.session.registry)
        self.assertFalse(self.session.world.is_alive(handle))

    def test_chat_received(self):
        self.bridge.deliver_chat('K1ABC: hello')
        self.session.tick(now=0.0)
        self.assertEqual(self.session.chat_messages[-1], 'K1ABC: hello')

    def test_chat_keeps_player_alive(self):
        self.bridge.deliver_position('K1ABC', 0, 0)
        self.session.tick(now=0.0)
        self.bridge.deliver_chat('K1ABC: still here')
        self.session.tick(now=60.0)
        self.bridge.deliver_chat('k1abc: and here')
        self.session.tick(now=110.0)

        self.session.tick(now=125.0)
        self.assertEqual(self.session.registry.count, 1)
        self.assertEqual(self.session.registry.get('K1ABC').last_seen, 110.0)

        self.session.tick(now=231.0)
        self.assertEqual(self.session.registry.count, 0)

    def test_chat_from_unknown_station_creates_nothing(self):
        self.bridge.deliver_chat('W1AW: hello')
        self.bridge.deliver_chat('no separator here')
        self.session.tick(now=0.0)
        self.assertEqual(self.session.registry.count, 0)
        self.assertEqual(self.session.world.count, 0)
        self.assertEqual(self.session.chat_messages[-1], 'no separator here')

    def test_chat_history_limit(self):
        for i in range(CHAT_HISTORY_LIMIT + 20):
            self.session.add_chat(f"line {i}")
        history = self.session.chat_messages
        self.assertEqual(len(history), CHAT_HISTORY_LIMIT)
        self.assertEqual(history[-1], f"line {CHAT_HISTORY_LIMIT + 19}")
        self.assertNotIn(WELCOME_MESSAGE, history)

    def test_send_chat_echoes_and_queues(self):
        self.assertTrue(self.session.send_chat('Hello world'))
        self.assertEqual(self.session.chat_messages[-1],
                         'N0CALL-1: Hello world')
        self.assertEqual(self.bridge.sent,
                         [(MessageKind.CHAT, '{C|N0CALL-1|Hello world')])

    def test_blank_chat_rejected(self):
        self.assertFalse(self.session.send_chat('   '))
        self.assertEqual(self.bridge.sent, [])
        self.assertEqual(self.session.chat_messages, [WELCOME_MESSAGE])

    def test_send_position_uses_local_state(self):
        self.session.set_local_position(128.4, 255.5, Direction.EAST)
        self.session.send_position()
        kind, line = self.bridge.sent[0]
        self.assertEqual(kind, MessageKind.POSITION)
        self.assertEqual(decode(line),
                         PositionPacket('N0CALL-1', 128, 256, Direction.EAST))

    def test_malformed_position_payload_skipped(self):
        self.bridge.pending.append(GameMessage('{not json',
                                               MessageKind.POSITION))
        self.bridge.deliver_position('K1ABC', 1, 1)
        self.session.tick(now=0.0)
        self.assertEqual(self.session.registry.count, 1)

    def test_metrics_per_tick(self):
        metrics = MetricsLogger()
        session = GameSession('N0CALL-1', bridge=self.bridge,
                              broadcaster=SilentBroadcaster(),
                              metrics=metrics, verbose=False)
        self.bridge.deliver_position('K1ABC', 0, 0)
        session.tick(now=0.0)
        session.tick(now=1.0)
        summary = metrics.get_summary()
        self.assertEqual(summary['participants_max'], 1)
        self.assertEqual(len(metrics.data['tick_times']), 2)
        self.assertEqual(session.current_tick, 2)

    def test_shutdown_stops_bridge(self):
        self.session.shutdown()
        self.assertFalse(self.bridge.running)
        self.assertIsNone(self.session.bridge)
        self.assertFalse(self.session.online)


class TestDegradedSession(unittest.TestCase):
    """No radio: everything local keeps working."""

    def test_failed_connect_degrades(self):
        def failing_opener(address):
            raise SetupError("Failed to connect to TNC")

        session = GameSession.connect('N0CALL-1', '127.0.0.1', 8100,
                                      opener=failing_opener, verbose=False)
        self.assertIsNone(session.bridge)
        self.assertFalse(session.online)

        session.tick(now=0.0)
        self.assertTrue(session.send_chat('anyone there?'))
        self.assertEqual(session.chat_messages[-1], 'N0CALL-1: anyone there?')
        session.send_position()
        session.shutdown()

    def test_bad_callsign_degrades(self):
        session = GameSession.connect('BAD CALL', '127.0.0.1', 8100,
                                      opener=lambda address: None,
                                      verbose=False)
        self.assertIsNone(session.bridge)


class TestPositionBroadcaster(unittest.TestCase):

    def test_first_report_immediate(self):
        broadcaster = PositionBroadcaster(rng=random.Random(1))
        self.assertTrue(broadcaster.due(0.0))
        self.assertFalse(broadcaster.due(0.1))

    def test_interval_within_jitter(self):
        broadcaster = PositionBroadcaster(interval=30, jitter=4,
                                          rng=random.Random(42))
        now = 0.0
        broadcaster.due(now)
        for _ in range(20):
            gap = broadcaster.next_due - now
            self.assertGreaterEqual(gap, 26)
            self.assertLessEqual(gap, 34)
            self.assertFalse(broadcaster.due(broadcaster.next_due - 0.5))
            now = broadcaster.next_due
            self.assertTrue(broadcaster.due(now))

    def test_interval_never_below_one_second(self):
        broadcaster = PositionBroadcaster(interval=1, jitter=5,
                                          rng=random.Random(3))
        for _ in range(20):
            self.assertGreaterEqual(broadcaster._next_interval(), 1)

    def test_tick_sends_when_due(self):
        bridge = FakeBridge()
        session = GameSession('N0CALL-1', bridge=bridge,
                              broadcaster=PositionBroadcaster(
                                  rng=random.Random(5)),
                              verbose=False)
        session.tick(now=0.0)
        session.tick(now=1.0)
        positions = [t for k, t in bridge.sent if k == MessageKind.POSITION]
        self.assertEqual(positions, ['{P|N0CALL-1|0|0|S'])


if __name__ == '__main__':
    unittest.main()
