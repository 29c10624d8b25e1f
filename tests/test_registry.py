"""
Unit tests for remote participant tracking.
"""

import unittest

from common.packet import Direction
from client.interpolation import Facing
from client.registry import ParticipantRegistry
from client.world import RemoteWorld


class TestParticipantRegistry(unittest.TestCase):
    """Test join / refresh / eviction by callsign."""

    def setUp(self):
        self.world = RemoteWorld()
        self.registry = ParticipantRegistry(self.world, 'N0CALL-1',
                                            verbose=False)

    def test_first_report_creates(self):
        p, created = self.registry.resolve('K1ABC', 10, 20, Direction.EAST,
                                           now=0.0)
        self.assertTrue(created)
        self.assertIn('K1ABC', self.registry)
        entity = self.world.get(p.handle)
        self.assertEqual((entity.x, entity.y), (10, 20))
        self.assertEqual(entity.facing, Facing.IDLE_EAST)
        self.assertFalse(p.motion.in_transit)
        self.assertFalse(p.is_local)

    def test_second_report_refreshes(self):
        p1, _ = self.registry.resolve('K1ABC', 10, 20, now=0.0)
        p2, created = self.registry.resolve('K1ABC', 50, 60, now=30.0)
        self.assertFalse(created)
        self.assertIs(p1, p2)
        self.assertEqual(p2.last_seen, 30.0)
        self.assertEqual(self.registry.count, 1)
        self.assertEqual(self.world.count, 1)

    def test_callsign_case_insensitive(self):
        p1, _ = self.registry.resolve('K1ABC', 10, 20, now=0.0)
        p2, created = self.registry.resolve('k1abc', 30, 40, now=5.0)
        self.assertFalse(created)
        self.assertIs(p1, p2)
        self.assertEqual(self.registry.count, 1)
        self.assertEqual(self.world.count, 1)
        self.assertIn('k1Abc', self.registry)
        self.assertIs(self.registry.get('k1abc'), p1)
        self.assertIs(self.registry.remove('K1abc'), p1)
        self.assertEqual(self.world.count, 0)

    def test_touch_refreshes_without_creating(self):
        self.assertFalse(self.registry.touch('K1ABC', now=0.0))
        self.assertEqual(self.registry.count, 0)

        p, _ = self.registry.resolve('K1ABC', 0, 0, now=0.0)
        self.assertTrue(self.registry.touch('k1abc', now=100.0))
        self.assertEqual(p.last_seen, 100.0)
        self.assertEqual(self.registry.sweep(now=200.0), [])

    def test_local_callsign_rejected(self):
        with self.assertRaises(ValueError):
            self.registry.resolve('N0CALL-1', 0, 0, now=0.0)
        with self.assertRaises(ValueError):
            self.registry.resolve('n0call-1', 0, 0, now=0.0)
        self.assertEqual(self.registry.count, 0)

    def test_evicted_after_timeout(self):
        p, _ = self.registry.resolve('K1ABC', 0, 0, now=0.0)
        removed = self.registry.sweep(now=120.5)
        self.assertEqual([r.callsign for r in removed], ['K1ABC'])
        self.assertNotIn('K1ABC', self.registry)
        self.assertFalse(self.world.is_alive(p.handle))

    def test_retained_at_119_seconds(self):
        self.registry.resolve('K1ABC', 0, 0, now=0.0)
        self.assertEqual(self.registry.sweep(now=119.0), [])
        self.assertIn('K1ABC', self.registry)

    def test_retained_at_exactly_timeout(self):
        self.registry.resolve('K1ABC', 0, 0, now=0.0)
        self.assertEqual(self.registry.sweep(now=120.0), [])

    def test_refresh_postpones_eviction(self):
        self.registry.resolve('K1ABC', 0, 0, now=0.0)
        self.registry.resolve('K1ABC', 0, 0, now=100.0)
        self.assertEqual(self.registry.sweep(now=200.0), [])
        self.assertEqual(len(self.registry.sweep(now=221.0)), 1)

    def test_sweep_only_removes_stale(self):
        self.registry.resolve('OLD', 0, 0, now=0.0)
        self.registry.resolve('NEW', 0, 0, now=100.0)
        removed = self.registry.sweep(now=150.0)
        self.assertEqual([r.callsign for r in removed], ['OLD'])
        self.assertEqual([p.callsign for p in self.registry.all_participants()],
                         ['NEW'])

    def test_despawned_handle_fails_closed(self):
        """A handle killed elsewhere is dropped, not handed back."""
        p1, _ = self.registry.resolve('K1ABC', 0, 0, now=0.0)
        self.world.despawn(p1.handle)

        p2, created = self.registry.resolve('K1ABC', 5, 5, now=10.0)
        self.assertTrue(created)
        self.assertIsNot(p1, p2)
        self.assertNotEqual(p1.handle, p2.handle)
        self.assertTrue(self.world.is_alive(p2.handle))
        self.assertEqual(self.registry.count, 1)

    def test_sweep_drops_orphaned_entries(self):
        p, _ = self.registry.resolve('K1ABC', 0, 0, now=0.0)
        self.world.despawn(p.handle)
        removed = self.registry.sweep(now=1.0)
        self.assertEqual(len(removed), 1)
        self.assertEqual(self.registry.count, 0)

    def test_insertion_order(self):
        for call in ('C3', 'A1', 'B2'):
            self.registry.resolve(call, 0, 0, now=0.0)
        self.assertEqual([p.callsign for p in self.registry.all_participants()],
                         ['C3', 'A1', 'B2'])

    def test_remove(self):
        p, _ = self.registry.resolve('K1ABC', 0, 0, now=0.0)
        self.assertIs(self.registry.remove('K1ABC'), p)
        self.assertIsNone(self.registry.remove('K1ABC'))
        self.assertEqual(self.world.count, 0)


if __name__ == '__main__':
    unittest.main()
