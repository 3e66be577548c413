#!/usr/bin/env python3
"""
Session store and pending-intent tracker tests (in-memory backend).
"""

import unittest
from unittest import mock

import redis

from salesbot.app.session import SessionManager
from salesbot.orders.pending_intent import AWAITING_NAME, AWAITING_PAYMENT, AWAITING_SHIPPING

from support import memory_tracker


class TestSessionManager(unittest.TestCase):
    def test_memory_round_trip_and_delete(self):
        sessions = SessionManager(use_redis=False)
        sessions.set("pending", 1, {"state": "awaiting_quantity"})
        self.assertEqual(sessions.get("pending", 1), {"state": "awaiting_quantity"})
        self.assertIsNone(sessions.get("pending", 2))
        sessions.delete("pending", 1)
        self.assertIsNone(sessions.get("pending", 1))

    def test_ttl_expiry(self):
        sessions = SessionManager(use_redis=False)
        with mock.patch("salesbot.app.session.time") as clock:
            clock.time.return_value = 1000.0
            sessions.set("candidates", 3, {"items": []}, ttl_seconds=60)
            clock.time.return_value = 1059.0
            self.assertEqual(sessions.get("candidates", 3), {"items": []})
            clock.time.return_value = 1060.0
            self.assertIsNone(sessions.get("candidates", 3))

    def test_unreachable_redis_falls_back_to_memory(self):
        with mock.patch.object(redis.Redis, "ping", side_effect=redis.ConnectionError("down")):
            sessions = SessionManager(use_redis=True, redis_url="redis://localhost:6399/0")
        self.assertFalse(sessions.use_redis)
        self.assertIsNone(sessions.redis_client)
        sessions.set("pending", 1, {"ok": True})
        self.assertEqual(sessions.get("pending", 1), {"ok": True})


class TestPendingIntentTracker(unittest.TestCase):
    def test_states(self):
        tracker = memory_tracker()
        self.assertIsNone(tracker.get(5))

        tracker.await_quantity(5, product_id=9, sku="ABC-1", suggested_qty=2)
        pending = tracker.get(5)
        self.assertTrue(pending.awaiting_quantity)
        self.assertEqual((pending.product_id, pending.sku, pending.suggested_qty), (9, "ABC-1", 2))

        tracker.await_confirmation(5, product_id=9, sku="ABC-1", qty=2)
        pending = tracker.get(5)
        self.assertTrue(pending.awaiting_confirmation)
        self.assertEqual(pending.qty, 2)
        self.assertIsNone(pending.suggested_qty)

        tracker.clear(5)
        self.assertIsNone(tracker.get(5))

    def test_checkout_steps_keep_collected_data(self):
        tracker = memory_tracker()
        confirming = tracker.await_confirmation(5, product_id=9, sku="ABC-1", qty=2, suggested_qty=1)
        named = tracker.advance(5, confirming, AWAITING_NAME, qty=1)
        self.assertEqual((named.qty, named.suggested_qty), (1, None))

        tracker.advance(5, named, AWAITING_PAYMENT, customer_name="Ana")
        tracker.advance(5, tracker.get(5), AWAITING_SHIPPING, payment_method="cash")
        pending = tracker.get(5)
        self.assertEqual(pending.state, AWAITING_SHIPPING)
        self.assertEqual((pending.customer_name, pending.payment_method, pending.qty), ("Ana", "cash", 1))

        with self.assertRaises(ValueError):
            tracker.advance(5, pending, "awaiting_magic")

    def test_candidates_are_per_chat(self):
        tracker = memory_tracker()
        tracker.remember_candidates(1, [{"id": 3, "sku": "GOR-7", "name": "Gorra negra", "stock": 10}])
        self.assertEqual(tracker.candidates(1), [{"id": 3, "sku": "GOR-7", "name": "Gorra negra"}])
        self.assertEqual(tracker.candidates(2), [])

        tracker.await_quantity(1, product_id=3, sku="GOR-7")
        tracker.forget_chat(1)
        self.assertEqual(tracker.candidates(1), [])
        self.assertIsNone(tracker.get(1))


if __name__ == "__main__":
    unittest.main()
