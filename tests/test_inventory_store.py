#!/usr/bin/env python3
"""
Inventory store tests: conditional stock updates, search and pagination.
"""

import unittest

from salesbot.data.inventory_store import InventoryStore, get_or_create_bot
from salesbot.data.models import Chatbot, Message
from salesbot.data.text_index import build_match_query, ensure_text_index

from support import make_chat, make_db, product, seed_bot


class TestInventoryStore(unittest.TestCase):
    def setUp(self):
        self.engine, self.db = make_db()
        self.bot = seed_bot(self.db)
        self.store = InventoryStore(self.db)

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_conditional_decrement_never_goes_negative(self):
        p = product(self.db, self.bot, "ABC-2")
        self.assertEqual(self.store.conditional_decrement_stock(p.id, self.bot.id, 2), 1)
        self.assertEqual(self.store.conditional_decrement_stock(p.id, self.bot.id, 2), 0)
        self.db.commit()
        self.assertEqual(product(self.db, self.bot, "ABC-2").stock, 1)

    def test_increment_stock(self):
        p = product(self.db, self.bot, "SUD-101")
        self.assertEqual(self.store.increment_stock(p.id, self.bot.id, 3), 1)
        self.assertEqual(self.store.increment_stock(p.id, self.bot.id + 1, 3), 0)
        self.db.commit()
        self.assertEqual(product(self.db, self.bot, "SUD-101").stock, 3)

    def test_find_product_is_scoped_to_bot(self):
        other = Chatbot(owner_user_id="other", name="Otro", payment_methods=[], shipping_methods=[])
        self.db.add(other)
        self.db.commit()
        self.assertIsNotNone(self.store.find_product(self.bot.id, "ABC-1"))
        self.assertIsNone(self.store.find_product(other.id, "ABC-1"))

    def test_keyword_search_uses_singular_forms(self):
        hits = self.store.search_by_keywords(self.bot.id, ["sudaderas"], limit=5)
        self.assertEqual({h["sku"] for h in hits}, {"SUD-100", "SUD-101"})

        in_stock = self.store.search_by_keywords(self.bot.id, ["sudaderas"], limit=5, in_stock_only=True)
        self.assertEqual([h["sku"] for h in in_stock], ["SUD-100"])

    def test_substring_search_matches_sku(self):
        hits = self.store.search_substring(self.bot.id, "abc")
        self.assertEqual({h["sku"] for h in hits}, {"ABC-1", "ABC-2"})

    def test_text_search_without_index_returns_nothing(self):
        self.assertEqual(self.store.search_by_text(self.bot.id, "playera"), [])

    def test_list_in_stock_skips_sold_out(self):
        skus = {p["sku"] for p in self.store.list_in_stock(self.bot.id)}
        self.assertNotIn("SUD-101", skus)
        self.assertEqual(len(skus), 4)

    def test_pagination_by_name(self):
        page1, cursor = self.store.list_products(self.bot.id, limit=2)
        self.assertEqual([p["name"] for p in page1], ["Gorra negra", "Playera básica blanca"])
        self.assertIsNotNone(cursor)

        page2, cursor = self.store.list_products(self.bot.id, limit=2, after_id=cursor)
        self.assertEqual([p["name"] for p in page2], ["Playera básica negra", "Sudadera gris"])

        page3, cursor = self.store.list_products(self.bot.id, limit=2, after_id=cursor)
        self.assertEqual([p["name"] for p in page3], ["Sudadera negra con capucha"])
        self.assertIsNone(cursor)

    def test_pagination_exact_fit_has_no_cursor(self):
        page, cursor = self.store.list_products(self.bot.id, limit=5)
        self.assertEqual(len(page), 5)
        self.assertIsNone(cursor)

    def test_pagination_descending_and_in_stock(self):
        page, cursor = self.store.list_products(self.bot.id, limit=10, order_by="name_desc", in_stock_only=True)
        self.assertEqual(page[0]["name"], "Sudadera negra con capucha")
        self.assertNotIn("SUD-101", [p["sku"] for p in page])
        self.assertIsNone(cursor)

    def test_pagination_by_created_walks_every_row(self):
        seen = []
        cursor = None
        while True:
            page, cursor = self.store.list_products(self.bot.id, limit=2, after_id=cursor, order_by="created_desc")
            seen.extend(p["sku"] for p in page)
            if cursor is None:
                break
        self.assertEqual(sorted(seen), sorted(["ABC-1", "ABC-2", "SUD-100", "SUD-101", "GOR-7"]))
        self.assertEqual(len(seen), 5)

    def test_unknown_ordering_is_rejected(self):
        with self.assertRaises(ValueError):
            self.store.list_products(self.bot.id, order_by="price")

    def test_get_or_create_bot_is_idempotent(self):
        first = get_or_create_bot(self.db, "nuevo-dueño")
        second = get_or_create_bot(self.db, "nuevo-dueño")
        self.assertEqual(first.id, second.id)

    def test_delete_chat_removes_messages(self):
        chat = make_chat(self.db, self.bot)
        self.store.add_message(chat.id, "user", "hola")
        self.db.commit()
        self.assertTrue(self.store.delete_chat(chat.id))
        self.db.commit()
        self.assertEqual(self.db.query(Message).count(), 0)
        self.assertFalse(self.store.delete_chat(chat.id))

    def test_recent_messages_keeps_order(self):
        chat = make_chat(self.db, self.bot)
        for i in range(5):
            self.store.add_message(chat.id, "user", f"m{i}")
        self.db.commit()
        self.assertEqual([m.content for m in self.store.recent_messages(chat.id, limit=3)], ["m2", "m3", "m4"])


class TestTextIndex(unittest.TestCase):
    def setUp(self):
        self.engine, self.db = make_db()
        self.bot = seed_bot(self.db)
        self.store = InventoryStore(self.db)
        self.has_index = ensure_text_index(self.engine)

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def test_match_query_quotes_keywords(self):
        self.assertEqual(build_match_query('sudadera "negra"'), '"sudadera" OR "negra"')
        self.assertEqual(build_match_query("hola"), "")

    def test_ranked_search(self):
        if not self.has_index:
            self.skipTest("SQLite build without FTS5")
        hits = self.store.search_by_text(self.bot.id, "sudadera capucha")
        self.assertEqual(hits[0]["sku"], "SUD-100")
        self.assertIn("score", hits[0])

    def test_index_follows_product_changes(self):
        if not self.has_index:
            self.skipTest("SQLite build without FTS5")
        p = product(self.db, self.bot, "GOR-7")
        p.name = "Gorra de lana"
        self.db.commit()
        self.assertEqual([h["sku"] for h in self.store.search_by_text(self.bot.id, "lana")], ["GOR-7"])

    def test_in_stock_filter(self):
        if not self.has_index:
            self.skipTest("SQLite build without FTS5")
        hits = self.store.search_by_text(self.bot.id, "sudadera", in_stock_only=True)
        self.assertEqual([h["sku"] for h in hits], ["SUD-100"])


if __name__ == "__main__":
    unittest.main()
