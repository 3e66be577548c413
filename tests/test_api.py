#!/usr/bin/env python3
"""
HTTP API tests against an in-memory database.
"""

import unittest
from unittest import mock

from fastapi.testclient import TestClient

from salesbot.app import main
from salesbot.app.config import Config
from salesbot.data.database import create_tables, get_db, make_engine, make_session_factory
from salesbot.data.models import Chat, Chatbot
from salesbot.orders.cart_engine import CheckoutEngine

from support import make_chat, memory_tracker, product, seed_bot


class APITestCase(unittest.TestCase):
    def setUp(self):
        self.engine = make_engine("sqlite://")
        create_tables(self.engine)
        self.Session = make_session_factory(self.engine)

        db = self.Session()
        self.bot_id = seed_bot(db, owner=Config.OWNER_ID).id
        db.close()

        def override_get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        main.app.dependency_overrides[get_db] = override_get_db
        self.patches = [
            mock.patch.object(main, "tracker", memory_tracker()),
            mock.patch.object(Config, "has_llm", return_value=False),
        ]
        for p in self.patches:
            p.start()
        self.client = TestClient(main.app)

    def tearDown(self):
        for p in self.patches:
            p.stop()
        main.app.dependency_overrides.clear()
        self.engine.dispose()

    def new_chat(self, title=None):
        response = self.client.post("/chats", json={"title": title} if title else {})
        self.assertEqual(response.status_code, 200)
        return response.json()

    def send(self, chat_id, content):
        return self.client.post(f"/chats/{chat_id}/messages", json={"content": content})


class TestChatAPI(APITestCase):
    def test_health(self):
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "healthy"})

    def test_create_and_list_chats(self):
        chat = self.new_chat()
        self.assertEqual(chat["title"], "Nuevo chat")
        named = self.new_chat("Pedido de gorras")
        self.assertEqual(named["title"], "Pedido de gorras")

        ids = [c["id"] for c in self.client.get("/chats").json()]
        self.assertEqual(sorted(ids), sorted([chat["id"], named["id"]]))

    def test_purchase_conversation(self):
        chat = self.new_chat()
        offer = self.send(chat["id"], "quiero 1 de GOR-7")
        self.assertEqual(offer.status_code, 200)
        body = offer.json()
        self.assertIn("1 × Gorra negra por $249.00", body["reply"])
        self.assertEqual(body["chat_id"], chat["id"])
        self.assertEqual(body["title"], "quiero 1 de GOR-7")

        for text in ("sí", "Me llamo Ana", "efectivo", "recolección"):
            self.assertEqual(self.send(chat["id"], text).status_code, 200)
        done = self.send(chat["id"], "sí").json()
        self.assertTrue(done["reply"].startswith("Listo, Ana. Registré tu pedido #"))

        messages = self.client.get(f"/chats/{chat['id']}/messages").json()
        self.assertEqual(len(messages), 12)
        self.assertEqual([m["role"] for m in messages[:4]], ["user", "assistant", "user", "assistant"])
        self.assertEqual(messages[2]["content"], "sí")

    def test_blank_message_is_rejected(self):
        chat = self.new_chat()
        response = self.send(chat["id"], "   ")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Texto vacío")
        self.assertEqual(self.send(chat["id"], "").status_code, 422)

    def test_unknown_chat(self):
        self.assertEqual(self.send(9999, "hola").status_code, 404)
        self.assertEqual(self.client.get("/chats/9999/messages").status_code, 404)
        self.assertEqual(self.client.delete("/chats/9999").status_code, 404)

    def test_chat_of_another_bot_is_hidden(self):
        db = self.Session()
        other = Chatbot(owner_user_id="someone-else", name="Otra", payment_methods=[], shipping_methods=[])
        db.add(other)
        db.flush()
        foreign = Chat(bot_id=other.id, title="privado")
        db.add(foreign)
        db.commit()
        foreign_id = foreign.id
        db.close()

        self.assertEqual(self.client.get(f"/chats/{foreign_id}/messages").status_code, 404)
        self.assertNotIn(foreign_id, [c["id"] for c in self.client.get("/chats").json()])

    def test_delete_chat_forgets_state(self):
        chat = self.new_chat()
        self.send(chat["id"], "quiero 1 de GOR-7")
        self.assertIsNotNone(main.tracker.get(chat["id"]))

        response = self.client.delete(f"/chats/{chat['id']}")
        self.assertEqual(response.json(), {"ok": True})
        self.assertIsNone(main.tracker.get(chat["id"]))
        self.assertEqual(main.tracker.candidates(chat["id"]), [])
        self.assertEqual(self.client.get(f"/chats/{chat['id']}/messages").status_code, 404)


class TestSalesAPI(APITestCase):
    def make_sale(self, sku, qty):
        db = self.Session()
        try:
            bot = db.get(Chatbot, self.bot_id)
            chat = make_chat(db, bot)
            p = product(db, bot, sku)
            result = CheckoutEngine(db, self.bot_id, chat.id).express_checkout(p.id, qty)
            self.assertTrue(result["ok"])
            return result["sale"]["id"]
        finally:
            db.close()

    def stock_of(self, sku):
        db = self.Session()
        try:
            return product(db, db.get(Chatbot, self.bot_id), sku).stock
        finally:
            db.close()

    def test_list_sales_by_status(self):
        first = self.make_sale("GOR-7", 1)
        second = self.make_sale("ABC-1", 2)
        self.assertEqual(self.client.post(f"/sales/{first}/mark-paid").status_code, 200)

        everything = self.client.get("/sales").json()["items"]
        self.assertEqual([s["id"] for s in everything], [second, first])

        pending = self.client.get("/sales", params={"status": "pending_payment"}).json()["items"]
        self.assertEqual([s["id"] for s in pending], [second])
        self.assertEqual(pending[0]["items"][0]["sku"], "ABC-1")

        self.assertEqual(self.client.get("/sales", params={"status": "lost"}).status_code, 422)

    def test_cancel_restores_stock(self):
        sale_id = self.make_sale("ABC-1", 2)
        self.assertEqual(self.stock_of("ABC-1"), 3)

        response = self.client.post(f"/sales/{sale_id}/cancel")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["sale"]["status"], "cancelled")
        self.assertEqual(body["restored_items"], 1)
        self.assertEqual(self.stock_of("ABC-1"), 5)

    def test_terminal_sales_conflict(self):
        sale_id = self.make_sale("GOR-7", 1)
        self.assertEqual(self.client.post(f"/sales/{sale_id}/cancel").status_code, 200)

        again = self.client.post(f"/sales/{sale_id}/cancel")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["detail"], "Solo se pueden modificar ventas pendientes de pago.")
        self.assertEqual(self.client.post(f"/sales/{sale_id}/mark-paid").status_code, 409)
        self.assertEqual(self.stock_of("GOR-7"), 10)

    def test_unknown_sale(self):
        for action in ("cancel", "mark-paid"):
            response = self.client.post(f"/sales/9999/{action}")
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.json()["detail"], "Venta no encontrada.")

    def test_sales_of_another_bot_are_hidden(self):
        sale_id = self.make_sale("GOR-7", 1)
        db = self.Session()
        other = Chatbot(owner_user_id="someone-else", name="Otra", payment_methods=[], shipping_methods=[])
        db.add(other)
        db.commit()
        db.close()

        with mock.patch.object(Config, "OWNER_ID", "someone-else"):
            self.assertEqual(self.client.get("/sales").json()["items"], [])
            self.assertEqual(self.client.post(f"/sales/{sale_id}/mark-paid").status_code, 404)


if __name__ == "__main__":
    unittest.main()
