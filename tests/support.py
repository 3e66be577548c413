"""Shared fixtures: in-memory database, seeded bot and catalog, fake LLM."""
import json

from salesbot.app.session import SessionManager
from salesbot.data.database import create_tables, make_engine, make_session_factory
from salesbot.data.models import Chat, Chatbot, Product
from salesbot.orders.pending_intent import PendingIntentTracker

CATALOG = [
    # sku, name, description, price_cents, stock
    ("ABC-1", "Playera básica blanca", "Playera de algodón color blanco", 19900, 5),
    ("ABC-2", "Playera básica negra", "Playera de algodón color negro", 19900, 3),
    ("SUD-100", "Sudadera negra con capucha", "Sudadera de felpa con capucha", 54900, 4),
    ("SUD-101", "Sudadera gris", "Sudadera cuello redondo gris", 49900, 0),
    ("GOR-7", "Gorra negra", "Gorra ajustable", 24900, 10),
]


def make_db():
    """Fresh in-memory SQLite database; returns (engine, session)."""
    engine = make_engine("sqlite://")
    create_tables(engine)
    return engine, make_session_factory(engine)()


def seed_bot(db, catalog=CATALOG, owner="owner-test", payment_methods=("cash", "transfer"),
             shipping_methods=("domicilio", "punto_medio", "recoleccion")):
    bot = Chatbot(
        owner_user_id=owner,
        name="Tienda Test",
        sales_enabled=1,
        payment_methods=list(payment_methods),
        shipping_methods=list(shipping_methods),
        shipping_config={"pickupAddress": "Calle 1", "pickupHours": "10-18", "meetupAreas": ["Centro"]},
    )
    db.add(bot)
    db.flush()
    for sku, name, description, price_cents, stock in catalog:
        db.add(Product(bot_id=bot.id, sku=sku, name=name, description=description,
                       price_cents=price_cents, stock=stock))
    db.commit()
    return bot


def make_chat(db, bot, title="Nuevo chat"):
    chat = Chat(bot_id=bot.id, title=title)
    db.add(chat)
    db.commit()
    return chat


def product(db, bot, sku):
    p = db.query(Product).filter(Product.bot_id == bot.id, Product.sku == sku).populate_existing().one()
    return p


def memory_tracker(candidates_ttl=600):
    return PendingIntentTracker(SessionManager(use_redis=False), candidates_ttl=candidates_ttl)


def tool_call(call_id, name, args):
    """Assistant tool call in chat-completions shape; args may be a raw string."""
    arguments = args if isinstance(args, str) else json.dumps(args)
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


class ScriptedLLM:
    """Returns the scripted messages in order and records every request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def complete(self, messages, tools=None, tool_choice="auto", temperature=None):
        self.calls.append({
            "messages": [dict(m) for m in messages],
            "tools": tools,
            "tool_choice": tool_choice,
            "temperature": temperature,
        })
        if not self.responses:
            return None
        return self.responses.pop(0)


class LoopingLLM:
    """Always asks for one more tool call."""

    def __init__(self, name="cart_get", args="{}"):
        self.name = name
        self.args = args
        self.calls = 0

    def complete(self, messages, tools=None, tool_choice="auto", temperature=None):
        self.calls += 1
        return {"role": "assistant", "content": None,
                "tool_calls": [tool_call(f"call_{self.calls}", self.name, self.args)]}
