"""Inventory store: the query/update interface over catalog, carts and sales.

An InventoryStore wraps one SQLAlchemy session. It never commits: callers own
the transaction boundary, so several store calls can be grouped into one
all-or-nothing unit of work.
"""
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, or_, func
from sqlalchemy.orm import Session

from .models import (
    Cart,
    CartStatus,
    Chat,
    Chatbot,
    InventoryLedger,
    LedgerReason,
    Message,
    Product,
    Sale,
    SaleItem,
)
from .text_index import search_ids
from ..nlu.text_query import singularize_basic

ORDERINGS = ("name_asc", "name_desc", "created_desc", "updated_desc")


def product_to_dict(p: Product, score: Optional[float] = None) -> Dict[str, Any]:
    out = {
        "id": p.id,
        "sku": p.sku,
        "name": p.name,
        "description": p.description,
        "price_cents": p.price_cents,
        "stock": p.stock or 0,
    }
    if score is not None:
        out["score"] = score
    return out


def get_or_create_bot(db: Session, owner_id: str, name: str = "Mini AYOLIN") -> Chatbot:
    bot = db.query(Chatbot).filter(Chatbot.owner_user_id == owner_id).first()
    if not bot:
        bot = Chatbot(owner_user_id=owner_id, name=name, sales_enabled=1, payment_methods=[], shipping_methods=[])
        db.add(bot)
        db.commit()
        db.refresh(bot)
    return bot


class InventoryStore:
    def __init__(self, db: Session):
        self.db = db

    # --- bot settings -------------------------------------------------
    def get_bot(self, bot_id: int) -> Optional[Chatbot]:
        return self.db.query(Chatbot).filter(Chatbot.id == bot_id).first()

    def payment_methods(self, bot_id: int) -> List[str]:
        bot = self.get_bot(bot_id)
        methods = bot.payment_methods if bot else None
        return list(methods) if isinstance(methods, list) else []

    def shipping_settings(self, bot_id: int) -> Tuple[List[str], Optional[Dict[str, Any]]]:
        bot = self.get_bot(bot_id)
        if not bot:
            return [], None
        methods = list(bot.shipping_methods) if isinstance(bot.shipping_methods, list) else []
        return methods, bot.shipping_config

    # --- products -----------------------------------------------------
    def _products(self):
        # stock updates bypass the identity map
        return self.db.query(Product).populate_existing()

    def find_product(self, bot_id: int, sku: str) -> Optional[Product]:
        return (
            self._products()
            .filter(Product.bot_id == bot_id, Product.sku == sku)
            .first()
        )

    def find_product_by_id(self, bot_id: int, product_id: int) -> Optional[Product]:
        return (
            self._products()
            .filter(Product.bot_id == bot_id, Product.id == product_id)
            .first()
        )

    def conditional_decrement_stock(self, product_id: int, bot_id: int, qty: int) -> int:
        """Single UPDATE ... WHERE stock >= qty; returns the affected row count."""
        return (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.bot_id == bot_id, Product.stock >= qty)
            .update({Product.stock: Product.stock - qty}, synchronize_session=False)
        )

    def increment_stock(self, product_id: int, bot_id: int, qty: int) -> int:
        return (
            self.db.query(Product)
            .filter(Product.id == product_id, Product.bot_id == bot_id)
            .update({Product.stock: Product.stock + qty}, synchronize_session=False)
        )

    def current_stock(self, product_id: int) -> int:
        value = self.db.query(Product.stock).filter(Product.id == product_id).scalar()
        return value or 0

    def search_by_text(self, bot_id: int, query: str, limit: int = 8, in_stock_only: bool = False) -> List[Dict[str, Any]]:
        ranked = search_ids(self.db, bot_id, query, limit=limit, in_stock_only=in_stock_only)
        if not ranked:
            return []
        ids = [pid for pid, _ in ranked]
        by_id = {p.id: p for p in self._products().filter(Product.id.in_(ids)).all()}
        return [product_to_dict(by_id[pid], score) for pid, score in ranked if pid in by_id]

    def search_by_keywords(self, bot_id: int, tokens: List[str], limit: int = 5, in_stock_only: bool = False) -> List[Dict[str, Any]]:
        """Substring fallback over name/sku/description, singular forms included."""
        words: List[str] = []
        for tok in tokens:
            for w in (tok, singularize_basic(tok)):
                if w and w not in words:
                    words.append(w)
        if not words:
            return []
        clauses = []
        for w in words:
            clauses.append(func.lower(Product.name).contains(w.lower(), autoescape=True))
            clauses.append(Product.sku.contains(w.upper(), autoescape=True))
            clauses.append(func.lower(Product.description).contains(w.lower(), autoescape=True))
        q = self._products().filter(Product.bot_id == bot_id, or_(*clauses))
        if in_stock_only:
            q = q.filter(Product.stock > 0)
        rows = q.order_by(Product.updated_at.desc(), Product.id.desc()).limit(limit).all()
        return [product_to_dict(p) for p in rows]

    def search_substring(self, bot_id: int, query: str, limit: int = 8) -> List[Dict[str, Any]]:
        q = query.strip()
        rows = (
            self._products()
            .filter(
                Product.bot_id == bot_id,
                or_(
                    func.lower(Product.name).contains(q.lower(), autoescape=True),
                    Product.sku.contains(q.upper(), autoescape=True),
                    func.lower(Product.description).contains(q.lower(), autoescape=True),
                ),
            )
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(limit)
            .all()
        )
        return [product_to_dict(p) for p in rows]

    def list_in_stock(self, bot_id: int, limit: int = 8) -> List[Dict[str, Any]]:
        rows = (
            self._products()
            .filter(Product.bot_id == bot_id, Product.stock > 0)
            .order_by(Product.updated_at.desc(), Product.id.desc())
            .limit(limit)
            .all()
        )
        return [product_to_dict(p) for p in rows]

    def list_products(
        self,
        bot_id: int,
        in_stock_only: bool = False,
        limit: int = 20,
        after_id: Optional[int] = None,
        order_by: str = "name_asc",
    ) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """Keyset page of products; next cursor only when a row exists past the page."""
        if order_by not in ORDERINGS:
            raise ValueError(f"unknown ordering {order_by!r}")
        column = {
            "name_asc": Product.name,
            "name_desc": Product.name,
            "created_desc": Product.created_at,
            "updated_desc": Product.updated_at,
        }[order_by]
        ascending = order_by == "name_asc"

        q = self._products().filter(Product.bot_id == bot_id)
        if in_stock_only:
            q = q.filter(Product.stock > 0)

        if after_id is not None:
            cursor = self.find_product_by_id(bot_id, after_id)
            if cursor is None:
                return [], None
            value = getattr(cursor, column.key)
            if ascending:
                q = q.filter(or_(column > value, and_(column == value, Product.id > cursor.id)))
            else:
                q = q.filter(or_(column < value, and_(column == value, Product.id < cursor.id)))

        if ascending:
            q = q.order_by(column.asc(), Product.id.asc())
        else:
            q = q.order_by(column.desc(), Product.id.desc())

        # one extra row tells whether a next page exists
        rows = q.limit(limit + 1).all()
        page = rows[:limit]
        next_after_id = page[-1].id if len(rows) > limit and page else None
        return [product_to_dict(p) for p in page], next_after_id

    # --- carts --------------------------------------------------------
    def find_open_cart(self, bot_id: int, chat_id: int) -> Optional[Cart]:
        return (
            self.db.query(Cart)
            .filter(Cart.bot_id == bot_id, Cart.chat_id == chat_id, Cart.status == CartStatus.open)
            .first()
        )

    def create_cart(self, bot_id: int, chat_id: int) -> Cart:
        cart = Cart(bot_id=bot_id, chat_id=chat_id, status=CartStatus.open, subtotal_cents=0)
        self.db.add(cart)
        self.db.flush()
        return cart

    def update_cart(self, cart: Cart, **fields) -> Cart:
        for key, value in fields.items():
            setattr(cart, key, value)
        self.db.flush()
        return cart

    # --- sales & ledger -----------------------------------------------
    def find_sale(self, bot_id: int, sale_id: int) -> Optional[Sale]:
        return self.db.query(Sale).filter(Sale.bot_id == bot_id, Sale.id == sale_id).first()

    def find_sale_by_key(self, chat_id: int, idempotency_key: str) -> Optional[Sale]:
        return (
            self.db.query(Sale)
            .filter(Sale.chat_id == chat_id, Sale.idempotency_key == idempotency_key)
            .first()
        )

    def list_sales(self, bot_id: int, status=None, limit: int = 50) -> List[Sale]:
        q = self.db.query(Sale).filter(Sale.bot_id == bot_id)
        if status is not None:
            q = q.filter(Sale.status == status)
        return q.order_by(Sale.id.desc()).limit(limit).all()

    def create_sale_with_items(self, lines: List[Dict[str, Any]], **fields) -> Sale:
        sale = Sale(**fields)
        for line in lines:
            sale.items.append(
                SaleItem(
                    product_id=line["product_id"],
                    sku=line["sku"],
                    name=line["name"],
                    unit_price_cents=line["unit_price_cents"],
                    qty=line["qty"],
                )
            )
        self.db.add(sale)
        self.db.flush()
        return sale

    def append_ledger_entry(self, bot_id: int, product_id: int, delta: int, reason: LedgerReason, ref: Optional[int]) -> InventoryLedger:
        entry = InventoryLedger(bot_id=bot_id, product_id=product_id, delta=delta, reason=reason, ref=ref)
        self.db.add(entry)
        return entry

    # --- chats --------------------------------------------------------
    def create_chat(self, bot_id: int, title: str = "Nuevo chat") -> Chat:
        chat = Chat(bot_id=bot_id, title=title)
        self.db.add(chat)
        self.db.flush()
        return chat

    def get_chat(self, chat_id: int) -> Optional[Chat]:
        return self.db.query(Chat).filter(Chat.id == chat_id).first()

    def list_chats(self, bot_id: int) -> List[Chat]:
        return self.db.query(Chat).filter(Chat.bot_id == bot_id).order_by(Chat.id.desc()).all()

    def add_message(self, chat_id: int, role: str, content: str) -> Message:
        msg = Message(chat_id=chat_id, role=role, content=content)
        self.db.add(msg)
        self.db.flush()
        return msg

    def recent_messages(self, chat_id: int, limit: int = 30) -> List[Message]:
        rows = (
            self.db.query(Message)
            .filter(Message.chat_id == chat_id)
            .order_by(Message.id.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(rows))

    def delete_chat(self, chat_id: int) -> bool:
        """Delete a chat with its messages and carts; sales are kept."""
        chat = self.get_chat(chat_id)
        if not chat:
            return False
        self.db.delete(chat)
        self.db.flush()
        return True
