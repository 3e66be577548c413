from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import enum
from datetime import datetime, timezone


def _utcnow():
    return datetime.now(timezone.utc)


class CartStatus(str, enum.Enum):
    open = "open"
    locked = "locked"


class SaleStatus(str, enum.Enum):
    pending_payment = "pending_payment"
    paid = "paid"
    cancelled = "cancelled"


class LedgerReason(str, enum.Enum):
    sale = "sale"
    cancel = "cancel"


class Chatbot(Base):
    __tablename__ = "chatbots"

    id = Column(Integer, primary_key=True, index=True)
    owner_user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    sales_enabled = Column(Integer, nullable=False, default=1)
    payment_methods = Column(JSON, nullable=False, default=list)   # ["cash", "transfer", "card"]
    shipping_methods = Column(JSON, nullable=False, default=list)  # ["domicilio", "punto_medio", "recoleccion"]
    shipping_config = Column(JSON, nullable=True)  # {"pickupAddress", "pickupHours", "meetupAreas"}
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    products = relationship("Product", back_populates="bot")
    chats = relationship("Chat", back_populates="bot")


class Chat(Base):
    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, index=True)
    bot_id = Column(Integer, ForeignKey("chatbots.id"), nullable=False, index=True)
    title = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    bot = relationship("Chatbot", back_populates="chats")
    messages = relationship(
        "Message", back_populates="chat", cascade="all, delete-orphan", order_by="Message.id"
    )
    carts = relationship("Cart", back_populates="chat", cascade="all, delete-orphan")


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=False)  # user | assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    chat = relationship("Chat", back_populates="messages")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("bot_id", "sku", name="uq_product_bot_sku"),
        CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    bot_id = Column(Integer, ForeignKey("chatbots.id"), nullable=False, index=True)
    sku = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    bot = relationship("Chatbot", back_populates="products")


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        # at most one open cart per chat
        Index(
            "uq_open_cart_per_chat",
            "bot_id",
            "chat_id",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    bot_id = Column(Integer, ForeignKey("chatbots.id"), nullable=False)
    chat_id = Column(Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(CartStatus, native_enum=False), nullable=False, default=CartStatus.open)
    subtotal_cents = Column(Integer, nullable=False, default=0)
    payment_method = Column(String, nullable=True)
    shipping_method = Column(String, nullable=True)
    shipping_address = Column(String, nullable=True)
    contact_name = Column(String, nullable=True)
    contact_phone = Column(String, nullable=True)
    contact_notes = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    chat = relationship("Chat", back_populates="carts")
    items = relationship(
        "CartItem", back_populates="cart", cascade="all, delete-orphan", order_by="CartItem.id"
    )


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cart_item_product"),
        CheckConstraint("qty > 0", name="ck_cart_item_qty_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    sku = Column(String, nullable=False)
    name_snapshot = Column(String, nullable=False)
    price_cents_snapshot = Column(Integer, nullable=False)
    qty = Column(Integer, nullable=False)

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")


class Sale(Base):
    __tablename__ = "sales"
    __table_args__ = (
        UniqueConstraint("chat_id", "idempotency_key", name="uq_sale_chat_idempotency_key"),
    )

    id = Column(Integer, primary_key=True, index=True)
    bot_id = Column(Integer, ForeignKey("chatbots.id"), nullable=False, index=True)
    # plain reference: sales outlive their chat
    chat_id = Column(Integer, nullable=False, index=True)
    cart_id = Column(Integer, nullable=True)
    status = Column(Enum(SaleStatus, native_enum=False), nullable=False, default=SaleStatus.pending_payment)
    total_cents = Column(Integer, nullable=False)
    payment_method = Column(String, nullable=True)
    shipping_method = Column(String, nullable=True)
    shipping_address = Column(String, nullable=True)
    customer_name = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    customer_notes = Column(String, nullable=True)
    customer_ref = Column(String, nullable=True)
    idempotency_key = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "SaleItem", back_populates="sale", cascade="all, delete-orphan", order_by="SaleItem.id"
    )


class SaleItem(Base):
    __tablename__ = "sale_items"

    id = Column(Integer, primary_key=True, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    sku = Column(String, nullable=False)
    name = Column(String, nullable=False)
    unit_price_cents = Column(Integer, nullable=False)
    qty = Column(Integer, nullable=False)

    sale = relationship("Sale", back_populates="items")


class InventoryLedger(Base):
    __tablename__ = "inventory_ledger"

    id = Column(Integer, primary_key=True, index=True)
    bot_id = Column(Integer, ForeignKey("chatbots.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    delta = Column(Integer, nullable=False)
    reason = Column(Enum(LedgerReason, native_enum=False), nullable=False)
    ref = Column(Integer, nullable=True)  # sale id
    created_at = Column(DateTime(timezone=True), server_default=func.now())
