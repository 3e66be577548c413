#!/usr/bin/env python3
"""
Main FastAPI application for the sales chatbot.
"""

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional

from .config import Config
from .controller import Controller, DEFAULT_TITLE
from .generate import GenerationError
from ..data.database import create_tables, engine, get_db
from ..data.inventory_store import InventoryStore, get_or_create_bot
from ..data.models import SaleStatus
from ..data.text_index import ensure_text_index
from ..orders.cart_engine import CheckoutEngine
from ..orders.pending_intent import PendingIntentTracker
from ..schemas.io_models import ChatCreate, ChatOut, MessageOut, SendMessageRequest, SendMessageResponse
from ..utils.logger import get_logger

logger = get_logger("api")

# Initialize FastAPI app
app = FastAPI(
    title="Sales Chatbot API",
    description="Catalog, cart and checkout chatbot with a tool-calling agent",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify your frontend domain
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Pending intents and candidates outlive a single request
tracker = PendingIntentTracker()


@app.on_event("startup")
def startup():
    create_tables()
    ensure_text_index(engine)
    Config.debug_print()


def current_bot_id(db: Session = Depends(get_db)) -> int:
    return get_or_create_bot(db, Config.OWNER_ID, Config.BOT_NAME).id


def _get_chat_or_404(store: InventoryStore, bot_id: int, chat_id: int):
    chat = store.get_chat(chat_id)
    if not chat or chat.bot_id != bot_id:
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat


@app.post("/chats", response_model=ChatOut)
def create_chat(request: ChatCreate, db: Session = Depends(get_db), bot_id: int = Depends(current_bot_id)):
    """Create a new chat for the bot."""
    store = InventoryStore(db)
    chat = store.create_chat(bot_id, (request.title or "").strip() or DEFAULT_TITLE)
    db.commit()
    return chat


@app.get("/chats", response_model=List[ChatOut])
def list_chats(db: Session = Depends(get_db), bot_id: int = Depends(current_bot_id)):
    return InventoryStore(db).list_chats(bot_id)


@app.get("/chats/{chat_id}/messages", response_model=List[MessageOut])
def list_messages(chat_id: int, db: Session = Depends(get_db), bot_id: int = Depends(current_bot_id)):
    store = InventoryStore(db)
    chat = _get_chat_or_404(store, bot_id, chat_id)
    return chat.messages


@app.post("/chats/{chat_id}/messages", response_model=SendMessageResponse)
def send_message(chat_id: int, request: SendMessageRequest, db: Session = Depends(get_db),
                 bot_id: int = Depends(current_bot_id)):
    """
    Process a customer message through the controller.
    """
    if not request.content.strip():
        raise HTTPException(status_code=400, detail="Texto vacío")

    store = InventoryStore(db)
    chat = _get_chat_or_404(store, bot_id, chat_id)
    try:
        reply = Controller(db, bot_id, tracker=tracker).handle_message(chat, request.content)
    except (SQLAlchemyError, GenerationError):
        db.rollback()
        logger.exception("[API] chat=%s message failed", chat_id)
        raise HTTPException(status_code=500, detail="Server error")
    return SendMessageResponse(reply=reply, chat_id=chat.id, title=chat.title)


@app.delete("/chats/{chat_id}")
def delete_chat(chat_id: int, db: Session = Depends(get_db), bot_id: int = Depends(current_bot_id)):
    store = InventoryStore(db)
    _get_chat_or_404(store, bot_id, chat_id)
    store.delete_chat(chat_id)
    db.commit()
    tracker.forget_chat(chat_id)
    return {"ok": True}


def _sale_result(result: Dict[str, Any]) -> Dict[str, Any]:
    if result.get("not_found"):
        raise HTTPException(status_code=404, detail=result["error"])
    if result.get("conflict"):
        raise HTTPException(status_code=409, detail=result["error"])
    return result


# Sale administration. Access control belongs to whoever exposes these routes.
@app.get("/sales")
def list_sales(status: Optional[SaleStatus] = None, limit: int = Query(50, ge=1, le=200),
               db: Session = Depends(get_db), bot_id: int = Depends(current_bot_id)):
    result = CheckoutEngine(db, bot_id).list_sales(status.value if status else None, limit=limit)
    return {"items": result["items"]}


@app.post("/sales/{sale_id}/cancel")
def cancel_sale(sale_id: int, db: Session = Depends(get_db), bot_id: int = Depends(current_bot_id)):
    """Cancel a pending sale and give its stock back."""
    return _sale_result(CheckoutEngine(db, bot_id).cancel_sale(sale_id))


@app.post("/sales/{sale_id}/mark-paid")
def mark_sale_paid(sale_id: int, db: Session = Depends(get_db), bot_id: int = Depends(current_bot_id)):
    return _sale_result(CheckoutEngine(db, bot_id).mark_paid(sale_id))


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
