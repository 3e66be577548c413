"""Controller: routes a customer message through the rule path or the agent.

Order of handling for each message:
  1. pending purchase intent (quantity, confirmation, then the checkout
     steps: name, payment, shipping, shipping details, final confirmation)
  2. selection among remembered candidates
  3. direct order by SKU ("quiero 2 de ABC-1", "ABC-1 x2")
  4. catalog listing
  5. text search answering price / stock / availability / buy
  6. tool-calling agent
"""
import re
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from .config import Config
from ..agents.sales_agent import SalesAgent
from ..data.inventory_store import InventoryStore, product_to_dict
from ..data.models import Chat
from ..nlu.order_parser import is_likely_sku, parse_order
from ..nlu.text_query import (
    detect_intent,
    extract_keywords,
    has_browse_intent,
    is_affirmative,
    is_clean_negative,
    is_stock_question,
    parse_ordinal_index,
    parse_quantity_from_text,
    pick_option,
    singularize_basic,
    wants_all_available,
)
from ..orders.cart_engine import CheckoutEngine, shipping_address_for
from ..orders.pending_intent import (
    AWAITING_CONFIRMATION,
    AWAITING_FINAL_CONFIRM,
    AWAITING_NAME,
    AWAITING_PAYMENT,
    AWAITING_QUANTITY,
    AWAITING_SHIPPING,
    AWAITING_SHIPPING_DETAILS,
    PendingIntent,
    PendingIntentTracker,
)
from ..tools.checkout import PAYMENT_LABELS, SHIPPING_LABELS
from ..tools.types import ToolContext
from ..utils.logger import get_logger

logger = get_logger("controller")

DEFAULT_TITLE = "Nuevo chat"
SEARCH_LIMIT = 5

HELP_TEXT = (
    "Puedo ayudarte a buscar productos, ver precios y stock o registrar un pedido. "
    "Escribe el SKU y la cantidad (ej: \"quiero 2 de ABC-1\") o pregúntame \"¿qué productos tienes?\"."
)
NOT_FOUND_TEXT = (
    "No encontré productos con esa descripción. "
    "¿Tienes el SKU exacto o quieres que te muestre lo que tengo en stock?"
)
PRODUCT_GONE_TEXT = "No encuentro el producto ahora. Intentemos de nuevo."
DECLINED_TEXT = "Perfecto, no realizo la compra. ¿Buscamos otra cosa?"
CHECKOUT_DROPPED_TEXT = "Entendido, no continúo con el pedido. ¿Buscamos otra cosa?"
EMPTY_STOCK_TEXT = "Ahora mismo no tengo productos en stock. Si tienes un SKU o nombre específico, lo busco."
ASK_NAME_TEXT = "Perfecto. Para continuar, ¿a nombre de quién registro el pedido? (Ej: \"Me llamo Ana Pérez\")."

NAME_PREFIX_RE = re.compile(r"^\s*(me\s+llamo|soy|mi\s+nombre\s+es)\b\s*", re.IGNORECASE)


def price_str(cents: int) -> str:
    return f"{cents / 100:.2f}"


def list_lines(products: List[Dict[str, Any]]) -> str:
    return "\n".join(
        f"• {p['sku']} — {p['name']} — ${price_str(p['price_cents'])} — stock {p['stock']}" for p in products
    )


def confirm_text(product: Dict[str, Any], qty: int) -> str:
    total = price_str(product["price_cents"] * qty)
    return f"Tengo {qty} × {product['name']} por ${total}. ¿Confirmas la compra? (responde \"sí\" o \"no\")"


def no_stock_text(product: Dict[str, Any]) -> str:
    return f"De {product['name']} (SKU {product['sku']}) no tengo stock ahora."


def method_labels(methods: List[str], labels: Dict[str, str]) -> str:
    return ", ".join(labels.get(m, m) for m in methods)


def order_summary(intent: PendingIntent, product: Dict[str, Any]) -> str:
    total = price_str(product["price_cents"] * intent.qty)
    lines = ["¿Confirmas tu pedido? (sí/no)", f"Producto: {intent.qty} × {product['name']} por ${total}"]
    if intent.customer_name:
        lines.append(f"Nombre: {intent.customer_name}")
    if intent.payment_method:
        lines.append(f"Pago: {PAYMENT_LABELS.get(intent.payment_method, intent.payment_method)}")
    if intent.shipping_method:
        lines.append(f"Entrega: {SHIPPING_LABELS.get(intent.shipping_method, intent.shipping_method)}")
    if intent.shipping_address:
        # meetup addresses already read "Punto medio: <area>"
        if intent.shipping_method == "punto_medio":
            lines.append(intent.shipping_address)
        else:
            lines.append(f"Dirección: {intent.shipping_address}")
    return "\n".join(lines)


def quantity_in(text: str) -> Optional[int]:
    """Quantity mentioned in the text, ignoring digits that belong to SKUs."""
    kept = []
    for raw in (text or "").split():
        word = raw.strip(".,;:!?¿¡()\"'")
        if word.isdigit() or not is_likely_sku(word):
            kept.append(word)
    return parse_quantity_from_text(" ".join(kept))


def norm_tokens(tokens: List[str]) -> List[str]:
    return [t for t in (singularize_basic(tok).strip() for tok in tokens) if len(t) >= 2]


def tokens_in_text(tokens: List[str], value: Optional[str]) -> bool:
    if not value or not tokens:
        return False
    low = value.lower()
    return all(t in low for t in tokens)


def pick_strong_top(results: List[Dict[str, Any]], tokens: List[str]) -> Optional[Dict[str, Any]]:
    """The first result when it clearly beats the rest or its name covers every token."""
    if not results:
        return None
    top = results[0]
    top_score = top.get("score") or 0
    second_score = (results[1].get("score") or 0) if len(results) > 1 else 0

    name_covers = tokens_in_text(tokens, top["name"]) or tokens_in_text(tokens, top.get("description"))
    if second_score > 0:
        score_clear = top_score >= second_score + 0.5 or top_score / second_score >= 1.3
    else:
        score_clear = top_score > 0
    return top if name_covers or score_clear else None


class Controller:
    def __init__(self, db: Session, bot_id: int, tracker: Optional[PendingIntentTracker] = None,
                 llm=None, registry=None):
        self.db = db
        self.bot_id = bot_id
        self.store = InventoryStore(db)
        self.tracker = tracker or PendingIntentTracker()
        self.llm = llm
        self.registry = registry

    def _engine(self, chat_id: int) -> CheckoutEngine:
        return CheckoutEngine(self.db, self.bot_id, chat_id)

    def _product(self, product_id: int) -> Optional[Dict[str, Any]]:
        product = self.store.find_product_by_id(self.bot_id, product_id)
        return product_to_dict(product) if product else None

    def _reset(self, chat_id: int) -> None:
        self.tracker.clear(chat_id)
        self.tracker.clear_candidates(chat_id)

    # --- entry point ---------------------------------------------------
    def handle_message(self, chat: Chat, text: str) -> str:
        text = (text or "").strip()
        logger.info("[WORKFLOW] chat=%s received message", chat.id)
        user_msg = self.store.add_message(chat.id, "user", text)
        self.db.commit()

        reply = self._route(chat, text, user_msg.id)

        self.store.add_message(chat.id, "assistant", reply)
        if not chat.title or chat.title == DEFAULT_TITLE:
            chat.title = text[:40]
        self.db.commit()
        return reply

    def _route(self, chat: Chat, text: str, user_msg_id: int) -> str:
        chat_id = chat.id

        pending = self.tracker.get(chat_id)
        if pending:
            logger.info("[WORKFLOW] chat=%s pending %s", chat_id, pending.state)
            return self._handle_pending(chat, pending, text)

        candidates = self.tracker.candidates(chat_id)
        if candidates:
            reply = self._handle_candidates(chat_id, candidates, text)
            if reply:
                return reply

        parsed = parse_order(text)
        if parsed:
            reply = self._handle_direct_order(chat_id, parsed.sku, parsed.qty)
            if reply:
                return reply

        intent = detect_intent(text)
        logger.info("[WORKFLOW] chat=%s intent=%s", chat_id, intent)
        if intent == "ask_inventory":
            return self._show_inventory(chat_id)

        if intent:
            return self._handle_search(chat_id, intent, text)

        return self._agent_reply(chat_id, text, user_msg_id)

    # --- pending intent ------------------------------------------------
    def _offer(self, chat_id: int, product: Dict[str, Any], qty: int) -> str:
        available = product["stock"]
        if qty > available:
            if available <= 0:
                self.tracker.clear(chat_id)
                return no_stock_text(product)
            self.tracker.await_quantity(chat_id, product["id"], product["sku"], suggested_qty=available)
            return f"Solo tengo {available} de {product['name']}. ¿Ajustamos a {available}?"
        self.tracker.await_confirmation(chat_id, product["id"], product["sku"], qty)
        return confirm_text(product, qty)

    def _handle_pending(self, chat: Chat, pending: PendingIntent, text: str) -> str:
        chat_id = chat.id
        # the checkout steps take free text (names, addresses)
        collecting = pending.state not in (AWAITING_QUANTITY, AWAITING_CONFIRMATION)
        if not collecting and has_browse_intent(text):
            self._reset(chat_id)
            return self._show_inventory(chat_id)

        product = self._product(pending.product_id)
        if product is None:
            self._reset(chat_id)
            return PRODUCT_GONE_TEXT

        if not collecting and is_stock_question(text):
            if product["stock"] > 0:
                return f"De {product['name']} (SKU {product['sku']}) tengo {product['stock']} disponibles."
            return no_stock_text(product)

        if is_clean_negative(text):
            self._reset(chat_id)
            return CHECKOUT_DROPPED_TEXT if collecting else DECLINED_TEXT

        handlers = {
            AWAITING_QUANTITY: self._handle_awaiting_quantity,
            AWAITING_CONFIRMATION: self._handle_awaiting_confirmation,
            AWAITING_NAME: self._handle_awaiting_name,
            AWAITING_PAYMENT: self._handle_awaiting_payment,
            AWAITING_SHIPPING: self._handle_awaiting_shipping,
            AWAITING_SHIPPING_DETAILS: self._handle_awaiting_shipping_details,
            AWAITING_FINAL_CONFIRM: self._handle_awaiting_final_confirm,
        }
        handler = handlers.get(pending.state)
        if handler is None:
            logger.warning("[PENDING] chat=%s unknown state %s", chat_id, pending.state)
            self._reset(chat_id)
            return HELP_TEXT
        return handler(chat_id, pending, product, text)

    def _handle_awaiting_quantity(self, chat_id: int, pending: PendingIntent, product: Dict[str, Any], text: str) -> str:
        qty = quantity_in(text)
        if qty:
            return self._offer(chat_id, product, qty)

        if pending.suggested_qty and is_affirmative(text):
            accept = pending.suggested_qty
            if accept <= 0 or accept > product["stock"]:
                self._reset(chat_id)
                return f"Ya no tengo stock suficiente de {product['name']}."
            self.tracker.await_confirmation(chat_id, product["id"], product["sku"], accept)
            total = price_str(product["price_cents"] * accept)
            return f"Quedarían {accept} × {product['name']} por ${total}. ¿Confirmas la compra? (responde \"sí\" o \"no\")"

        if is_affirmative(text):
            return "¿Cuántas unidades necesitas?"

        if pending.suggested_qty:
            return (
                f"Solo me falta la cantidad. ¿Te parece bien ajustar a {pending.suggested_qty} unidades "
                "o prefieres otra cantidad?"
            )
        return "Solo me falta la cantidad, ¿cuántas unidades quieres?"

    def _handle_awaiting_confirmation(self, chat_id: int, pending: PendingIntent, product: Dict[str, Any], text: str) -> str:
        changed = quantity_in(text)
        if changed and changed != pending.qty:
            available = product["stock"]
            if changed > available:
                if available <= 0:
                    self._reset(chat_id)
                    return no_stock_text(product)
                self.tracker.await_confirmation(chat_id, product["id"], product["sku"], pending.qty,
                                                suggested_qty=available)
                return f"Solo tengo {available}. ¿Ajustamos a {available}?"
            self.tracker.await_confirmation(chat_id, product["id"], product["sku"], changed)
            total = price_str(product["price_cents"] * changed)
            return f"Quedaría {changed} × {product['name']} por ${total}. ¿Confirmas? (sí/no)"

        if is_affirmative(text):
            accepted = pending.suggested_qty or pending.qty
            if accepted > product["stock"]:
                self._reset(chat_id)
                return f"Ya no tengo stock suficiente de {product['name']}. Disponible ahora: {product['stock']}."
            self.tracker.advance(chat_id, pending, AWAITING_NAME, qty=accepted)
            return ASK_NAME_TEXT

        if pending.suggested_qty:
            total = price_str(product["price_cents"] * pending.suggested_qty)
            return (
                f"Solo puedo apartar {pending.suggested_qty} × {product['name']} por ${total}. "
                "¿Te parece bien? (sí/no). Puedes escribir otra cantidad si prefieres."
            )
        total = price_str(product["price_cents"] * pending.qty)
        return (
            f"¿Confirmas {pending.qty} × {product['name']} por ${total}? (sí/no). "
            "Puedes cambiar la cantidad escribiendo \"mejor 3\"."
        )

    # --- express checkout steps ------------------------------------------
    def _handle_awaiting_name(self, chat_id: int, pending: PendingIntent, product: Dict[str, Any], text: str) -> str:
        name = NAME_PREFIX_RE.sub("", text).strip()[:80]
        if not name:
            return ASK_NAME_TEXT
        return self._ask_payment(chat_id, pending, product, f"Gracias, {name}. ", customer_name=name)

    def _ask_payment(self, chat_id: int, pending: PendingIntent, product: Dict[str, Any], lead: str, **fields) -> str:
        methods = self.store.payment_methods(self.bot_id)
        if not methods:
            return self._ask_shipping(chat_id, pending, product, lead, **fields)
        self.tracker.advance(chat_id, pending, AWAITING_PAYMENT, **fields)
        return f"{lead}¿Cómo deseas pagar? Métodos disponibles: {method_labels(methods, PAYMENT_LABELS)}."

    def _handle_awaiting_payment(self, chat_id: int, pending: PendingIntent, product: Dict[str, Any], text: str) -> str:
        methods = self.store.payment_methods(self.bot_id)
        key = pick_option(text, {m: PAYMENT_LABELS.get(m, m) for m in methods})
        if key is None:
            return f"No reconocí ese método de pago. Métodos disponibles: {method_labels(methods, PAYMENT_LABELS)}."
        lead = f"Recibido: pago con {PAYMENT_LABELS.get(key, key)}. "
        return self._ask_shipping(chat_id, pending, product, lead, payment_method=key)

    def _ask_shipping(self, chat_id: int, pending: PendingIntent, product: Dict[str, Any], lead: str, **fields) -> str:
        methods, _config = self.store.shipping_settings(self.bot_id)
        if not methods:
            return self._ask_final(chat_id, pending, product, lead, **fields)
        self.tracker.advance(chat_id, pending, AWAITING_SHIPPING, **fields)
        return f"{lead}¿Cómo deseas la entrega? Opciones: {method_labels(methods, SHIPPING_LABELS)}."

    def _handle_awaiting_shipping(self, chat_id: int, pending: PendingIntent, product: Dict[str, Any], text: str) -> str:
        methods, config = self.store.shipping_settings(self.bot_id)
        key = pick_option(text, {m: SHIPPING_LABELS.get(m, m) for m in methods})
        if key is None:
            return f"No reconocí esa forma de entrega. Opciones: {method_labels(methods, SHIPPING_LABELS)}."
        config = config or {}

        if key == "domicilio":
            self.tracker.advance(chat_id, pending, AWAITING_SHIPPING_DETAILS, shipping_method=key)
            return "Compárteme la dirección de entrega y una referencia."
        if key == "punto_medio":
            self.tracker.advance(chat_id, pending, AWAITING_SHIPPING_DETAILS, shipping_method=key)
            areas = config.get("meetupAreas")
            zones = f" Zonas sugeridas: {', '.join(areas)}." if isinstance(areas, list) and areas else ""
            return f"¿En qué punto medio nos vemos?{zones} También puedes escribir la tuya."

        lead = f"Perfecto: {SHIPPING_LABELS.get(key, key)}."
        if key == "recoleccion":
            where = f" en {config['pickupAddress']}" if config.get("pickupAddress") else ""
            hours = f" ({config['pickupHours']})" if config.get("pickupHours") else ""
            if where or hours:
                lead += f" Retiro{where}{hours}."
        return self._ask_final(chat_id, pending, product, lead + "\n", shipping_method=key, shipping_address=None)

    def _handle_awaiting_shipping_details(self, chat_id: int, pending: PendingIntent, product: Dict[str, Any], text: str) -> str:
        details = text.strip()[:300]
        address = shipping_address_for(pending.shipping_method, address=details, meetup_area=details)
        if address is None:
            return "Necesito la dirección o el punto de entrega para continuar."
        return self._ask_final(chat_id, pending, product, "Gracias. ", shipping_address=address)

    def _ask_final(self, chat_id: int, pending: PendingIntent, product: Dict[str, Any], lead: str, **fields) -> str:
        intent = self.tracker.advance(chat_id, pending, AWAITING_FINAL_CONFIRM, **fields)
        return lead + order_summary(intent, product)

    def _handle_awaiting_final_confirm(self, chat_id: int, pending: PendingIntent, product: Dict[str, Any], text: str) -> str:
        if is_affirmative(text):
            return self._confirm_express(chat_id, pending, product)
        return order_summary(pending, product)

    def _confirm_express(self, chat_id: int, pending: PendingIntent, product: Dict[str, Any]) -> str:
        result = self._engine(chat_id).express_checkout(
            product["id"],
            pending.qty,
            payment_method=pending.payment_method,
            shipping_method=pending.shipping_method,
            shipping_address=pending.shipping_address,
            customer_name=pending.customer_name,
            customer_ref=str(chat_id),
        )
        # cleared whatever the outcome; on a stock race the user starts over
        self._reset(chat_id)
        if not result["ok"]:
            if "available" not in result:
                logger.info("[PENDING] chat=%s express checkout rejected: %s", chat_id, result["error"])
                return f"{result['error']} Intentemos de nuevo."
            available = result["available"]
            logger.info("[PENDING] chat=%s express checkout failed, available=%s", chat_id, available)
            return f"Ya no tengo stock suficiente de {product['name']}. Disponible ahora: {available}."

        sale = result["sale"]
        total = price_str(sale["total_cents"])
        parts = [f"Listo, {pending.customer_name}." if pending.customer_name else "Listo."]
        parts.append(f"Registré tu pedido #{sale['id']}: {pending.qty} × {product['name']} por ${total}.")
        if pending.payment_method:
            parts.append(f"Pago: {PAYMENT_LABELS.get(pending.payment_method, pending.payment_method)}.")
        if pending.shipping_method:
            parts.append(f"Entrega: {SHIPPING_LABELS.get(pending.shipping_method, pending.shipping_method)}.")
        parts.append("Queda pendiente de pago.")
        return " ".join(parts)

    # --- candidates ------------------------------------------------------
    def _select(self, chat_id: int, product: Dict[str, Any], text: str) -> str:
        if product["stock"] <= 0:
            return no_stock_text(product)
        if wants_all_available(text):
            return self._offer(chat_id, product, product["stock"])
        qty = quantity_in(text)
        if qty:
            return self._offer(chat_id, product, qty)
        self.tracker.await_quantity(chat_id, product["id"], product["sku"])
        return (
            f"Perfecto, {product['name']} (SKU {product['sku']}) está a ${price_str(product['price_cents'])}. "
            "¿Cuántas unidades necesitas?"
        )

    def _search(self, text: str, limit: int) -> List[Dict[str, Any]]:
        results = self.store.search_by_text(self.bot_id, text, limit=limit)
        if not results:
            tokens = extract_keywords(text)
            if tokens:
                results = self.store.search_by_keywords(self.bot_id, tokens, limit=limit)
        return results

    def _handle_candidates(self, chat_id: int, candidates: List[Dict[str, Any]], text: str) -> Optional[str]:
        parsed = parse_order(text)
        if parsed and not parsed.sku.isdigit() and all(c["sku"] != parsed.sku for c in candidates):
            # the message names another SKU
            return None

        if len(candidates) == 1:
            product = self._product(candidates[0]["id"])
            if product is None:
                self.tracker.clear_candidates(chat_id)
                return None
            if wants_all_available(text) or quantity_in(text) or is_affirmative(text) or detect_intent(text) == "buy":
                return self._select(chat_id, product, text)
            return None

        idx = parse_ordinal_index(text)
        if idx is not None and idx < len(candidates):
            product = self._product(candidates[idx]["id"])
            if product:
                return self._select(chat_id, product, text)

        chosen = self._narrow(candidates, text)
        if chosen:
            product = self._product(chosen["id"])
            if product:
                return self._select(chat_id, product, text)
        return None

    def _narrow(self, candidates: List[Dict[str, Any]], text: str) -> Optional[Dict[str, Any]]:
        ids = {c["id"] for c in candidates}
        results = self._search(text, max(len(candidates), SEARCH_LIMIT))
        inter = [r for r in results if r["id"] in ids]
        if len(inter) == 1:
            return inter[0]
        if len(inter) > 1:
            tokens = norm_tokens(extract_keywords(text))
            strong = pick_strong_top(inter, tokens)
            if strong:
                return strong
            strict = [p for p in inter if tokens_in_text(tokens, p["name"]) or tokens_in_text(tokens, p.get("description"))]
            if len(strict) == 1:
                return strict[0]
        return None

    # --- direct order / listing / search --------------------------------
    def _handle_direct_order(self, chat_id: int, sku: str, qty: int) -> Optional[str]:
        product = self.store.find_product(self.bot_id, sku)
        if product is None:
            if sku.isdigit():
                return None
            return f"No encontré el SKU {sku}."
        p = product_to_dict(product)
        if p["stock"] <= 0:
            return f"{p['name']} está agotado actualmente."
        self.tracker.remember_candidates(chat_id, [p])
        return self._offer(chat_id, p, qty)

    def _show_inventory(self, chat_id: int) -> str:
        in_stock = self.store.list_in_stock(self.bot_id, limit=8)
        if not in_stock:
            return EMPTY_STOCK_TEXT
        self.tracker.remember_candidates(chat_id, in_stock)
        first = in_stock[0]
        return (
            f"Esto es lo que tengo disponible:\n{list_lines(in_stock)}\n\n"
            f"Elige por SKU o nombre (ej: {first['sku']} o \"{first['name']}\")"
        )

    def _handle_search(self, chat_id: int, intent: str, text: str) -> str:
        results = self._search(text, SEARCH_LIMIT)

        if intent == "buy" and results:
            strong = pick_strong_top(results, norm_tokens(extract_keywords(text)))
            qty = quantity_in(text)
            if strong and qty:
                if strong["stock"] <= 0:
                    return f"{strong['name']} está agotado actualmente."
                self.tracker.remember_candidates(chat_id, [strong])
                return self._offer(chat_id, strong, qty)

        if not results:
            return NOT_FOUND_TEXT

        if len(results) == 1:
            p = results[0]
            if p["stock"] <= 0:
                return f"{p['name']} está agotado actualmente."
            self.tracker.remember_candidates(chat_id, [p])
            if intent == "ask_price":
                return f"{p['name']} (SKU {p['sku']}) cuesta ${price_str(p['price_cents'])}."
            if intent in ("ask_stock", "ask_availability"):
                return f"Sí, tengo {p['stock']} disponibles de {p['name']} (SKU {p['sku']}). Precio: ${price_str(p['price_cents'])}."
            if intent == "buy":
                self.tracker.await_quantity(chat_id, p["id"], p["sku"])
                return (
                    f"Perfecto, {p['name']} (SKU {p['sku']}) está a ${price_str(p['price_cents'])}. "
                    "¿Cuántas unidades necesitas?"
                )

        self.tracker.remember_candidates(chat_id, results)
        first = results[0]
        tail = " y dime cuántas" if intent == "buy" else ""
        return (
            f"Encontré varias opciones:\n{list_lines(results)}\n\n"
            f"Elige por SKU o nombre (ej: {first['sku']} o \"{first['name']}\"){tail}."
        )

    # --- agent fallback --------------------------------------------------
    def _llm(self):
        if self.llm is None and Config.has_llm():
            from .generate import GenerationClient
            self.llm = GenerationClient()
        return self.llm

    def _agent_reply(self, chat_id: int, text: str, user_msg_id: int) -> str:
        llm = self._llm()
        if llm is None:
            return HELP_TEXT

        history = [m for m in self.store.recent_messages(chat_id, Config.HISTORY_MESSAGES) if m.id != user_msg_id]
        prior = [
            {"role": "user" if m.role == "user" else "assistant", "content": m.content}
            for m in history
        ]
        agent = SalesAgent(llm, ToolContext(db=self.db, bot_id=self.bot_id, chat_id=chat_id), registry=self.registry)
        result = agent.run_turn(text, prior)
        return (result.content or "").strip() or "¿En qué te puedo ayudar?"
