"""Cart lifecycle and transactional checkout for one (bot, chat).

Every operation returns a result dict with an ``ok`` flag. Business failures
(unknown SKU, insufficient stock, missing checkout data) are reported in the
result; database errors propagate to the caller.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..app.config import Config
from ..data.inventory_store import InventoryStore
from ..data.models import Cart, CartItem, CartStatus, LedgerReason, Sale, SaleStatus
from ..utils.logger import get_logger
from ..utils.security import mask_pii

logger = get_logger("checkout")

# allowed Sale transitions
SALE_TRANSITIONS = {
    SaleStatus.pending_payment: {SaleStatus.paid, SaleStatus.cancelled},
    SaleStatus.paid: set(),
    SaleStatus.cancelled: set(),
}

REQUIRED_FIELDS = ("payment", "shipping", "contact")


class CheckoutAborted(Exception):
    """Raised inside the sale transaction; carries the failure result."""

    def __init__(self, result: Dict[str, Any]):
        super().__init__(result.get("error"))
        self.result = result


def cart_to_dict(cart: Cart) -> Dict[str, Any]:
    return {
        "id": cart.id,
        "status": cart.status.value if cart.status else None,
        "items": [
            {
                "product_id": it.product_id,
                "sku": it.sku,
                "name": it.name_snapshot,
                "price_cents": it.price_cents_snapshot,
                "qty": it.qty,
                "line_total_cents": it.price_cents_snapshot * it.qty,
            }
            for it in cart.items
        ],
        "subtotal_cents": cart.subtotal_cents or 0,
        "payment_method": cart.payment_method,
        "shipping_method": cart.shipping_method,
        "shipping_address": cart.shipping_address,
        "contact": {
            "name": cart.contact_name,
            "phone": cart.contact_phone,
            "notes": cart.contact_notes,
        },
    }


def sale_to_dict(sale: Sale) -> Dict[str, Any]:
    return {
        "id": sale.id,
        "status": sale.status.value if sale.status else None,
        "chat_id": sale.chat_id,
        "cart_id": sale.cart_id,
        "total_cents": sale.total_cents,
        "payment_method": sale.payment_method,
        "shipping_method": sale.shipping_method,
        "shipping_address": sale.shipping_address,
        "customer": {
            "name": sale.customer_name,
            "phone": sale.customer_phone,
            "notes": sale.customer_notes,
            "ref": sale.customer_ref,
        },
        "items": [
            {
                "product_id": it.product_id,
                "sku": it.sku,
                "name": it.name,
                "unit_price_cents": it.unit_price_cents,
                "qty": it.qty,
            }
            for it in sale.items
        ],
    }


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def shipping_address_for(method: str, address: Optional[str] = None, meetup_area: Optional[str] = None) -> Optional[str]:
    """Address stored for a shipping method: the street address for home
    delivery, ``"Punto medio: <area>"`` for a meetup, nothing for pickup."""
    if method == "domicilio":
        return None if _blank(address) else address.strip()
    if method == "punto_medio":
        return None if _blank(meetup_area) else f"Punto medio: {meetup_area.strip()}"
    return None


class CheckoutEngine:
    """Cart and checkout operations scoped to a bot and a chat."""

    def __init__(self, db: Session, bot_id: int, chat_id: Optional[int] = None, max_qty: Optional[int] = None):
        self.db = db
        self.store = InventoryStore(db)
        self.bot_id = bot_id
        self.chat_id = chat_id
        self.max_qty = max_qty or Config.CART_MAX_QTY

    # --- cart ---------------------------------------------------------
    def get_or_create_open_cart(self) -> Cart:
        cart = self.store.find_open_cart(self.bot_id, self.chat_id)
        if cart:
            return cart
        try:
            cart = self.store.create_cart(self.bot_id, self.chat_id)
            self.db.commit()
        except IntegrityError:
            # a concurrent request created the open cart first
            self.db.rollback()
            cart = self.store.find_open_cart(self.bot_id, self.chat_id)
            if cart is None:
                raise
        return cart

    def get_cart(self) -> Dict[str, Any]:
        return {"ok": True, "cart": cart_to_dict(self.get_or_create_open_cart())}

    def _recompute_subtotal(self, cart: Cart) -> None:
        cart.subtotal_cents = sum(it.price_cents_snapshot * it.qty for it in cart.items)

    def add_item(self, sku: str, qty: int = 1) -> Dict[str, Any]:
        norm_sku = (sku or "").strip().upper()
        if not norm_sku:
            return {"ok": False, "error": "SKU inválido."}
        if qty is None or qty <= 0:
            return {"ok": False, "error": "Cantidad inválida."}
        if qty > self.max_qty:
            return {"ok": False, "error": f"La cantidad máxima por producto es {self.max_qty}.", "max_qty": self.max_qty}

        product = self.store.find_product(self.bot_id, norm_sku)
        if not product:
            return {"ok": False, "error": f"No encontré el SKU {norm_sku}."}

        cart = self.get_or_create_open_cart()
        existing = next((it for it in cart.items if it.product_id == product.id), None)
        stock = product.stock or 0

        if existing:
            available = max(0, stock - existing.qty)
            if existing.qty + qty > self.max_qty:
                return {
                    "ok": False,
                    "error": f"La cantidad máxima por producto es {self.max_qty}.",
                    "max_qty": self.max_qty,
                    "in_cart": existing.qty,
                }
            if qty > available:
                return {"ok": False, "error": "Stock insuficiente.", "available": available, "in_cart": existing.qty}
            existing.qty += qty
            existing.name_snapshot = product.name
            existing.price_cents_snapshot = product.price_cents
        else:
            if qty > stock:
                return {"ok": False, "error": "Stock insuficiente.", "available": stock}
            cart.items.append(
                CartItem(
                    product_id=product.id,
                    sku=product.sku,
                    name_snapshot=product.name,
                    price_cents_snapshot=product.price_cents,
                    qty=qty,
                )
            )

        self._recompute_subtotal(cart)
        self.db.commit()
        logger.info("[CART] chat=%s add %s x%s subtotal=%s", self.chat_id, norm_sku, qty, cart.subtotal_cents)
        return {"ok": True, "cart": cart_to_dict(cart)}

    def set_payment_method(self, method: str) -> Dict[str, Any]:
        allowed = self.store.payment_methods(self.bot_id)
        key = (method or "").strip().lower()
        if key not in allowed:
            return {"ok": False, "error": "Método de pago no disponible.", "allowed": allowed}
        cart = self.store.update_cart(self.get_or_create_open_cart(), payment_method=key)
        self.db.commit()
        return {"ok": True, "cart": cart_to_dict(cart)}

    def set_shipping_method(self, method: str, address: Optional[str] = None, meetup_area: Optional[str] = None) -> Dict[str, Any]:
        allowed, _config = self.store.shipping_settings(self.bot_id)
        key = (method or "").strip().lower()
        if key not in allowed:
            return {"ok": False, "error": "Método de envío no disponible.", "allowed": allowed}

        normalized = shipping_address_for(key, address, meetup_area)
        cart = self.store.update_cart(self.get_or_create_open_cart(), shipping_method=key, shipping_address=normalized)
        self.db.commit()
        address_ok = not (key == "domicilio" and normalized is None)
        return {"ok": True, "address_ok": address_ok, "cart": cart_to_dict(cart)}

    def set_contact(self, name: Optional[str] = None, phone: Optional[str] = None, notes: Optional[str] = None) -> Dict[str, Any]:
        fields = {}
        if not _blank(name):
            fields["contact_name"] = name.strip()
        if not _blank(phone):
            fields["contact_phone"] = phone.strip()
        if not _blank(notes):
            fields["contact_notes"] = notes.strip()
        cart = self.store.update_cart(self.get_or_create_open_cart(), **fields)
        self.db.commit()
        logger.info("[CART] chat=%s contact phone=%s", self.chat_id, mask_pii(cart.contact_phone or ""))
        return {"ok": True, "cart": cart_to_dict(cart)}

    # --- checkout -----------------------------------------------------
    def _missing_fields(self, cart: Cart) -> List[str]:
        missing = []
        if _blank(cart.payment_method):
            missing.append("payment")
        if _blank(cart.shipping_method):
            missing.append("shipping")
        if _blank(cart.contact_name) and _blank(cart.contact_phone):
            missing.append("contact")
        return missing

    def _replay(self, idempotency_key: Optional[str]) -> Optional[Dict[str, Any]]:
        if not idempotency_key:
            return None
        sale = self.store.find_sale_by_key(self.chat_id, idempotency_key)
        if sale is None:
            return None
        logger.info("[CHECKOUT] chat=%s replay key=%s sale=%s", self.chat_id, idempotency_key, sale.id)
        return {"ok": True, "idempotent": True, "sale": sale_to_dict(sale)}

    def _commit_sale(self, lines: List[Dict[str, Any]], cart: Optional[Cart] = None,
                     idempotency_key: Optional[str] = None, **sale_fields) -> Dict[str, Any]:
        """Create the sale, decrement stock and write the ledger in one transaction."""
        try:
            for line in lines:
                product = self.store.find_product_by_id(self.bot_id, line["product_id"])
                if product is None:
                    raise CheckoutAborted({"ok": False, "error": f"El producto {line['sku']} ya no está disponible."})
                if (product.stock or 0) < line["qty"]:
                    raise CheckoutAborted({
                        "ok": False,
                        "error": f"Stock insuficiente para {line['sku']}.",
                        "sku": line["sku"],
                        "available": product.stock or 0,
                    })

            total = sum(line["unit_price_cents"] * line["qty"] for line in lines)
            sale = self.store.create_sale_with_items(
                lines,
                bot_id=self.bot_id,
                chat_id=self.chat_id,
                cart_id=cart.id if cart else None,
                status=SaleStatus.pending_payment,
                total_cents=total,
                idempotency_key=idempotency_key,
                **sale_fields,
            )

            for line in lines:
                if self.store.conditional_decrement_stock(line["product_id"], self.bot_id, line["qty"]) != 1:
                    raise CheckoutAborted({
                        "ok": False,
                        "error": f"Stock insuficiente para {line['sku']}.",
                        "sku": line["sku"],
                        "available": self.store.current_stock(line["product_id"]),
                    })
                self.store.append_ledger_entry(self.bot_id, line["product_id"], -line["qty"], LedgerReason.sale, sale.id)

            if cart is not None:
                cart.status = CartStatus.locked
            self.db.commit()
        except CheckoutAborted as e:
            self.db.rollback()
            logger.warning("[CHECKOUT] chat=%s aborted: %s", self.chat_id, e.result.get("error"))
            return e.result
        except IntegrityError:
            self.db.rollback()
            # a concurrent submit with the same key won the insert
            replay = self._replay(idempotency_key)
            if replay:
                return replay
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info("[CHECKOUT] chat=%s sale=%s total=%s items=%s", self.chat_id, sale.id, total, len(lines))
        return {"ok": True, "sale": sale_to_dict(sale)}

    def submit_checkout(self, confirm: bool = True, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        if not confirm:
            return {"ok": False, "error": "Se requiere confirmación para registrar la compra."}

        replay = self._replay(idempotency_key)
        if replay:
            return replay

        cart = self.store.find_open_cart(self.bot_id, self.chat_id)
        if cart is None or not cart.items:
            return {"ok": False, "error": "El carrito está vacío."}

        missing = self._missing_fields(cart)
        if missing:
            return {"ok": False, "error": "Faltan datos para completar la compra.", "next_required": missing}

        lines = [
            {
                "product_id": it.product_id,
                "sku": it.sku,
                "name": it.name_snapshot,
                "unit_price_cents": it.price_cents_snapshot,
                "qty": it.qty,
            }
            for it in cart.items
        ]
        return self._commit_sale(
            lines,
            cart=cart,
            idempotency_key=idempotency_key,
            payment_method=cart.payment_method,
            shipping_method=cart.shipping_method,
            shipping_address=cart.shipping_address,
            customer_name=cart.contact_name,
            customer_phone=cart.contact_phone,
            customer_notes=cart.contact_notes,
        )

    def express_checkout(self, product_id: int, qty: int, payment_method: Optional[str] = None,
                         shipping_method: Optional[str] = None, shipping_address: Optional[str] = None,
                         customer_name: Optional[str] = None, customer_ref: Optional[str] = None) -> Dict[str, Any]:
        """One-item sale without a cart, at the current price.

        Payment and shipping methods, when given, must be among the bot's
        configured ones.
        """
        if qty is None or qty <= 0:
            return {"ok": False, "error": "Cantidad inválida."}
        if payment_method is not None:
            allowed = self.store.payment_methods(self.bot_id)
            if payment_method not in allowed:
                return {"ok": False, "error": "Método de pago no disponible.", "allowed": allowed}
        if shipping_method is not None:
            allowed, _config = self.store.shipping_settings(self.bot_id)
            if shipping_method not in allowed:
                return {"ok": False, "error": "Método de envío no disponible.", "allowed": allowed}
        product = self.store.find_product_by_id(self.bot_id, product_id)
        if product is None:
            return {"ok": False, "error": "Producto no encontrado.", "available": 0}
        line = {
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "unit_price_cents": product.price_cents,
            "qty": qty,
        }
        return self._commit_sale(
            [line],
            payment_method=payment_method,
            shipping_method=shipping_method,
            shipping_address=shipping_address,
            customer_name=customer_name,
            customer_ref=customer_ref,
        )

    # --- sale administration -----------------------------------------
    def _transition(self, sale_id: int, target: SaleStatus) -> Dict[str, Any]:
        sale = self.store.find_sale(self.bot_id, sale_id)
        if sale is None:
            return {"ok": False, "error": "Venta no encontrada.", "not_found": True}
        if target not in SALE_TRANSITIONS.get(sale.status, set()):
            return {
                "ok": False,
                "error": "Solo se pueden modificar ventas pendientes de pago.",
                "conflict": True,
                "status": sale.status.value,
            }
        return {"ok": True, "sale": sale}

    def cancel_sale(self, sale_id: int) -> Dict[str, Any]:
        check = self._transition(sale_id, SaleStatus.cancelled)
        if not check["ok"]:
            return check
        sale = check["sale"]
        try:
            restored = 0
            for item in sale.items:
                if self.store.increment_stock(item.product_id, self.bot_id, item.qty) != 1:
                    logger.warning("[CHECKOUT] sale=%s could not restore product=%s", sale.id, item.product_id)
                    continue
                self.store.append_ledger_entry(self.bot_id, item.product_id, item.qty, LedgerReason.cancel, sale.id)
                restored += 1
            sale.status = SaleStatus.cancelled
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("[CHECKOUT] sale=%s cancelled, %s items restored", sale.id, restored)
        return {"ok": True, "sale": sale_to_dict(sale), "restored_items": restored}

    def mark_paid(self, sale_id: int) -> Dict[str, Any]:
        check = self._transition(sale_id, SaleStatus.paid)
        if not check["ok"]:
            return check
        sale = check["sale"]
        sale.status = SaleStatus.paid
        self.db.commit()
        logger.info("[CHECKOUT] sale=%s paid", sale.id)
        return {"ok": True, "sale": sale_to_dict(sale)}

    def list_sales(self, status: Optional[str] = None, limit: int = 50) -> Dict[str, Any]:
        status_enum = SaleStatus(status) if status else None
        sales = self.store.list_sales(self.bot_id, status=status_enum, limit=limit)
        return {"ok": True, "items": [sale_to_dict(s) for s in sales]}
