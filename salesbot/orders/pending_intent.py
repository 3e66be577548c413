"""Per-chat pending purchase intent for the single-item express flow.

States: none (no entry) -> awaiting_quantity -> awaiting_confirmation
-> awaiting_name -> awaiting_payment -> awaiting_shipping
-> [awaiting_shipping_details] -> awaiting_final_confirm -> none.
Pickup skips the shipping details step. The tracker only stores and clears;
the message controller decides the transitions. Candidates listed to the user
are remembered next to the intent so the following message can pick one.
"""
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, List, Optional

from ..app.config import Config
from ..app.session import SessionManager
from ..utils.logger import get_logger

logger = get_logger("pending")

AWAITING_QUANTITY = "awaiting_quantity"
AWAITING_CONFIRMATION = "awaiting_confirmation"
AWAITING_NAME = "awaiting_name"
AWAITING_PAYMENT = "awaiting_payment"
AWAITING_SHIPPING = "awaiting_shipping"
AWAITING_SHIPPING_DETAILS = "awaiting_shipping_details"
AWAITING_FINAL_CONFIRM = "awaiting_final_confirm"

STATES = (
    AWAITING_QUANTITY,
    AWAITING_CONFIRMATION,
    AWAITING_NAME,
    AWAITING_PAYMENT,
    AWAITING_SHIPPING,
    AWAITING_SHIPPING_DETAILS,
    AWAITING_FINAL_CONFIRM,
)


@dataclass
class PendingIntent:
    state: str
    product_id: int
    sku: str
    qty: Optional[int] = None
    suggested_qty: Optional[int] = None
    customer_name: Optional[str] = None
    payment_method: Optional[str] = None
    shipping_method: Optional[str] = None
    shipping_address: Optional[str] = None

    @property
    def awaiting_quantity(self) -> bool:
        return self.state == AWAITING_QUANTITY

    @property
    def awaiting_confirmation(self) -> bool:
        return self.state == AWAITING_CONFIRMATION

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingIntent":
        return cls(
            state=data["state"],
            product_id=int(data["product_id"]),
            sku=data["sku"],
            qty=data.get("qty"),
            suggested_qty=data.get("suggested_qty"),
            customer_name=data.get("customer_name"),
            payment_method=data.get("payment_method"),
            shipping_method=data.get("shipping_method"),
            shipping_address=data.get("shipping_address"),
        )


class PendingIntentTracker:
    def __init__(self, sessions: Optional[SessionManager] = None, candidates_ttl: Optional[int] = None):
        self.sessions = sessions or SessionManager()
        self.candidates_ttl = candidates_ttl or Config.CANDIDATES_TTL_SECONDS

    def get(self, chat_id: int) -> Optional[PendingIntent]:
        data = self.sessions.get("pending", chat_id)
        return PendingIntent.from_dict(data) if data else None

    def _save(self, chat_id: int, intent: PendingIntent) -> PendingIntent:
        self.sessions.set("pending", chat_id, asdict(intent))
        logger.info("[PENDING] chat=%s %s sku=%s qty=%s", chat_id, intent.state, intent.sku, intent.qty)
        return intent

    def await_quantity(self, chat_id: int, product_id: int, sku: str, suggested_qty: Optional[int] = None) -> PendingIntent:
        return self._save(chat_id, PendingIntent(AWAITING_QUANTITY, product_id, sku, suggested_qty=suggested_qty))

    def await_confirmation(self, chat_id: int, product_id: int, sku: str, qty: int,
                           suggested_qty: Optional[int] = None) -> PendingIntent:
        return self._save(chat_id, PendingIntent(AWAITING_CONFIRMATION, product_id, sku, qty=qty,
                                                 suggested_qty=suggested_qty))

    def advance(self, chat_id: int, intent: PendingIntent, state: str, **fields) -> PendingIntent:
        """Move a confirmed intent to the next checkout step, keeping what was collected."""
        if state not in STATES:
            raise ValueError(f"unknown pending state: {state}")
        return self._save(chat_id, replace(intent, state=state, suggested_qty=None, **fields))

    def clear(self, chat_id: int) -> None:
        logger.info("[PENDING] chat=%s cleared", chat_id)
        self.sessions.delete("pending", chat_id)

    # candidates
    def remember_candidates(self, chat_id: int, products: List[Dict[str, Any]]) -> None:
        items = [{"id": p["id"], "sku": p["sku"], "name": p["name"]} for p in products]
        self.sessions.set("candidates", chat_id, {"items": items}, ttl_seconds=self.candidates_ttl)

    def candidates(self, chat_id: int) -> List[Dict[str, Any]]:
        data = self.sessions.get("candidates", chat_id)
        return list(data.get("items", [])) if data else []

    def clear_candidates(self, chat_id: int) -> None:
        self.sessions.delete("candidates", chat_id)

    def forget_chat(self, chat_id: int) -> None:
        self.sessions.clear_chat(chat_id)
