"""Tool definition, per-request context and registry errors."""
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Type

from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..data.inventory_store import InventoryStore
from ..orders.cart_engine import CheckoutEngine


@dataclass
class ToolContext:
    """Everything a handler may touch while serving one chat turn."""
    db: Session
    bot_id: int
    chat_id: int

    @property
    def store(self) -> InventoryStore:
        return InventoryStore(self.db)

    @property
    def engine(self) -> CheckoutEngine:
        return CheckoutEngine(self.db, self.bot_id, self.chat_id)


@dataclass
class Tool:
    name: str
    description: str
    input_model: Type[BaseModel]
    handler: Callable[[BaseModel, ToolContext], Any]


class ToolError(Exception):
    pass


class InvalidToolNameError(ToolError):
    pass


class ToolNotRegisteredError(ToolError):
    def __init__(self, name: str):
        super().__init__(f"Tool no registrada: {name}")
        self.name = name


class ToolArgumentsError(ToolError):
    message = "Argumentos inválidos para la herramienta"

    def __init__(self, tool: str, issues: Optional[List[dict]] = None):
        super().__init__(f"{self.message} ({tool})")
        self.tool = tool
        self.issues = issues or []

    def to_result(self) -> dict:
        return {"ok": False, "error": self.message, "issues": self.issues}
