"""Tool-calling sales agent: bounded model <-> tool round trips."""
import json
from typing import Any, Dict, List, Optional

from ..app.config import Config
from ..schemas.io_models import TurnResult
from ..tools.registry import ToolRegistry, build_default_registry
from ..tools.types import ToolArgumentsError, ToolContext, ToolNotRegisteredError
from ..utils.logger import get_logger

logger = get_logger("agent")

NO_RESPONSE = "No pude obtener una respuesta."
HOPS_EXHAUSTED = "No pude completar la consulta."
INVALID_CALL = "Llamada a herramienta inválida: se espera una función con nombre."

SYSTEM_PROMPT = """
Eres {bot_name}, asistente de ventas de la tienda.

REGLAS ESTRICTAS:
1) NUNCA inventes SKUs, nombres, precios ni stock.
2) Para catálogo (nombre, precio, stock, SKU) SIEMPRE usa las tools de inventario.
3) Para configuración (métodos de pago y envío) SIEMPRE usa get_payment_methods y get_shipping_methods.
4) Flujo de compra obligatorio (carrito):
   - Cuando el usuario pida comprar o agregar cantidades: usa cart_add_item y luego cart_get.
   - Antes de confirmar debes tener payment_method, shipping_method y contacto. Si falta algo, PREGUNTA y llama cart_set_*.
   - Para registrar la compra SIEMPRE llama checkout_submit. No confirmes sin esa tool.
5) No calcules totales manualmente. Léelos del carrito o de la venta.
6) Si el usuario pide ver todo el catálogo sin términos de búsqueda, usa list_all_products (in_stock_only=true si pide "disponible").
7) Responde breve y claro, en español.
""".strip()


def parse_tool_arguments(raw: Any) -> Dict[str, Any]:
    """Malformed or non-object argument JSON becomes an empty argument set."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


class SalesAgent:
    name = "sales"

    def __init__(self, llm, ctx: ToolContext, registry: Optional[ToolRegistry] = None,
                 max_tool_hops: Optional[int] = None, bot_name: Optional[str] = None):
        self.llm = llm
        self.ctx = ctx
        self.registry = registry or build_default_registry()
        self.max_tool_hops = max_tool_hops or Config.MAX_TOOL_HOPS
        self.system_prompt = SYSTEM_PROMPT.format(bot_name=bot_name or Config.BOT_NAME)

    def _call_tool(self, name: str, args: Dict[str, Any]) -> Any:
        try:
            return self.registry.dispatch(name, args, self.ctx)
        except ToolArgumentsError as e:
            return e.to_result()
        except ToolNotRegisteredError as e:
            return {"ok": False, "error": str(e)}

    def run_turn(self, user_message: str, prior_messages: Optional[List[Dict[str, str]]] = None) -> TurnResult:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": self.system_prompt}]
        for m in prior_messages or []:
            messages.append({"role": m["role"], "content": m["content"]})
        messages.append({"role": "user", "content": user_message})

        functions = self.registry.export_catalog()

        for hop in range(self.max_tool_hops):
            msg = self.llm.complete(messages, tools=functions, tool_choice="auto", temperature=Config.LLM_TEMPERATURE)
            if not msg:
                logger.warning("[AGENT] hop=%s no message from model", hop)
                return TurnResult(content=NO_RESPONSE, messages=messages)

            tool_calls = msg.get("tool_calls") or []
            if not tool_calls:
                logger.info("[AGENT] hop=%s final answer", hop)
                return TurnResult(content=msg.get("content") or "", messages=messages)

            # the assistant turn is echoed so every tool result can be correlated
            messages.append({"role": "assistant", "content": msg.get("content") or "", "tool_calls": tool_calls})

            for tc in tool_calls:
                call_id = tc.get("id")
                if not call_id:
                    continue
                fn = tc.get("function") or {}
                tool_name = fn.get("name")
                if tc.get("type", "function") != "function" or not tool_name:
                    logger.warning("[AGENT] hop=%s invalid tool call %s", hop, call_id)
                    result = {"ok": False, "error": INVALID_CALL}
                else:
                    args = parse_tool_arguments(fn.get("arguments"))
                    logger.info("[AGENT] hop=%s tool=%s", hop, tool_name)
                    result = self._call_tool(tool_name, args)
                messages.append({
                    "role": "tool",
                    "tool_call_id": call_id,
                    "content": json.dumps(result, ensure_ascii=False, default=str),
                })

        logger.warning("[AGENT] tool hop limit (%s) reached", self.max_tool_hops)
        return TurnResult(content=HOPS_EXHAUSTED, messages=messages)
