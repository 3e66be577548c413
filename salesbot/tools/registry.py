"""Tool registry: registration, argument validation and dispatch by name."""
import re
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from .types import (
    InvalidToolNameError,
    Tool,
    ToolArgumentsError,
    ToolContext,
    ToolNotRegisteredError,
)
from ..utils.logger import get_logger

logger = get_logger("tools")

INVALID_NAME = re.compile(r"[^A-Za-z0-9_-]")


def _check_name(name: str) -> None:
    if not name or INVALID_NAME.search(name):
        raise InvalidToolNameError(f'Invalid tool name "{name}". Use only letters, numbers, "-" and "_".')


def _parameters(tool: Tool) -> Dict[str, Any]:
    schema = tool.input_model.model_json_schema()
    schema.pop("title", None)
    schema.setdefault("type", "object")
    schema.setdefault("properties", {})
    return schema


class ToolRegistry:
    def __init__(self, tools: Optional[Iterable[Tool]] = None):
        self._tools: Dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> Tool:
        _check_name(tool.name)
        if tool.name in self._tools:
            raise InvalidToolNameError(f'Tool "{tool.name}" is already registered')
        self._tools[tool.name] = tool
        return tool

    def names(self) -> List[str]:
        return list(self._tools)

    def get(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotRegisteredError(name)
        return tool

    def export_catalog(self) -> List[Dict[str, Any]]:
        """Name, description and JSON schema parameters of every tool."""
        catalog = []
        for tool in self._tools.values():
            _check_name(tool.name)
            catalog.append({
                "name": tool.name,
                "description": tool.description,
                "parameters": _parameters(tool),
            })
        return catalog

    def dispatch(self, name: str, raw_args: Any, ctx: ToolContext) -> Any:
        tool = self.get(name)
        try:
            args = tool.input_model.model_validate(raw_args if isinstance(raw_args, dict) else {})
        except ValidationError as e:
            issues = e.errors(include_url=False, include_context=False, include_input=False)
            logger.info("[TOOLS] %s rejected arguments: %s", name, issues)
            raise ToolArgumentsError(name, issues)
        logger.info("[TOOLS] chat=%s -> %s", ctx.chat_id, name)
        return tool.handler(args, ctx)


def build_default_registry() -> ToolRegistry:
    from .catalog import CATALOG_TOOLS
    from .checkout import CHECKOUT_TOOLS
    return ToolRegistry(CATALOG_TOOLS + CHECKOUT_TOOLS)
