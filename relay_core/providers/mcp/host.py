"""
Remote tool host backed by an MCP client session.

Works with `mcp.ClientSession` (install the `mcp` extra) or anything exposing
the same `list_tools()` / `call_tool(name, arguments)` coroutines. Opening
and initializing the session is left to the caller.
"""
import json
from typing import TYPE_CHECKING, Any, Dict, List

from relay_core.core.interfaces import RemoteToolHost
from relay_core.core.logging import logger

if TYPE_CHECKING:
    from mcp import ClientSession


class McpToolError(RuntimeError):
    """The remote tool reported a failure (`isError`)."""


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class McpToolHost(RemoteToolHost):
    def __init__(self, session: "ClientSession"):
        self.session = session

    async def list_tools(self) -> List[Dict[str, Any]]:
        listed = await self.session.list_tools()
        tools = []
        for tool in _field(listed, "tools", []) or []:
            tools.append(
                {
                    "name": _field(tool, "name"),
                    "description": _field(tool, "description") or "",
                    "parameters": _field(tool, "inputSchema") or {"type": "object", "properties": {}},
                }
            )
        logger.debug(f"MCP host lists {len(tools)} tools")
        return tools

    async def invoke(self, name: str, arguments: Dict[str, Any]) -> Any:
        result = await self.session.call_tool(name, arguments)
        parts = _field(result, "content", []) or []
        text = "\n".join(_field(p, "text", "") for p in parts if _field(p, "type") == "text")
        if _field(result, "isError", False):
            raise McpToolError(text or f"Remote tool '{name}' failed")

        structured = _field(result, "structuredContent")
        if structured is not None:
            return structured
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
