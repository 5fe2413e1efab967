from typing import Any, Dict, List

from relay_core.core.factory import load
from relay_core.core.logging import logger
from relay_core.core.types import AgentFunction


class ToolRegistry:
    """Loads and provides available tools based on config"""
    def __init__(self, registry_cfg: List[Dict[str, Any]], enabled: List[str]):
        self.tools: Dict[str, Any] = {}
        for tcfg in registry_cfg:
            name = tcfg.get('name')
            if name not in enabled:
                continue
            impl = tcfg.get('impl', '')
            args = tcfg.get('args', {}) or {}
            try:
                tool = load(impl, **args)
            except (ImportError, AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Skipping tool {name} ({impl}): {e}")
                continue
            # exposed name follows the registry entry
            if hasattr(tool, '_registry_name'):
                tool._registry_name = name
            self.tools[name] = tool

    def get(self, name: str) -> Any:
        return self.tools.get(name)

    def all(self) -> Dict[str, Any]:
        return self.tools

    def functions(self) -> List[AgentFunction]:
        return [tool.as_function() for tool in self.tools.values()]
