from importlib import import_module
from typing import Any, Dict, Optional, cast
import inspect

from relay_core.core.config import get_setting, load_settings
from relay_core.core.interfaces import ModelProvider, RemoteToolHost
from relay_core.core.logging import logger


def load(dotted: str, **kwargs: Any) -> Any:
    """Import a dotted path and instantiate the class if callable.
    Filters kwargs to match the constructor signature (unless **kwargs is accepted)."""
    module, cls = dotted.rsplit(".", 1)
    mod = import_module(module)
    obj = getattr(mod, cls)

    if isinstance(obj, type):
        sig = inspect.signature(obj.__init__)
        params = list(sig.parameters.values())
        accepts_kwargs = any(p.kind == p.VAR_KEYWORD for p in params)
        if accepts_kwargs:
            return obj(**kwargs)
        allowed = {p.name for p in params if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY) and p.name != "self"}
        dropped = set(kwargs) - allowed
        if dropped:
            logger.debug(f"Ignoring unsupported args for {dotted}: {sorted(dropped)}")
        filtered = {k: v for k, v in kwargs.items() if k in allowed}
        return obj(**filtered)

    return obj


class AgentFactory:
    """Builds the model provider, tools and a ready UnifiedAgent from settings."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config if config is not None else load_settings()
        self._provider: ModelProvider | None = None

    def get_provider(self) -> ModelProvider:
        if not self._provider:
            model_cfg = self.config.get("providers", {}).get("model", {})
            impl = model_cfg.get("impl")
            if not impl:
                raise ValueError("providers.model.impl is not configured")
            args = model_cfg.get("args", {}) or {}
            self._provider = cast(ModelProvider, load(impl, **args))
        return self._provider

    def get_tools(self):
        from relay_core.core.tool_registry import ToolRegistry

        tools_cfg = self.config.get("tools", {}) or {}
        registry = ToolRegistry(tools_cfg.get("registry", []) or [], tools_cfg.get("enabled", []) or [])
        return registry.functions()

    def get_agent(
        self,
        remote_host: Optional[RemoteToolHost] = None,
        provider: Optional[ModelProvider] = None,
        max_recursion_depth: Optional[int] = None,
    ):
        from relay_core.protocol.orchestration.orchestrator import UnifiedAgent

        max_depth = max_recursion_depth
        if max_depth is None:
            max_depth = get_setting(self.config, "agent.max_recursion_depth", 25)
        return UnifiedAgent(
            provider or self.get_provider(),
            functions=self.get_tools(),
            max_recursion_depth=max_depth,
            remote_host=remote_host,
            settings=self.config,
        )
