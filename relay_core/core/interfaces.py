from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

from relay_core.core.types import AgentFunction, ChatOptions, ChatResponse, StreamChunk


class ModelProvider(ABC):
    """
    The base model: a text generation backend.
    Every backend declares explicitly whether it takes tools and system
    messages as structured request fields.
    """

    @abstractmethod
    async def unified_chat(self, prompt: str, options: Optional[ChatOptions] = None) -> ChatResponse:
        """Return one complete response for a prompt"""
        ...

    @abstractmethod
    def unified_chat_stream(
        self, prompt: str, options: Optional[ChatOptions] = None
    ) -> AsyncIterator[StreamChunk]:
        """Return a lazy, finite, non-restartable stream of chunks"""
        ...

    @abstractmethod
    def supports_tools(self, model: Optional[str] = None) -> bool:
        ...

    @abstractmethod
    def supports_system_messages(self, model: Optional[str] = None) -> bool:
        ...

    @abstractmethod
    def get_default_model(self) -> str:
        ...

    def get_model(self, model: Optional[str] = None) -> str:
        return model or self.get_default_model()

    def convert_tools_format(self, tools: List[AgentFunction]) -> Any:
        """Render tools in the backend's native schema (OpenAI style by default)."""
        return [{"type": "function", "function": tool.definition()} for tool in tools]


class RemoteToolHost(ABC):
    """A service exposing discoverable, invokable tools."""

    @abstractmethod
    async def list_tools(self) -> List[Dict[str, Any]]:
        """Return [{name, description, parameters}, ...]"""
        ...

    @abstractmethod
    async def invoke(self, name: str, arguments: Dict[str, Any]) -> Any:
        ...


class Tool(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def schema(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def run(self, *args: Any, **kwargs: Any) -> Any:
        ...
