import asyncio
from typing import AsyncGenerator, Iterable, List, Optional, Union

from relay_core.core.interfaces import ModelProvider
from relay_core.core.types import ChatOptions, ChatResponse, FunctionCall, StreamChunk

Reply = Union[str, ChatResponse, BaseException]


class DummyModel(ModelProvider):
    """Echo model: answers with the first line of the prompt, streamed word by word."""

    def __init__(self, model_name: str = "dummy-echo", delay: float = 0.0):
        self.model_name = model_name
        self.delay = delay

    def _reply(self, prompt: str) -> str:
        lines = prompt.strip().splitlines()
        return f"echo: {lines[0].strip() if lines else ''}"

    async def unified_chat(self, prompt: str, options: Optional[ChatOptions] = None) -> ChatResponse:
        return ChatResponse(content=self._reply(prompt), model=self.get_model(options and options.model))

    async def unified_chat_stream(
        self, prompt: str, options: Optional[ChatOptions] = None
    ) -> AsyncGenerator[StreamChunk, None]:
        """Simulate streaming text chunks based on the prompt"""
        words = self._reply(prompt).split(" ")
        model = self.get_model(options and options.model)
        for i, word in enumerate(words):
            if self.delay:
                await asyncio.sleep(self.delay)
            last = i == len(words) - 1
            yield StreamChunk(content=word if last else word + " ", is_last=last, model=model)

    def supports_tools(self, model: Optional[str] = None) -> bool:
        return False

    def supports_system_messages(self, model: Optional[str] = None) -> bool:
        return False

    def get_default_model(self) -> str:
        return self.model_name


class ScriptedModel(ModelProvider):
    """
    Replays canned replies in order and records every request it receives.
    A reply may be a string, a full ChatResponse (for native function calls)
    or an exception to raise. Once the script runs out the last reply repeats.
    """

    def __init__(
        self,
        replies: Iterable[Reply],
        model_name: str = "scripted",
        chunk_size: Optional[int] = None,
        tools: bool = False,
        system_messages: bool = False,
    ):
        self.replies: List[Reply] = list(replies)
        if not self.replies:
            raise ValueError("ScriptedModel needs at least one reply")
        self.model_name = model_name
        self.chunk_size = chunk_size
        self._tools = tools
        self._system_messages = system_messages
        self.prompts: List[str] = []
        self.options: List[Optional[ChatOptions]] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def _next(self, prompt: str, options: Optional[ChatOptions]) -> ChatResponse:
        idx = min(len(self.prompts), len(self.replies) - 1)
        self.prompts.append(prompt)
        self.options.append(options)
        reply = self.replies[idx]
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, ChatResponse):
            return reply.model_copy(update={"model": reply.model or self.get_model(options and options.model)})
        return ChatResponse(content=reply, model=self.get_model(options and options.model))

    async def unified_chat(self, prompt: str, options: Optional[ChatOptions] = None) -> ChatResponse:
        return self._next(prompt, options)

    async def unified_chat_stream(
        self, prompt: str, options: Optional[ChatOptions] = None
    ) -> AsyncGenerator[StreamChunk, None]:
        response = self._next(prompt, options)
        text = response.content if isinstance(response.content, str) else str(response.content)
        size = self.chunk_size or max(len(text), 1)
        pieces = [text[i : i + size] for i in range(0, len(text), size)] or [""]
        for i, piece in enumerate(pieces):
            last = i == len(pieces) - 1
            calls: Optional[List[FunctionCall]] = response.function_calls if last else None
            yield StreamChunk(content=piece, is_last=last, model=response.model, function_calls=calls)

    def supports_tools(self, model: Optional[str] = None) -> bool:
        return self._tools

    def supports_system_messages(self, model: Optional[str] = None) -> bool:
        return self._system_messages

    def get_default_model(self) -> str:
        return self.model_name
