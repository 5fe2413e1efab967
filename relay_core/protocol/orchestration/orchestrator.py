import json
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple, Union

from relay_core.core.config import get_setting, load_settings
from relay_core.core.interfaces import ModelProvider, RemoteToolHost
from relay_core.core.logging import logger
from relay_core.core.types import (
    AgentCallback,
    AgentEventType,
    AgentFunction,
    ChatOptions,
    ChatResponse,
    FunctionCall,
    StreamChunk,
)
from relay_core.protocol.json_repair import coerce_json
from relay_core.protocol.orchestration.dedup import ContentDeduplicator
from relay_core.protocol.orchestration.emitter import AgentEventEmitter
from relay_core.protocol.orchestration.tool_runner import FunctionCallExecutor
from relay_core.protocol.parsers.tagged import (
    START_TAG,
    has_complete_function_call_tags,
    merge_calls,
    parse_function_calls,
    remove_tagged_function_calls,
)
from relay_core.protocol.prompts import build_results_summary, create_followup_prompt, prepare_request

OptionsArg = Union[ChatOptions, Dict[str, Any], None]


def depth_notice(max_depth: int) -> str:
    return f"Maximum recursion depth ({max_depth}) reached. The result may be incomplete."


def _as_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return json.dumps(content, ensure_ascii=False, default=str)


def _clean(content: Any) -> str:
    return remove_tagged_function_calls(_as_text(content)).strip()


def _accumulate(completed: List[FunctionCall], batch: List[FunctionCall]) -> List[FunctionCall]:
    seen = {c.id for c in completed}
    return completed + [c for c in batch if c.id not in seen]


def _split_flushable(buffer: str) -> Tuple[str, str]:
    """
    Split a stream buffer into (text safe to emit, text to hold back).
    An open marker span and a trailing partial start marker are held back.
    """
    idx = buffer.find(START_TAG)
    if idx != -1:
        return buffer[:idx], buffer[idx:]
    for k in range(min(len(START_TAG) - 1, len(buffer)), 0, -1):
        if buffer.endswith(START_TAG[:k]):
            return buffer[:-k], buffer[-k:]
    return buffer, ""


class UnifiedAgent:
    """
    Drives the tool-use loop on top of a base model:
    model response -> tool calls -> follow-up prompt with results -> model ...
    until the model stops asking for tools or the recursion bound is hit.

    The agent holds configuration only; every request keeps its own depth
    counter, accumulator and duplicate-suppression history.
    """

    def __init__(
        self,
        model: ModelProvider,
        functions: Optional[List[AgentFunction]] = None,
        max_recursion_depth: Optional[int] = None,
        remote_host: Optional[RemoteToolHost] = None,
        settings: Optional[Dict[str, Any]] = None,
    ):
        self.model = model
        self.functions: List[AgentFunction] = list(functions or [])
        self.remote_host = remote_host
        self.settings = settings if settings is not None else load_settings()

        if max_recursion_depth is None:
            max_recursion_depth = get_setting(self.settings, "agent.max_recursion_depth", 25)
        self.max_recursion_depth = int(max_recursion_depth)
        self.min_flush_chars = int(get_setting(self.settings, "agent.stream.min_flush_chars", 20))
        self.min_echo_chars = int(get_setting(self.settings, "agent.dedup.min_echo_chars", 16))
        self.executor = FunctionCallExecutor(timeout=get_setting(self.settings, "limits.tool_timeout_sec"))

    # -- tool management ---------------------------------------------------

    def add_function(self, fn: AgentFunction) -> "UnifiedAgent":
        self.functions = [f for f in self.functions if f.name != fn.name] + [fn]
        return self

    def add_functions(self, fns: List[AgentFunction]) -> "UnifiedAgent":
        for fn in fns:
            self.add_function(fn)
        return self

    def use_remote_host(self, host: Optional[RemoteToolHost]) -> "UnifiedAgent":
        self.remote_host = host
        return self

    async def get_all_tools(self) -> List[AgentFunction]:
        """Local functions plus tools discovered on the remote host; local names win."""
        tools = list(self.functions)
        if self.remote_host is None:
            return tools
        local = {f.name for f in tools}
        for spec in await self.remote_host.list_tools():
            name = spec.get("name")
            if not name or name in local:
                continue
            tools.append(
                AgentFunction(
                    name=name,
                    description=spec.get("description") or "",
                    parameters=spec.get("parameters") or {},
                )
            )
        return tools

    def get_model(self, model: Optional[str] = None) -> str:
        return self.model.get_model(model)

    def get_default_model(self) -> str:
        return self.model.get_default_model()

    # -- shared helpers ----------------------------------------------------

    def _info(self, prompt: str, opts: ChatOptions, depth: int, **extra: Any) -> Dict[str, Any]:
        info = {"user_prompt": prompt, "system_message": opts.system_message, "depth": depth}
        info.update(extra)
        return info

    async def _run_tools(
        self,
        emitter: AgentEventEmitter,
        tools: List[AgentFunction],
        calls: List[FunctionCall],
        content: str,
        depth: int,
    ) -> List[FunctionCall]:
        await emitter.emit(
            AgentEventType.RECURSION_START,
            {"initial_content": content, "function_calls": calls, "depth": depth},
        )
        return await self.executor.execute(calls, tools, remote_host=self.remote_host, emitter=emitter)

    def _followup(self, prompt: str, opts: ChatOptions, previous: str, completed: List[FunctionCall]) -> str:
        return create_followup_prompt(prompt, previous, build_results_summary(completed), opts.response_format)

    async def _end_recursion(
        self,
        emitter: AgentEventEmitter,
        final_content: Any,
        last_batch: List[FunctionCall],
        completed: List[FunctionCall],
        depth: int,
    ) -> None:
        if depth == 0:
            return
        await emitter.emit(
            AgentEventType.RECURSION_END,
            {
                "final_content": final_content,
                "function_calls": last_batch,
                "depth": depth,
                "completed_function_calls": completed,
            },
        )

    # -- batch ---------------------------------------------------------------

    async def chat(
        self,
        prompt: str,
        options: OptionsArg = None,
        callback: Optional[AgentCallback] = None,
    ) -> ChatResponse:
        """Run the tool loop to completion and return the final response."""
        opts = ChatOptions.coerce(options)
        emitter = AgentEventEmitter(callback)
        logger.info(f"Chat started: tools={len(self.functions)}, max_depth={self.max_recursion_depth}")
        await emitter.emit(AgentEventType.RESPONSE_START, {"prompt": prompt, "options": opts})

        current_prompt, current_options = prompt, opts
        try:
            tools = await self.get_all_tools()
            completed: List[FunctionCall] = []
            last_batch: List[FunctionCall] = []
            depth = 0
            while True:
                # 1. Adapt the request to the backend and ask it
                request = prepare_request(current_prompt, opts, self.model, tools)
                current_prompt, current_options = request.prompt, request.options
                logger.debug(f"chat depth={depth} model={request.model}")
                response = await self.model.unified_chat(request.prompt, request.options)

                # 2. Past the bound the answer is final, whatever it asks for
                if depth > 0 and depth >= self.max_recursion_depth:
                    logger.warning(f"Maximum recursion depth ({self.max_recursion_depth}) reached")
                    final = ChatResponse(
                        content=f"{depth_notice(self.max_recursion_depth)}\n\n{_clean(response.content)}",
                        is_json_response=False,
                        is_last=True,
                        model=response.model or request.model,
                        usage=response.usage,
                        function_calls=completed or None,
                        additional_info=self._info(prompt, opts, depth, max_recursion_depth_reached=True),
                    )
                    return await self._finish(emitter, final, last_batch, completed, depth)

                # 3. No calls means this is the answer
                calls = merge_calls(list(response.function_calls or []), parse_function_calls(response.content))
                if not calls or depth >= self.max_recursion_depth:
                    content, is_json = response.content, response.is_json_response
                    if isinstance(content, str):
                        content = _clean(content)
                    if opts.wants_json and not is_json:
                        content, is_json = coerce_json(content)
                    final = ChatResponse(
                        content=content,
                        is_json_response=is_json,
                        is_last=True,
                        model=response.model or request.model,
                        usage=response.usage,
                        function_calls=completed or None,
                        additional_info={**response.additional_info, **self._info(prompt, opts, depth)},
                    )
                    return await self._finish(emitter, final, last_batch, completed, depth)

                # 4. Run the calls and re-prompt with their results
                last_batch = await self._run_tools(emitter, tools, calls, _as_text(response.content), depth)
                completed = _accumulate(completed, last_batch)
                current_prompt = self._followup(prompt, opts, _clean(response.content), completed)
                depth += 1
        except Exception as e:
            logger.exception(f"Base model request failed: {e}")
            await emitter.emit(
                AgentEventType.ERROR,
                {"prompt": current_prompt, "options": current_options, "error": str(e)},
            )
            raise

    async def _finish(
        self,
        emitter: AgentEventEmitter,
        final: ChatResponse,
        last_batch: List[FunctionCall],
        completed: List[FunctionCall],
        depth: int,
    ) -> ChatResponse:
        await self._end_recursion(emitter, final.content, last_batch, completed, depth)
        await emitter.emit(AgentEventType.RESPONSE_END, {"response": final})
        return final

    # -- streaming -----------------------------------------------------------

    async def chat_stream(
        self,
        prompt: str,
        options: OptionsArg = None,
        callback: Optional[AgentCallback] = None,
    ) -> AsyncGenerator[StreamChunk, None]:
        """
        Stream the answer as it is produced. Tool calls are cut out of the
        stream, executed, and the follow-up response is streamed in turn.
        The last chunk always has is_last=True.
        """
        opts = ChatOptions.coerce(options)
        emitter = AgentEventEmitter(callback)
        logger.info(f"Chat stream started: tools={len(self.functions)}, max_depth={self.max_recursion_depth}")
        await emitter.emit(AgentEventType.RESPONSE_START, {"prompt": prompt, "options": opts})

        dedup = ContentDeduplicator(self.min_echo_chars)
        current_prompt, current_options = prompt, opts
        try:
            tools = await self.get_all_tools()
            completed: List[FunctionCall] = []
            last_batch: List[FunctionCall] = []
            depth = 0
            while True:
                exhausted = depth > 0 and depth >= self.max_recursion_depth
                request = prepare_request(current_prompt, opts, self.model, tools)
                current_prompt, current_options = request.prompt, request.options
                model_name = request.model
                logger.debug(f"chat_stream depth={depth} model={model_name}")

                full = ""
                buffer = ""
                batch: List[FunctionCall] = []
                # 1. Stream the level, hiding tagged spans as they close
                async for chunk in self.model.unified_chat_stream(request.prompt, request.options):
                    text = _as_text(chunk.content)
                    full += text
                    if exhausted:
                        continue
                    model_name = chunk.model or model_name
                    buffer += text
                    batch = merge_calls(batch, chunk.function_calls)
                    if has_complete_function_call_tags(buffer):
                        batch = merge_calls(batch, parse_function_calls(buffer))
                        buffer = remove_tagged_function_calls(buffer)
                    # JSON answers are only delivered whole, in the final chunk
                    if len(buffer) >= self.min_flush_chars and not opts.wants_json:
                        ready, buffer = _split_flushable(buffer)
                        out = await self._emit_fragment(emitter, dedup, ready, model_name, depth)
                        if out is not None:
                            yield out

                if exhausted:
                    logger.warning(f"Maximum recursion depth ({self.max_recursion_depth}) reached")
                    final = StreamChunk(
                        content=f"{depth_notice(self.max_recursion_depth)}\n\n{_clean(full)}",
                        is_json_response=False,
                        is_last=True,
                        model=model_name,
                        function_calls=completed or None,
                        additional_info=self._info(prompt, opts, depth, max_recursion_depth_reached=True),
                    )
                    yield await self._finish_stream(emitter, final, last_batch, completed, depth)
                    return

                # 2. Tagged spans were drained from the buffer as they
                # closed, so only the untagged tiers are left for the full text
                if START_TAG not in full:
                    batch = merge_calls(batch, parse_function_calls(full))
                # an unterminated span at end of stream is dropped
                tail = buffer.split(START_TAG, 1)[0]

                if not batch or depth >= self.max_recursion_depth:
                    if opts.wants_json:
                        content, is_json = coerce_json(_clean(full))
                    else:
                        content, is_json = dedup.filter(tail) or "", False
                    final = StreamChunk(
                        content=content,
                        is_json_response=is_json,
                        is_last=True,
                        model=model_name,
                        function_calls=completed or None,
                        additional_info=self._info(prompt, opts, depth),
                    )
                    yield await self._finish_stream(emitter, final, last_batch, completed, depth)
                    return

                # 3. Flush what preceded the calls, run them, recurse
                if not opts.wants_json:
                    out = await self._emit_fragment(emitter, dedup, tail, model_name, depth)
                    if out is not None:
                        yield out

                last_batch = await self._run_tools(emitter, tools, batch, full, depth)
                completed = _accumulate(completed, last_batch)
                current_prompt = self._followup(prompt, opts, _clean(full), completed)
                depth += 1
        except Exception as e:
            logger.exception(f"Base model stream failed: {e}")
            await emitter.emit(
                AgentEventType.ERROR,
                {"prompt": current_prompt, "options": current_options, "error": str(e)},
            )
            raise

    async def _emit_fragment(
        self,
        emitter: AgentEventEmitter,
        dedup: ContentDeduplicator,
        text: str,
        model_name: str,
        depth: int,
    ) -> Optional[StreamChunk]:
        fresh = dedup.filter(text)
        if fresh is None:
            return None
        chunk = StreamChunk(content=fresh, is_last=False, model=model_name, additional_info={"depth": depth})
        await emitter.emit(AgentEventType.RESPONSE_CHUNK, {"chunk": chunk})
        return chunk

    async def _finish_stream(
        self,
        emitter: AgentEventEmitter,
        final: StreamChunk,
        last_batch: List[FunctionCall],
        completed: List[FunctionCall],
        depth: int,
    ) -> StreamChunk:
        """Report the terminal chunk; the caller yields it once all events are out."""
        await emitter.emit(AgentEventType.RESPONSE_CHUNK, {"chunk": final})
        await self._end_recursion(emitter, final.content, last_batch, completed, depth)
        response = ChatResponse(
            content=final.content,
            is_json_response=final.is_json_response,
            is_last=True,
            model=final.model,
            function_calls=final.function_calls,
            additional_info=final.additional_info,
        )
        await emitter.emit(AgentEventType.RESPONSE_END, {"response": response})
        return final
