import asyncio
import functools
import inspect
from typing import Any, Dict, List, Optional

import anyio

from relay_core.core.interfaces import RemoteToolHost
from relay_core.core.logging import logger
from relay_core.core.types import AgentEventType, AgentFunction, FunctionCall
from relay_core.protocol.orchestration.emitter import AgentEventEmitter


class FunctionNotFoundError(LookupError):
    pass


class FunctionCallExecutor:
    """Execute a batch of function calls sequentially, with an optional timeout"""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    async def _invoke_local(self, fn: AgentFunction, arguments: Dict[str, Any]) -> Any:
        if inspect.iscoroutinefunction(fn.executor):
            return await fn.executor(arguments)
        result = await anyio.to_thread.run_sync(functools.partial(fn.executor, arguments))
        if inspect.isawaitable(result):
            result = await result
        return result

    async def _invoke(
        self,
        call: FunctionCall,
        functions: Dict[str, AgentFunction],
        remote_host: Optional[RemoteToolHost],
    ) -> Any:
        fn = functions.get(call.name)
        if fn is not None and fn.executor is not None:
            coro = self._invoke_local(fn, call.arguments)
        elif remote_host is not None:
            coro = remote_host.invoke(call.name, call.arguments)
        else:
            raise FunctionNotFoundError(f"Function '{call.name}' not found")
        if self.timeout:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        return await coro

    async def execute(
        self,
        calls: List[FunctionCall],
        functions: List[AgentFunction],
        remote_host: Optional[RemoteToolHost] = None,
        emitter: Optional[AgentEventEmitter] = None,
    ) -> List[FunctionCall]:
        """
        Run every call not yet executed and return the calls with results, in
        input order. Failures are captured as `{"error": ...}` results.
        """
        if not calls:
            return []
        emitter = emitter or AgentEventEmitter()
        registry = {fn.name: fn for fn in functions}

        await emitter.emit(AgentEventType.FUNCTION_CALL_START, {"function_calls": list(calls)})

        results: List[FunctionCall] = []
        for call in calls:
            if call.executed:
                results.append(call)
                continue
            try:
                logger.info(f"Executing function {call.name} ({call.id})")
                results.append(call.with_result(await self._invoke(call, registry, remote_host)))
                continue
            except FunctionNotFoundError as e:
                logger.warning(f"Unknown function requested: {call.name}")
                message = str(e)
            except asyncio.TimeoutError:
                logger.warning(f"Function {call.name} timed out after {self.timeout}s")
                message = f"Function '{call.name}' timed out after {self.timeout}s"
            except Exception as e:
                logger.warning(f"Function {call.name} failed: {e}")
                logger.debug(f"Function {call.name} traceback", exc_info=True)
                message = str(e)
            # a failed call is reported back to the model as its result
            results.append(call.with_result({"error": message}))
            await emitter.emit(AgentEventType.ERROR, {"function_call": call, "error": message})

        await emitter.emit(AgentEventType.FUNCTION_CALL_END, {"function_calls": results})
        return results
