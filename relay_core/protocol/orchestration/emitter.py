import datetime
import inspect
import json
from typing import Any, Dict, Optional

from pydantic import BaseModel

from relay_core.core.logging import logger
from relay_core.core.types import AgentCallback, AgentEventType


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    if isinstance(value, BaseException):
        return f"{type(value).__name__}: {value}"
    return str(value)


class AgentEventEmitter:
    """Deliver orchestration events to the caller's callback, sync or async."""

    def __init__(self, callback: Optional[AgentCallback] = None):
        self.callback = callback

    async def emit(self, event_type: AgentEventType, payload: Dict[str, Any]) -> None:
        logger.debug(f"Event {event_type}: {list(payload)}")
        if self.callback is None:
            return
        result = self.callback(event_type, payload)
        if inspect.isawaitable(result):
            await result

    @staticmethod
    def to_ndjson(event_type: AgentEventType, payload: Dict[str, Any]) -> bytes:
        """Render an event as one NDJSON line with a UTC timestamp."""
        out = {
            "type": str(event_type),
            "data": payload,
            "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        }
        return (json.dumps(out, default=_jsonable, ensure_ascii=False) + "\n").encode("utf-8")
