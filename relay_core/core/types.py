from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field


class ChatRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ResponseFormat(StrEnum):
    TEXT = "text"
    JSON = "json"


class AgentEventType(StrEnum):
    RESPONSE_START = "response_start"
    RESPONSE_CHUNK = "response_chunk"
    FUNCTION_CALL_START = "function_call_start"
    FUNCTION_CALL_END = "function_call_end"
    RECURSION_START = "recursion_start"
    RECURSION_END = "recursion_end"
    ERROR = "error"
    RESPONSE_END = "response_end"


class ChatMessage(BaseModel):
    """A single message of conversation history."""
    model_config = ConfigDict(frozen=True)

    role: ChatRole
    content: str


class ChatOptions(BaseModel):
    """
    Request options understood by the orchestrator.
    Unknown keys are kept and handed to the model provider untouched.
    """
    model_config = ConfigDict(extra="allow")

    history: Optional[List[ChatMessage]] = None
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    response_format: Optional[ResponseFormat] = None
    system_message: Optional[str] = None
    tools: Optional[Any] = None

    @classmethod
    def coerce(cls, options: Union["ChatOptions", Dict[str, Any], None]) -> "ChatOptions":
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        return cls.model_validate(options)

    @property
    def wants_json(self) -> bool:
        return self.response_format == ResponseFormat.JSON


class FunctionCall(BaseModel):
    """
    A tool invocation requested by the model.
    A call is executed once its `result` field has been set, even to None.
    """
    id: str = ""
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Any = None

    @property
    def executed(self) -> bool:
        return "result" in self.model_fields_set

    def with_result(self, result: Any) -> "FunctionCall":
        return FunctionCall(id=self.id, name=self.name, arguments=self.arguments, result=result)


def is_same_call(a: FunctionCall, b: FunctionCall) -> bool:
    """
    Calls that both carry an id match on id alone. Otherwise they match on
    name and canonical JSON arguments.
    """
    if a.id and b.id:
        return a.id == b.id
    if a.name != b.name:
        return False
    return json.dumps(a.arguments or {}, sort_keys=True, default=str) == json.dumps(
        b.arguments or {}, sort_keys=True, default=str
    )


class ChatResponse(BaseModel):
    content: Any = ""
    is_json_response: bool = False
    is_last: bool = True
    model: str = ""
    usage: Optional[Dict[str, int]] = None
    function_calls: Optional[List[FunctionCall]] = None
    additional_info: Dict[str, Any] = Field(default_factory=dict)


class StreamChunk(BaseModel):
    content: Any = ""
    is_json_response: bool = False
    is_last: bool = False
    model: str = ""
    function_calls: Optional[List[FunctionCall]] = None
    additional_info: Dict[str, Any] = Field(default_factory=dict)


ToolExecutorFn = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


@dataclass
class AgentFunction:
    """
    A tool the model may call. `parameters` is either a JSON schema dict or a
    pydantic model class. Functions without an executor are resolved on the
    remote tool host.
    """
    name: str
    description: str = ""
    parameters: Union[Dict[str, Any], Type[BaseModel], None] = None
    executor: Optional[ToolExecutorFn] = None

    def json_parameters(self) -> Dict[str, Any]:
        params = self.parameters
        if isinstance(params, type) and issubclass(params, BaseModel):
            schema = params.model_json_schema()
        else:
            schema = dict(params or {})
        for key in ("$schema", "additionalProperties", "title"):
            schema.pop(key, None)
        if not schema:
            schema = {"type": "object", "properties": {}}
        return schema

    def definition(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.json_parameters(),
        }


AgentCallback = Callable[[AgentEventType, Dict[str, Any]], Union[None, Awaitable[None]]]
