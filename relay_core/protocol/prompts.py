# relay_core/protocol/prompts.py
"""
Prompt and capability adaptation.

Backends differ in whether they accept tools and system messages as
structured request fields. Everything a backend cannot take natively is
folded into the prompt text here:
1. system message -> prepended to the prompt
2. tools -> JSON catalog plus tagged-protocol instructions appended
3. system-role history -> a leading user message
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from relay_core.core.interfaces import ModelProvider
from relay_core.core.types import (
    AgentFunction,
    ChatMessage,
    ChatOptions,
    ChatRole,
    FunctionCall,
    ResponseFormat,
)
from relay_core.protocol.parsers.tagged import END_TAG, START_TAG


@dataclass
class PreparedRequest:
    prompt: str
    options: ChatOptions
    model: str


def _tool_definitions(tools: Iterable[AgentFunction]) -> List[Dict[str, Any]]:
    return [tool.definition() for tool in tools]


def enhance_content_with_tools(content: str, tools: List[AgentFunction]) -> str:
    """
    Append the tool catalog and the invocation format to `content`.

    Args:
        content: Prompt text the instructions are appended to
        tools: Tools the model may call

    Returns:
        The prompt, unchanged when there are no tools
    """
    if not tools:
        return content

    catalog = json.dumps(_tool_definitions(tools), indent=2, ensure_ascii=False)
    example = json.dumps(
        {
            "function_calls": [
                {"name": "ToolName1", "arguments": {"param1": "value1", "param2": "value2"}},
                {"name": "ToolName2", "arguments": {"paramA": "valueA"}},
            ]
        },
        indent=2,
    )

    return f"""{content}

You are an assistant that can invoke tools to complete tasks.
When a task requires a tool, invoke it directly without asking the user for permission.
Only use the tool names and parameters exactly as defined below. Do not invent new tools.

{catalog}

---

### Tool Invocation Format

When invoking tools, output only the JSON inside the tags, with no extra text or markdown:

1. Use only the tool names listed above, matching exactly.
2. Provide arguments as JSON with the correct field names and types.
3. If no tool is needed, answer normally and do not output any JSON block.

{START_TAG}
{example}
{END_TAG}

Strictly follow the format above."""


def build_results_summary(calls: Iterable[FunctionCall]) -> str:
    """One block per executed call, separated by blank lines."""
    blocks = []
    for call in calls:
        blocks.append(
            f"Function: {call.name}\n"
            f"Parameters: {json.dumps(call.arguments, ensure_ascii=False, default=str)}\n"
            f"Result: {json.dumps(call.result, ensure_ascii=False, default=str)}"
        )
    return "\n\n".join(blocks)


def create_followup_prompt(
    original_prompt: str,
    previous_response: str,
    results_summary: str,
    response_format: Union[ResponseFormat, str, None] = None,
) -> str:
    json_hint = "\nReturn your response in valid JSON format." if response_format == ResponseFormat.JSON else ""
    return f"""IMPORTANT - Remember that the user's original question was: "{original_prompt}"

Your previous response was:
{previous_response}

Here are the results of the function calls:
{results_summary}

Please generate a final response that directly answers the user's original question: "{original_prompt}"
If you need to call additional functions, please clearly indicate this.
{json_hint}""".rstrip() + "\n"


def process_system_messages(
    history: Optional[List[ChatMessage]], supports_system_messages: bool
) -> Optional[List[ChatMessage]]:
    """Fold system-role history into one leading user message if unsupported."""
    if not history or supports_system_messages:
        return history

    system_parts = [m.content for m in history if m.role == ChatRole.SYSTEM]
    rest = [m for m in history if m.role != ChatRole.SYSTEM]
    if not system_parts:
        return rest

    folded = [
        ChatMessage(
            role=ChatRole.USER,
            content="System Instructions:\n"
            + "\n\n".join(system_parts)
            + "\n\nPlease follow above instructions for all your responses.",
        )
    ]
    # keep user/assistant alternation
    if rest and rest[0].role == ChatRole.ASSISTANT:
        folded.append(
            ChatMessage(role=ChatRole.USER, content="Please continue according to the above system instructions.")
        )
    return folded + rest


def convert_tools_for_model(tools: List[AgentFunction], model: ModelProvider, model_name: Optional[str] = None) -> Any:
    if not tools or not model.supports_tools(model_name):
        return None
    return model.convert_tools_format(tools)


def prepare_request(
    prompt: str,
    options: Union[ChatOptions, Dict[str, Any], None],
    model: ModelProvider,
    tools: Optional[List[AgentFunction]] = None,
) -> PreparedRequest:
    """Adapt prompt and options to what the backend accepts natively."""
    tools = tools or []
    opts = ChatOptions.coerce(options)
    model_name = model.get_model(opts.model)
    supports_system = model.supports_system_messages(model_name)

    system_message = opts.system_message
    if system_message and not supports_system:
        prompt = f"{system_message}\n\n{prompt}"
        system_message = None

    if tools and not model.supports_tools(model_name):
        prompt = enhance_content_with_tools(prompt, tools)

    prepared = opts.model_copy(
        update={
            "model": model_name,
            "system_message": system_message,
            "tools": convert_tools_for_model(tools, model, model_name),
            "history": process_system_messages(opts.history, supports_system),
        }
    )
    return PreparedRequest(prompt=prompt, options=prepared, model=model_name)
