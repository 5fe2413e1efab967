"""
Parser for the tagged tool-call protocol.

The model requests tools by embedding a JSON object between two markers:

    <==start_tool_calls==>
    {"function_calls": [{"name": "tool_name", "arguments": {"k": "v"}}]}
    <==end_tool_calls==>

Models do not always follow the format, so the parser also accepts a bare
JSON document carrying `function_calls` and ```json fenced blocks.
"""
import itertools
import json
import re
import time
from typing import Any, Dict, Iterable, List, Optional, Union

from relay_core.core.logging import logger
from relay_core.core.types import FunctionCall, is_same_call
from relay_core.protocol.json_repair import safe_parse, try_parse

START_TAG = "<==start_tool_calls==>"
END_TAG = "<==end_tool_calls==>"

# [^`]* keeps the scan linear on unterminated fences
_JSON_BLOCK_RE = re.compile(r"```json([^`]*)```")

_ordinal = itertools.count()


def new_call_id() -> str:
    return f"func_call_{int(time.time() * 1000)}_{next(_ordinal)}"


def _iter_spans(text: str):
    """Yield (start, end) offsets of complete marker spans, end exclusive."""
    pos = 0
    while True:
        start = text.find(START_TAG, pos)
        if start == -1:
            return
        end = text.find(END_TAG, start + len(START_TAG))
        if end == -1:
            return
        end += len(END_TAG)
        yield start, end
        pos = end


def has_complete_function_call_tags(text: str) -> bool:
    if not isinstance(text, str):
        return False
    start = text.find(START_TAG)
    return start != -1 and text.find(END_TAG, start + len(START_TAG)) != -1


def remove_tagged_function_calls(text: str) -> str:
    """Strip every complete marker span. An unterminated span is left alone."""
    if not isinstance(text, str) or START_TAG not in text:
        return text
    parts: List[str] = []
    pos = 0
    for start, end in _iter_spans(text):
        parts.append(text[pos:start])
        pos = end
    parts.append(text[pos:])
    return "".join(parts)


def _calls_from_entries(entries: Iterable[Any]) -> List[FunctionCall]:
    calls: List[FunctionCall] = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("name"):
            continue
        args = entry.get("arguments")
        if isinstance(args, str):
            args = safe_parse(args)
        if not isinstance(args, dict):
            args = {}
        call_id = entry.get("id") or new_call_id()
        calls.append(FunctionCall(id=str(call_id), name=str(entry["name"]), arguments=args))
    return calls


def _calls_from_object(obj: Any) -> List[FunctionCall]:
    """`function_calls` at the top level, else one level of nested objects."""
    if not isinstance(obj, dict):
        return []
    if isinstance(obj.get("function_calls"), list):
        calls = _calls_from_entries(obj["function_calls"])
        if calls:
            return calls
    nested: List[FunctionCall] = []
    for value in obj.values():
        if isinstance(value, dict) and isinstance(value.get("function_calls"), list):
            nested.extend(_calls_from_entries(value["function_calls"]))
    return nested


def _tagged_calls(text: str) -> List[FunctionCall]:
    calls: List[FunctionCall] = []
    for start, end in _iter_spans(text):
        body = text[start + len(START_TAG) : end - len(END_TAG)].strip()
        obj = safe_parse(body)
        found = _calls_from_object(obj) if isinstance(obj, dict) else []
        if not found:
            logger.warning(f"Tagged span did not contain usable function_calls: {body[:120]!r}")
        calls.extend(found)
    return calls


def _fenced_calls(text: str) -> List[FunctionCall]:
    calls: List[FunctionCall] = []
    for m in _JSON_BLOCK_RE.finditer(text):
        calls.extend(_calls_from_object(safe_parse(m.group(1).strip())))
    return calls


def parse_function_calls(content: Union[str, Dict[str, Any], None]) -> List[FunctionCall]:
    """
    Extract the tool calls requested in a model response.

    Tiers, first one yielding calls wins:
      1. complete tagged spans
      2. the whole content as JSON (or an already structured dict)
      3. ```json fenced blocks
    A start marker without its end marker means the calls are still arriving,
    so nothing is returned and the other tiers are skipped.
    """
    if content is None:
        return []
    if isinstance(content, dict):
        return _calls_from_object(content)
    if not isinstance(content, str):
        return []

    if START_TAG in content:
        if not has_complete_function_call_tags(content):
            return []
        calls = _tagged_calls(content)
        if calls:
            return calls

    stripped = content.strip()
    if stripped[:1] in ("{", "["):
        ok, obj = try_parse(stripped)
        if ok:
            calls = _calls_from_object(obj)
            if calls:
                return calls

    if "```json" in content:
        return _fenced_calls(content)
    return []


def wrap_function_calls(calls: Iterable[FunctionCall], include_ids: bool = True) -> str:
    """Render calls in the tagged wire format."""
    entries = []
    for call in calls:
        entry: Dict[str, Any] = {"name": call.name, "arguments": call.arguments}
        if include_ids and call.id:
            entry = {"id": call.id, **entry}
        entries.append(entry)
    body = json.dumps({"function_calls": entries}, ensure_ascii=False)
    return f"{START_TAG}\n{body}\n{END_TAG}"


def merge_calls(existing: List[FunctionCall], new: Optional[Iterable[FunctionCall]]) -> List[FunctionCall]:
    """
    Append calls from `new` that are not already present in `existing`.
    Calls within `new` are never merged with each other.
    """
    merged = list(existing)
    for call in new or []:
        if not any(is_same_call(call, seen) for seen in existing):
            merged.append(call)
    return merged
