"""
Best-effort coercion of model-produced JSON.

Model output is frequently truncated or slightly malformed (single quotes,
bare keys, trailing commas, unclosed brackets). `safe_parse` never raises:
it tries a strict parse, then a structural repair pass, and finally falls back
to an empty object.
"""
import json
import re
from typing import Any, List, Tuple

from relay_core.core.logging import logger

_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*[ \t]*\n?(.*?)\n?```\s*$", re.DOTALL)
_LITERALS = {
    "true": "true",
    "false": "false",
    "null": "null",
    "True": "true",
    "False": "false",
    "None": "null",
}


class JsonRepairError(ValueError):
    """Raised when text cannot be coerced into JSON."""


def _strip_code_fence(text: str) -> str:
    m = _FENCE_RE.match(text)
    return m.group(1).strip() if m else text


def _drop_trailing_comma(out: List[str]) -> None:
    i = len(out) - 1
    while i >= 0 and out[i].isspace():
        i -= 1
    if i >= 0 and out[i] == ",":
        del out[i:]


def _last_significant(out: List[str]) -> str:
    for ch in reversed(out):
        if not ch.isspace():
            return ch
    return ""


def repair_json(text: str) -> str:
    """
    Return a repaired JSON document for `text`.
    Raises JsonRepairError if the result still does not parse.
    """
    if not isinstance(text, str) or not text.strip():
        raise JsonRepairError("empty input")

    src = _strip_code_fence(text.strip())
    if not src or src[0] not in "{[\"'":
        raise JsonRepairError(f"input does not look like JSON: {src[:20]!r}")

    out: List[str] = []
    stack: List[str] = []
    quote = ""
    i = 0
    n = len(src)
    while i < n:
        ch = src[i]

        if quote:
            if ch == "\\" and i + 1 < n:
                out.append(ch)
                out.append(src[i + 1])
                i += 2
                continue
            if ch == quote:
                out.append('"')
                quote = ""
            elif ch == '"':
                # double quote inside a single-quoted string
                out.append('\\"')
            elif ch == "\n":
                out.append("\\n")
            elif ch == "\r":
                out.append("\\r")
            elif ch == "\t":
                out.append("\\t")
            else:
                out.append(ch)
            i += 1
            continue

        if ch in "{[":
            stack.append("}" if ch == "{" else "]")
            out.append(ch)
        elif ch in "}]":
            if ch not in stack:
                # stray closer after the document is complete
                if not stack:
                    break
                i += 1
                continue
            while stack:
                closer = stack.pop()
                _drop_trailing_comma(out)
                out.append(closer)
                if closer == ch:
                    break
            if not stack:
                break
        elif ch in "\"'":
            quote = ch
            out.append('"')
        elif ch.isalpha() or ch in "_$":
            if ch in "eE" and out and out[-1].isdigit():
                out.append(ch)
                i += 1
                continue
            j = i
            while j < n and (src[j].isalnum() or src[j] in "_$-"):
                j += 1
            word = src[i:j]
            out.append(_LITERALS.get(word, json.dumps(word)))
            i = j
            continue
        else:
            out.append(ch)
        i += 1

    if quote:
        out.append('"')

    tail = _last_significant(out)
    if tail == ":":
        out.append("null")
    elif tail == ".":
        while out and out[-1] != ".":
            out.pop()
        out.pop()
    _drop_trailing_comma(out)
    while stack:
        _drop_trailing_comma(out)
        out.append(stack.pop())

    repaired = "".join(out)
    try:
        json.loads(repaired)
    except json.JSONDecodeError as e:
        raise JsonRepairError(f"repair failed: {e}") from e
    return repaired


def try_parse(content: Any) -> Tuple[bool, Any]:
    """Parse strictly, then through repair. Returns (ok, value)."""
    if not isinstance(content, str):
        return True, content
    try:
        return True, json.loads(content)
    except json.JSONDecodeError:
        pass
    try:
        return True, json.loads(repair_json(content))
    except JsonRepairError as e:
        logger.debug(f"JSON repair failed: {e}")
        return False, None


def safe_parse(content: Any) -> Any:
    """Parse `content` as JSON, repairing if needed; {} when hopeless."""
    ok, value = try_parse(content)
    if ok:
        return value
    logger.debug(f"safe_parse: falling back to empty object for {str(content)[:80]!r}")
    return {}


def coerce_json(content: Any) -> Tuple[Any, bool]:
    """
    Coerce a final answer to JSON. Returns (value, is_json); unrepairable
    text is returned unchanged with is_json False.
    """
    if not isinstance(content, str):
        return content, True
    ok, value = try_parse(_strip_code_fence(content.strip()))
    if ok:
        return value, True
    logger.warning("Response was requested as JSON but could not be parsed; returning raw text")
    return content, False
