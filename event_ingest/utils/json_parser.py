"""
JSON parsing utilities for structured model responses.

Providers that support JSON-schema output return clean JSON, but some models
still wrap the object in markdown fences or add chatter around it. This module
recovers the single top-level JSON object a pipeline stage expects.
"""

import json
import re
from typing import Any

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]+?)\s*```")


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """
    Return the first JSON object found in `text`, or None.

    Tries, in order: the raw text, the content of a markdown code fence, the
    span between the first '{' and the last '}', and finally a bracket repair
    for responses truncated by a token limit.
    """
    if not text or not text.strip():
        return None

    candidates = [text.strip()]
    fence = _FENCE_PATTERN.search(text)
    if fence:
        candidates.append(fence.group(1).strip())

    for candidate in candidates:
        parsed = _loads_object(candidate)
        if parsed is not None:
            return parsed

        start = candidate.find("{")
        if start == -1:
            continue
        body = candidate[start:]

        end = body.rfind("}")
        if end != -1:
            parsed = _loads_object(body[: end + 1])
            if parsed is not None:
                return parsed

        repaired = _repair_truncated_object(body)
        if repaired:
            parsed = _loads_object(repaired)
            if parsed is not None:
                return parsed

    return None


def _loads_object(candidate: str) -> dict[str, Any] | None:
    try:
        value = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def _repair_truncated_object(body: str) -> str | None:
    """Drop a dangling partial entry and close any brackets left open."""
    body = body.rstrip()
    if not body.startswith("{"):
        return None

    for pattern in (r',\s*"[^"]*$', r':\s*"[^"]*$', r",\s*\{[^}]*$", r":\s*[^,}\]]*$"):
        if re.search(pattern, body):
            body = re.sub(pattern, "", body)
            break

    closers = []
    in_string = False
    escaped = False
    for char in body:
        if escaped:
            escaped = False
            continue
        if char == "\\":
            escaped = True
        elif char == '"':
            in_string = not in_string
        elif in_string:
            continue
        elif char in "{[":
            closers.append("}" if char == "{" else "]")
        elif char in "}]" and closers:
            closers.pop()

    if in_string:
        body += '"'
    return body + "".join(reversed(closers))
