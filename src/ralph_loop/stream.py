"""Readable one-liners for the worker's stream-json events.

Display only: nothing here feeds a loop decision, and any line that
doesn't parse is shown raw.
"""

from __future__ import annotations

import json
import re

TEXT_CLIP = 240
TOOL_INPUT_CLIP = 180

_WHITESPACE = re.compile(r"\s+")


def clean(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def clip(text: str, n: int) -> str:
    return text[:n] + "..." if len(text) > n else text


def tool_description(name: object, inp: object) -> str:
    """Create a compact, readable description of a tool call."""
    name = str(name or "unknown")
    if not isinstance(inp, dict):
        inp = {"input": inp} if inp else {}
    if name == "Task":
        desc = str(inp.get("description") or "")
        return f"Agent: {desc}" if desc else "Agent"
    if name in ("Read", "Edit", "Write"):
        path = str(inp.get("file_path") or "")
        return f"{name} {path.split('/')[-1]}" if path else name
    if name == "Bash":
        cmd = str(inp.get("command") or "")
        return f"$ {clip(clean(cmd), 60)}" if cmd else "Bash"
    if name == "Grep":
        pattern = str(inp.get("pattern") or "")
        return f"Search: {pattern[:50]}" if pattern else "Search"
    if name == "Glob":
        pattern = str(inp.get("pattern") or "")
        return f"Glob: {pattern}" if pattern else "Glob"
    if name == "WebFetch":
        url = str(inp.get("url") or "")
        return f"Fetch: {url[:50]}" if url else "WebFetch"
    short_name = name.replace("mcp__", "")
    if not inp:
        return short_name
    return f"{short_name} {clip(clean(json.dumps(inp, default=str)), TOOL_INPUT_CLIP)}"


def _tool_result_text(content: object) -> str:
    if isinstance(content, list):
        parts = [
            str(item.get("text") or "") if isinstance(item, dict) else str(item)
            for item in content
        ]
        return " ".join(p for p in parts if p)
    return "" if content is None else str(content)


def _content_blocks(obj: dict) -> list:
    message = obj.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    return content if isinstance(content, list) else []


def render_event(line: str) -> list[str]:
    """Turn one stream line into zero or more display lines."""
    line = line.strip()
    if not line:
        return []
    try:
        obj = json.loads(line)
    except json.JSONDecodeError:
        return [f"[raw] {clean(line)}"]
    if not isinstance(obj, dict):
        return [f"[raw] {clean(line)}"]

    msg_type = obj.get("type", "")
    out: list[str] = []

    if msg_type == "assistant":
        for block in _content_blocks(obj):
            if not isinstance(block, dict):
                continue
            btype = block.get("type", "")
            if btype == "text":
                text = clip(clean(str(block.get("text") or "")), TEXT_CLIP)
                if text:
                    out.append(f"[assistant] {text}")
            elif btype == "tool_use":
                desc = tool_description(block.get("name"), block.get("input"))
                out.append(f"[tool] {desc}")

    elif msg_type == "user":
        for block in _content_blocks(obj):
            if not isinstance(block, dict) or block.get("type") != "tool_result":
                continue
            text = clip(clean(_tool_result_text(block.get("content"))), TEXT_CLIP)
            if text:
                out.append(f"[tool-result] {text}")

    elif msg_type == "result":
        text = clip(clean(str(obj.get("result", "") or "")), TEXT_CLIP)
        rendered = f"[result] {text}"
        cost = obj.get("total_cost_usd")
        if cost is not None:
            rendered += f" | cost=${cost}"
        out.append(rendered)

    return out
