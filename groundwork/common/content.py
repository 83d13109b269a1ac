"""
Rich-text content normalisation.

Notes written in the Lexical editor are stored as its JSON state
(``{"root": {...}}``). The pipeline only ever feeds Markdown to the LLM, so
that state is flattened here. Plain text passes through unchanged.
"""

import json
import logging
from typing import Any, Dict, List

logger = logging.getLogger("groundwork.common.content")

# Lexical text format bitmask
FORMAT_BOLD = 1
FORMAT_ITALIC = 2
FORMAT_STRIKETHROUGH = 4
FORMAT_UNDERLINE = 8
FORMAT_CODE = 16


def parse_content(text: str) -> str:
    """Return Markdown for Lexical JSON input, the input itself otherwise."""
    if not text:
        return text or ""

    stripped = text.strip()
    if not stripped.startswith("{") or '"root"' not in stripped[:32]:
        return text

    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        return text

    root = data.get("root") if isinstance(data, dict) else None
    if not isinstance(root, dict):
        return text

    out: List[str] = []
    _walk(root, out, 0)
    return "".join(out).strip()


def _walk(node: Dict[str, Any], out: List[str], depth: int) -> None:
    node_type = node.get("type", "")
    children = node.get("children") or []

    if node_type == "root":
        for child in children:
            _walk(child, out, depth)
            out.append("\n")
    elif node_type == "paragraph":
        _inline(children, out)
        out.append("\n")
    elif node_type == "heading":
        level = _heading_level(node.get("tag", "h1"))
        out.append("#" * level + " ")
        _inline(children, out)
        out.append("\n")
    elif node_type == "quote":
        out.append("> ")
        _inline(children, out)
        out.append("\n")
    elif node_type == "text":
        out.append(_format_text(node))
    elif node_type == "linebreak":
        out.append("\n")
    elif node_type == "link":
        _link(node, out)
    elif node_type == "list":
        _list(node, out, depth)
    elif node_type == "table":
        _table(node, out)
    elif node_type == "horizontalrule":
        out.append("---\n")
    else:
        # listitem outside a list, code blocks, unknown nodes
        for child in children:
            _walk(child, out, depth)


def _inline(children: List[Dict[str, Any]], out: List[str]) -> None:
    for child in children:
        _walk(child, out, 0)


def _heading_level(tag: str) -> int:
    try:
        return max(1, min(6, int(str(tag).lstrip("h"))))
    except ValueError:
        return 1


def _format_text(node: Dict[str, Any]) -> str:
    text = node.get("text", "")
    fmt = node.get("format", 0)
    if not isinstance(fmt, int) or not text:
        return text

    # Wrapper order: code > bold > italic > underline > strikethrough
    opening, closing = [], []
    for flag, open_tag, close_tag in (
        (FORMAT_CODE, "`", "`"),
        (FORMAT_BOLD, "**", "**"),
        (FORMAT_ITALIC, "_", "_"),
        (FORMAT_UNDERLINE, "<u>", "</u>"),
        (FORMAT_STRIKETHROUGH, "~~", "~~"),
    ):
        if fmt & flag:
            opening.append(open_tag)
            closing.insert(0, close_tag)
    return "".join(opening) + text + "".join(closing)


def _link(node: Dict[str, Any], out: List[str]) -> None:
    out.append("[")
    _inline(node.get("children") or [], out)
    out.append(f"]({node.get('url', '')})")


def _list(node: Dict[str, Any], out: List[str], depth: int) -> None:
    list_type = node.get("listType", "bullet")
    index = node.get("start") or 1

    for item in node.get("children") or []:
        if item.get("type") != "listitem":
            continue

        out.append("  " * depth)
        if list_type == "number":
            out.append(f"{index}. ")
            index += 1
        elif list_type == "check":
            out.append("- [x] " if item.get("checked") else "- [ ] ")
        else:
            out.append("- ")

        for child in item.get("children") or []:
            if child.get("type") == "list":
                out.append("\n")
                _list(child, out, depth + 1)
            else:
                _walk(child, out, depth)
        if not out[-1].endswith("\n"):
            out.append("\n")


def _table(node: Dict[str, Any], out: List[str]) -> None:
    rows: List[List[str]] = []
    for row in node.get("children") or []:
        if row.get("type") != "tablerow":
            continue
        cells = []
        for cell in row.get("children") or []:
            buf: List[str] = []
            for child in cell.get("children") or []:
                _walk(child, buf, 0)
            # Newlines break Markdown tables
            cells.append("".join(buf).replace("\n", " ").strip())
        rows.append(cells)

    if not rows:
        return

    width = max(len(r) for r in rows)

    def render(cells: List[str]) -> str:
        padded = cells + [""] * (width - len(cells))
        return "| " + " | ".join(padded) + " |\n"

    out.append(render(rows[0]))
    out.append("|" + "---|" * width + "\n")
    for row in rows[1:]:
        out.append(render(row))
