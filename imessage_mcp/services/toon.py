"""Token-Oriented Object Notation (TOON) stringifier.

Compact text rendering for tool output read by LLMs: lists of records become a header
line plus one delimited row per record instead of repeated JSON keys.

    messages[2]{guid,text}:
    a1,hello
    a2,"see you: 5pm"
"""
from __future__ import annotations

import json
import re
from dataclasses import asdict, is_dataclass
from typing import Any, Mapping

_BRACKETS = re.compile(r"[\[\]{}]")


def stringify(data: Any, indent_size: int = 2, delimiter: str = ",", array_key: str = "items") -> str:
    if is_dataclass(data) and not isinstance(data, type):
        data = asdict(data)
    if data is None:
        return "null"

    if isinstance(data, (list, tuple)):
        if not data:
            return "[]"
        items = [asdict(i) if is_dataclass(i) and not isinstance(i, type) else i for i in data]
        first = items[0]
        if isinstance(first, Mapping):
            keys = list(first.keys())
            header = f"{array_key}[{len(items)}]{{{delimiter.join(keys)}}}"
            rows = [
                delimiter.join(_format_cell(item.get(k) if isinstance(item, Mapping) else None, delimiter) for k in keys)
                for item in items
            ]
            return f"{header}:\n" + "\n".join(rows)
        return "[" + delimiter.join(format_value(v, delimiter) for v in items) + "]"

    if isinstance(data, Mapping):
        lines = []
        for key, value in data.items():
            if is_dataclass(value) and not isinstance(value, type):
                value = asdict(value)
            if isinstance(value, (Mapping, list, tuple)):
                nested = stringify(value, indent_size=indent_size, delimiter=delimiter, array_key=str(key))
                pad = " " * indent_size
                val_str = "\n" + "\n".join(pad + line for line in nested.split("\n"))
            else:
                val_str = format_value(value, delimiter)
            lines.append(f"{key}:{val_str}")
        return "\n".join(lines)

    return format_value(data, delimiter)


def _format_cell(val: Any, delimiter: str) -> str:
    # rows are one line each; nested containers are inlined as JSON
    if isinstance(val, (Mapping, list, tuple)):
        return f'"{escape_string(json.dumps(val, separators=(",", ":"), default=str))}"'
    return format_value(val, delimiter)


def format_value(val: Any, delimiter: str = ",") -> str:
    if val is None:
        return "null"
    if isinstance(val, bool):
        return "true" if val else "false"
    if isinstance(val, int):
        return str(val)
    if isinstance(val, float):
        return str(int(val)) if val.is_integer() else repr(val)
    s = str(val)
    if needs_quoting(s, delimiter):
        return f'"{escape_string(s)}"'
    return s


def needs_quoting(s: str, delimiter: str = ",") -> bool:
    return (
        ":" in s
        or delimiter in s
        or "\n" in s
        or "\r" in s
        or "\t" in s
        or s.startswith(" ")
        or s.endswith(" ")
        or '"' in s
        or "\\" in s
        or bool(_BRACKETS.search(s))
    )


def escape_string(s: str) -> str:
    return (
        s.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


__all__ = ["stringify", "format_value", "needs_quoting", "escape_string"]
