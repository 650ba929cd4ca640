"""Content-path lookups in decoded JSON responses.

A content path names one value inside a response document, e.g.
``choices[0].message.content`` or ``candidates.0.content.parts[0].text``.
The path is split on ``.``, ``[`` and ``]``; objects are indexed by field
name and arrays by integer position. Any step that does not apply (missing
field, index out of range, indexing a scalar) yields no value.
"""

import json
import re
from typing import Any, Optional

_MISSING = object()
_SPLIT = re.compile(r"[.\[\]]")


def parse_path(path: str) -> list[str]:
    """Split a content path into its non-empty parts.

    Args:
        path: Path expression.

    Returns:
        list[str]: Field names and index strings.
    """
    return [part for part in _SPLIT.split(path or "") if part]


def resolve(document: Any, path: str) -> Any:
    """Walk a decoded JSON document along a path.

    Args:
        document: Result of ``json.loads``.
        path: Path expression. Empty means the whole document.

    Returns:
        Any: The value found, or ``None`` when the path does not resolve.
    """
    current: Any = document
    for part in parse_path(path):
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else _MISSING
        else:
            current = _MISSING

        if current is _MISSING:
            return None

    return current


def render(value: Any) -> str:
    """Render a resolved value as text.

    Strings are returned unchanged, ``None`` as an empty string, nested
    objects and arrays as compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def extract_text(document: Any, path: Optional[str]) -> str:
    """Resolve a path and render the result as text.

    Args:
        document: Decoded JSON document.
        path: Path expression.

    Returns:
        str: Text at the path, or an empty string.
    """
    if document is None:
        return ""
    return render(resolve(document, path or ""))
