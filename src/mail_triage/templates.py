"""Placeholder substitution for user-editable text templates.

Prompts, progress lines and summary messages are stored in the config file
with ``{NAME}`` placeholders. They often contain JSON examples and other
brace-heavy content, so ``str.format`` is not usable here: only the known
placeholders are replaced, everything else is left untouched.
"""

import math
from typing import Mapping, Optional


def format_template(template: Optional[str], values: Optional[Mapping[str, object]]) -> str:
    """Replace ``{KEY}`` placeholders in a template.

    Keys may be given with or without braces (``"COUNT"`` and ``"{COUNT}"``
    are equivalent). ``None`` values render as an empty string.

    Args:
        template: Template text.
        values: Placeholder values.

    Returns:
        str: Rendered text, or an empty string for an empty template.
    """
    if not template:
        return ""
    if not values:
        return template

    rendered = template
    for key, value in values.items():
        token = key if key.startswith("{") else "{" + key + "}"
        rendered = rendered.replace(token, "" if value is None else str(value))
    return rendered


def format_duration(seconds: float) -> str:
    """Render a duration as ``mm:ss`` (minutes are not wrapped at 60).

    Args:
        seconds: Duration in seconds; negative values render as ``00:00``.

    Returns:
        str: Formatted duration.
    """
    total = max(0, int(math.ceil(seconds)))
    minutes, secs = divmod(total, 60)
    return f"{minutes:02d}:{secs:02d}"


def truncate(text: str, limit: int, marker: str = "...") -> str:
    """Cap text at ``limit`` characters, appending ``marker`` when cut."""
    if len(text) > limit:
        return text[:limit] + marker
    return text
