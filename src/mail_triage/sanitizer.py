"""Email body sanitization.

Objective:
    Convert raw email content returned by the mailbox (sometimes HTML) into a
    plain-text representation that keeps line structure, so that thread
    separators and signature lines can still be detected by the extractor.

Responsibilities:
    - Strip non-content HTML elements (``<script>``, ``<style>``, ``<head>``).
    - Convert HTML to markdown-ish text to preserve paragraphs and lists.
    - Normalize line endings and collapse runs of blank lines.

High-level call tree:
    - :func:`body_to_text`
        - :func:`html_to_markdown` (HTML input)
        - :func:`normalize_newlines`

Security notes:
    Sanitization is intended to keep raw HTML/script content out of the AI
    prompt and to reduce noise/tokens sent to the model.
"""

import re

from bs4 import BeautifulSoup
from markdownify import markdownify as md

_NON_CONTENT_TAGS = ["script", "style", "head", "meta", "link"]


def html_to_markdown(html_content: str) -> str:
    """Convert HTML to markdown-like plain text.

    This function performs an HTML cleanup using BeautifulSoup before
    calling ``markdownify``.

    Args:
        html_content: Raw HTML string.

    Returns:
        str: Markdown formatted text.
    """
    if not html_content:
        return ""

    soup = BeautifulSoup(html_content, "html.parser")
    for element in soup(_NON_CONTENT_TAGS):
        element.decompose()

    return md(str(soup), heading_style="ATX")


def normalize_newlines(text: str) -> str:
    """Use ``\\n`` line endings and collapse 3+ consecutive newlines to 2.

    Args:
        text: Raw text.

    Returns:
        str: Normalized text.
    """
    if not text:
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+\n", "\n", text)
    return re.sub(r"\n{3,}", "\n\n", text)


def body_to_text(body_content: str, content_type: str = "text") -> str:
    """Turn a message body into plain text with line structure.

    This is the main entrypoint used by the extractor.

    Args:
        body_content: Raw body content.
        content_type: ``html`` or ``text`` (case-insensitive).

    Returns:
        str: Plain text body.
    """
    if not body_content:
        return ""

    if (content_type or "").lower() == "html":
        return normalize_newlines(html_to_markdown(body_content)).strip()

    return normalize_newlines(body_content)
