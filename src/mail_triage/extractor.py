"""Content extraction.

Objective:
    Reduce a raw message to the canonical (subject, sender, body) triple used
    for rule matching and prompting. Every step is a pure string transform; no
    network or rule logic happens here.

Pipeline (see :func:`extract_content`):
    1. Strip previously added AI subject tags (configured regexes).
    2. Cut the body at the earliest thread separator (reply markers, quoted
       headers).
    3. Cut the body at the first signature line.
    4. If nothing is left, fall back to a preview of the original body, then
       to a template built from the subject.
    5. Cap the body length.

High-level call tree:
    - :func:`extract_from_message`
        - :func:`src.mail_triage.sanitizer.body_to_text`
        - :func:`extract_content`
            - :func:`strip_ai_tags`
            - :func:`truncate_at_separator`
            - :func:`strip_signature`
"""

import logging
import re
from typing import Iterable, Optional

from .config import DEFAULT_SEPARATORS, EngineConfig
from .models import ExtractedContent, MailMessage
from .sanitizer import body_to_text
from .templates import format_template, truncate

logger = logging.getLogger(__name__)

DEFAULT_MAX_BODY_LENGTH = 800


def strip_ai_tags(subject: Optional[str], patterns: Iterable[str]) -> str:
    """Remove every configured AI tag pattern from a subject.

    Args:
        subject: Subject line.
        patterns: Regular expressions, matched case-insensitively.

    Returns:
        str: Cleaned, trimmed subject.
    """
    if not subject or not subject.strip():
        return subject or ""

    cleaned = subject
    for pattern in patterns:
        cleaned = re.sub(pattern, "", cleaned, flags=re.IGNORECASE)
    return cleaned.strip()


def collect_separators(config: EngineConfig) -> list[str]:
    """Thread separators from both config sections, or the built-in list."""
    separators = list(config.classification_settings.email_processing.content_separators)
    separators.extend(config.email_settings.message_separators)
    if not separators:
        separators = list(DEFAULT_SEPARATORS)
    return separators


def truncate_at_separator(body: str, separators: Iterable[str]) -> str:
    """Cut the body at the earliest separator found after position 0.

    A separator at the very start of the body is ignored so that a message
    consisting only of a forwarded thread keeps its content.

    Args:
        body: Body text.
        separators: Marker strings, compared case-insensitively.

    Returns:
        str: Body up to the first separator, trimmed.
    """
    lowered = body.lower()
    first = -1
    for separator in separators:
        if not separator or not separator.strip():
            continue
        pos = lowered.find(separator.lower())
        if pos > 0 and (first == -1 or pos < first):
            first = pos

    if first > 0:
        return body[:first].strip()
    return body


def strip_signature(body: str, prefixes: Iterable[str]) -> str:
    """Keep lines until the first one that starts with a signature prefix.

    Args:
        body: Body text.
        prefixes: Signature markers such as ``"--"`` or ``"Best regards"``.

    Returns:
        str: Body without the signature block, trimmed.
    """
    lowered_prefixes = [p.lower() for p in prefixes if p]
    if not lowered_prefixes:
        return body

    kept = []
    for line in body.splitlines():
        stripped = line.strip().lower()
        if any(stripped.startswith(prefix) for prefix in lowered_prefixes):
            break
        kept.append(line)

    return "\n".join(kept).strip()


def extract_content(
    subject: Optional[str],
    sender: Optional[str],
    body: Optional[str],
    config: EngineConfig,
) -> ExtractedContent:
    """Build the canonical content for one message.

    Args:
        subject: Raw subject.
        sender: Sender address or display name.
        body: Plain-text body.
        config: Engine configuration.

    Returns:
        ExtractedContent: Trimmed subject, sender and body.
    """
    settings = config.classification_settings
    marker = settings.debug.truncation_indicator

    clean_subject = strip_ai_tags(subject or "", settings.content.ai_tag_patterns)
    original_body = body or ""

    text = truncate_at_separator(original_body, collect_separators(config))

    if config.email_settings.signature_prefixes:
        text = strip_signature(text, config.email_settings.signature_prefixes)

    if not text.strip() and original_body.strip():
        text = truncate(
            original_body.strip(),
            settings.content.empty_content_fallback_length,
            marker,
        )

    if not text.strip():
        text = format_template(
            settings.content.fallback_content_template,
            {"SUBJECT": clean_subject},
        )
        logger.debug("Body empty after extraction; using subject fallback")

    max_length = settings.email_processing.max_body_length or DEFAULT_MAX_BODY_LENGTH
    text = truncate(text, max_length, marker)

    return ExtractedContent(
        subject=clean_subject.strip(),
        sender=(sender or "").strip(),
        body=text.strip(),
    )


def extract_from_message(message: MailMessage, config: EngineConfig) -> ExtractedContent:
    """Extract content from a mailbox message, converting HTML bodies first.

    Args:
        message: Message read from the mailbox.
        config: Engine configuration.

    Returns:
        ExtractedContent: Canonical content.
    """
    body = body_to_text(message.body, message.body_content_type)
    return extract_content(message.subject, message.sender, body, config)
