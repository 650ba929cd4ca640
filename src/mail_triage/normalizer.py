"""Mapping free-text AI answers onto configured classification keys."""

import logging
from typing import Iterable, Optional

from .config import ClassificationSettings

logger = logging.getLogger(__name__)


def resolve_default_classification(settings: ClassificationSettings) -> str:
    """Pick the key used whenever a message cannot be classified.

    The first entry of ``Retry.DefaultFallbackOrder`` that names a configured
    key wins; otherwise the first configured key.

    Args:
        settings: Classification settings.

    Returns:
        str: Default classification key.
    """
    keys = settings.classification_keys
    for candidate in settings.retry.default_fallback_order:
        if candidate in settings.classifications:
            return candidate
    return keys[0]


class ResponseNormalizer:
    """
    Normalizes raw AI answers to a configured key.

    Attributes:
        keys: Classification keys in declaration order.
        default_key: Key returned when the answer is unusable.
        no_content_indicators: Phrases meaning "the model had nothing to say".
    """

    def __init__(
        self,
        keys: Iterable[str],
        default_key: str,
        no_content_indicators: Optional[Iterable[str]] = None,
    ) -> None:
        self.keys = list(keys)
        self.default_key = default_key
        self.no_content_indicators = [
            i.upper() for i in (no_content_indicators or []) if i and i.strip()
        ]

    @classmethod
    def from_settings(cls, settings: ClassificationSettings) -> "ResponseNormalizer":
        return cls(
            settings.classification_keys,
            resolve_default_classification(settings),
            settings.api_response.no_content_indicators,
        )

    def normalize(self, raw: Optional[str]) -> str:
        """
        Map an answer to a configured key.

        Args:
            raw: Raw answer text.

        Returns:
            str: Exact key match, else the first key contained in the answer,
            else the default key.
        """
        if not raw or not raw.strip():
            return self.default_key

        answer = raw.strip().upper()

        if any(indicator in answer for indicator in self.no_content_indicators):
            logger.debug("AI answer has a no-content indicator; using default")
            return self.default_key

        for key in self.keys:
            if answer == key.upper():
                return key

        for key in self.keys:
            if key.upper() in answer:
                return key

        logger.debug("AI answer '%s' matched no key; using default", answer[:100])
        return self.default_key
