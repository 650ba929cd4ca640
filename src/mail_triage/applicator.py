"""Applying a classification to a message.

Objective:
    Give a message the visual treatment configured for its classification:
    importance, flag, category and subject prefix. Applying the same key
    twice leaves the message unchanged, so batches can be re-run safely.

Steps (see :meth:`ClassificationApplicator.apply`):
    1. Importance from the definition (default ``normal``).
    2. Flag: a colour sets ``flagged`` plus the icon; anything else clears it.
       A non-empty flag request text is written as-is.
    3. Categories: drop every category owned by the engine (configured
       prefixes, keys, and names containing a classification keyword), then
       add the target category once.
    4. Subject: only when the definition has a prefix. Old AI tags are
       stripped, then the prefix is prepended unless already present.
    5. Save through the mailbox.

High-level call tree:
    - :class:`ClassificationApplicator`
        - :meth:`ClassificationApplicator.apply`
            - :func:`src.mail_triage.indicators.parse_importance`
            - :func:`src.mail_triage.indicators.parse_flag_icon`
            - :meth:`ClassificationApplicator.merge_categories`
            - :meth:`ClassificationApplicator.prefixed_subject`
        - :meth:`ClassificationApplicator.ensure_categories`

Operational notes:
    Persistence is one ``save`` per message and is not transactional: if the
    save fails the mailbox keeps whatever it had before.
"""

import logging

from .config import ClassificationDefinition, EngineConfig
from .extractor import strip_ai_tags
from .indicators import parse_category_color, parse_flag_icon, parse_importance
from .mailbox import Mailbox
from .models import MailMessage

logger = logging.getLogger(__name__)


class ClassificationApplicator:
    """
    Writes classification results back to the mailbox.

    Attributes:
        config: Engine configuration.
        mailbox: Mailbox used to persist messages and categories.
    """

    def __init__(self, config: EngineConfig, mailbox: Mailbox) -> None:
        self.config = config
        self.mailbox = mailbox
        self.settings = config.classification_settings

    def category_name(self, key: str) -> str:
        """Category shown for a key: its prefix, or the key itself."""
        definition = self.settings.classifications.get(key)
        if definition is not None and definition.category_prefix.strip():
            return definition.category_prefix.strip()
        return key

    def _owned_markers(self) -> list[str]:
        markers = [k.strip().upper() for k in self.settings.content.classification_keywords]
        for key, definition in self.settings.classifications.items():
            markers.append(key.upper())
            if definition.category_prefix.strip():
                markers.append(definition.category_prefix.strip().upper())
        return [m for m in markers if m]

    def is_owned_category(self, category: str) -> bool:
        """Whether a category was (or could have been) set by the engine."""
        upper = category.upper()
        return any(marker in upper for marker in self._owned_markers())

    def merge_categories(self, existing: list[str], target: str) -> list[str]:
        """
        Replace engine-owned categories with the target category.

        Args:
            existing: Current categories (entries may be comma-joined).
            target: Category to assign.

        Returns:
            list[str]: Unowned categories, in order, followed by the target.
            Duplicates are removed case-insensitively.
        """
        result: list[str] = []
        seen: set[str] = set()

        for entry in existing:
            for category in entry.split(","):
                category = category.strip()
                if not category or self.is_owned_category(category):
                    continue
                if category.lower() not in seen:
                    seen.add(category.lower())
                    result.append(category)

        if target.lower() not in seen:
            result.append(target)
        return result

    def prefixed_subject(self, subject: str, prefix: str) -> str:
        """Subject with AI tags removed and ``prefix`` prepended once."""
        cleaned = strip_ai_tags(subject or "", self.settings.content.ai_tag_patterns)
        if cleaned.lower().startswith(prefix.lower()):
            return cleaned
        return f"{prefix} {cleaned}".strip()

    def _apply_flag(self, message: MailMessage, definition: ClassificationDefinition) -> None:
        icon = parse_flag_icon(
            definition.flag_icon, self.settings.normalization.flag_icon_synonyms
        )
        if icon is not None:
            message.flag_status = "flagged"
            message.flag_icon = icon
        else:
            message.flag_status = "notFlagged"
            message.flag_icon = None

        if definition.flag_request.strip():
            message.flag_request = definition.flag_request.strip()

    def apply(self, message: MailMessage, key: str) -> bool:
        """
        Apply the treatment of ``key`` to a message and save it.

        Args:
            message: Message to update in place.
            key: Classification key.

        Returns:
            bool: True if the message was updated and saved, False for an
            unknown key.
        """
        definition = self.settings.classifications.get(key)
        if definition is None:
            logger.warning(f"No definition for classification '{key}'; message {message.id} left unchanged")
            return False

        normalization = self.settings.normalization
        message.importance = parse_importance(
            definition.importance,
            normalization.importance_synonyms,
            normalization.default_importance,
        )

        self._apply_flag(message, definition)

        message.categories = self.merge_categories(message.categories, self.category_name(key))

        prefix = definition.subject_prefix.strip()
        if prefix:
            message.subject = self.prefixed_subject(message.subject, prefix)

        self.mailbox.save(message)
        logger.debug(
            "Applied %s to %s (categories=%s, importance=%s)",
            key,
            message.id,
            message.categories,
            message.importance,
        )
        return True

    def ensure_categories(self) -> list[str]:
        """
        Create missing master categories for every configured key.

        Existence is checked case-insensitively. Creation failures are logged
        and skipped; they never abort a batch.

        Returns:
            list[str]: Names of the categories that were created.
        """
        try:
            existing = {c.display_name.lower() for c in self.mailbox.list_categories()}
        except Exception as e:
            logger.warning(f"Could not read master categories: {e}")
            return []

        normalization = self.settings.normalization
        created = []
        for key, definition in self.settings.classifications.items():
            name = self.category_name(key)
            if name.lower() in existing:
                continue

            color = parse_category_color(
                definition.category_color,
                normalization.category_color_synonyms,
                normalization.default_category_color,
            )
            try:
                self.mailbox.create_category(name, color)
                existing.add(name.lower())
                created.append(name)
                logger.info(f"Created category '{name}' ({color})")
            except Exception as e:
                logger.warning(f"Failed to create category '{name}': {e}")

        return created
