"""Classification prompt construction.

Objective:
    Render the text sent to the AI service for one message.

Modes:
    - Static: the configured ``Prompt`` with content placeholders
      (``{SUBJECT}``, ``{SENDER}``, ``{BODY}``, and the combined content as
      ``{EMAIL_CONTENT}`` / ``{CONTENT}`` / ``{EMAIL}``).
    - Dynamic: enabled by ``DynamicPrompts.IncludeAvailableCategories``. The
      template (``DynamicPrompts.PromptTemplate``, falling back to
      ``Prompt``) additionally receives ``{AVAILABLE_CATEGORIES}`` and
      ``{CATEGORY_DESCRIPTIONS}`` built from the configured keys.

Prompts are stored as free text that can include JSON examples, so
substitution is literal replacement of known placeholders (never
``str.format``).
"""

import logging

from .config import ClassificationSettings
from .models import ExtractedContent
from .templates import format_template

logger = logging.getLogger(__name__)

NO_SUBJECT = "[No Subject]"
NO_SENDER = "[No Sender]"
NO_BODY = "[No Body]"


def _content_values(content: ExtractedContent) -> dict[str, str]:
    subject = content.subject or NO_SUBJECT
    sender = content.sender or NO_SENDER
    body = content.body or NO_BODY
    combined = f"Subject: {subject}\nSender: {sender}\nContent: {body}"
    return {
        "{SUBJECT}": subject,
        "{SENDER}": sender,
        "{BODY}": body,
        "{EMAIL_CONTENT}": combined,
        "{CONTENT}": combined,
        "{EMAIL}": combined,
    }


class PromptBuilder:
    """
    Builds classification prompts from the engine configuration.

    Attributes:
        settings: Classification settings (prompt, keys, dynamic prompt
            options).
    """

    def __init__(self, settings: ClassificationSettings) -> None:
        self.settings = settings

    @property
    def dynamic(self) -> bool:
        return self.settings.ai_classification.dynamic_prompts.include_available_categories

    def available_categories(self) -> str:
        """Comma-joined configured keys, in declaration order."""
        return ", ".join(self.settings.classification_keys)

    def category_descriptions(self) -> str:
        """One ``- KEY: description`` line per configured key.

        Keys without a configured description get ``"KEY emails"``.
        """
        descriptions = self.settings.ai_classification.dynamic_prompts.category_descriptions
        lines = []
        for key in self.settings.classification_keys:
            description = descriptions.get(key) or f"{key} emails"
            lines.append(f"- {key}: {description}")
        return "\n".join(lines)

    def build_static(self, content: ExtractedContent) -> str:
        return format_template(self.settings.prompt, _content_values(content))

    def build_dynamic(self, content: ExtractedContent) -> str:
        template = (
            self.settings.ai_classification.dynamic_prompts.prompt_template
            or self.settings.prompt
        )
        values = {
            "{AVAILABLE_CATEGORIES}": self.available_categories(),
            "{CATEGORY_DESCRIPTIONS}": self.category_descriptions(),
        }
        values.update(_content_values(content))
        prompt = format_template(template, values)
        logger.debug("Dynamic prompt generated (%s chars)", len(prompt))
        return prompt

    def build(self, content: ExtractedContent) -> str:
        """
        Build the prompt for one message.

        Args:
            content: Extracted message content.

        Returns:
            str: Prompt text.
        """
        if self.dynamic:
            return self.build_dynamic(content)
        return self.build_static(content)
