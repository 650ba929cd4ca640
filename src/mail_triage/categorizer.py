"""Classification of a single message.

Objective:
    Turn :class:`src.mail_triage.models.ExtractedContent` into a
    :class:`src.mail_triage.models.ClassificationOutcome` naming one of the
    configured classification keys.

Core strategy:
    1. Local rules (when enabled). A match short-circuits everything else.
    2. The AI endpoint, when AI classification is enabled and either
       ``UseAiForUnmatched`` is set or there are no active rules. Each call
       is paced by the rate limiter and retried with backoff.
    3. The default classification, with ``success=False``.

High-level call tree:
    - :class:`EmailCategorizer`
        - :meth:`EmailCategorizer.classify`
            - :meth:`src.mail_triage.rules.RuleMatcher.match`
            - :meth:`EmailCategorizer.classify_with_retry`
                - :meth:`src.mail_triage.rate_limiter.RateLimiter.wait_for_slot`
                - :meth:`EmailCategorizer.classify_once`
                    - :meth:`src.mail_triage.prompts.PromptBuilder.build`
                    - :meth:`src.mail_triage.ai_client.AiClassifierClient.send`
                    - :meth:`src.mail_triage.normalizer.ResponseNormalizer.normalize`

Retry policy (attempts are 1-based, up to ``Retry.MaxAttempts``):
    - Rate limited: cooldown ``base + base * 2^attempt`` (always waited).
    - Timeout / connection failure: ``TimeoutRetryBase * ExponentialBase^attempt``.
    - Any other API error: ``ErrorRetryBase * ExponentialBase^attempt``.
    - Every failure counts toward the consecutive-failure threshold that
      triggers the extended cooldown.
"""

import logging
from typing import Optional

from .ai_client import AiClassifierClient
from .config import EngineConfig
from .errors import MailTriageError, RateLimitError, TransientNetworkError
from .models import ClassificationMethod, ClassificationOutcome, ExtractedContent
from .normalizer import ResponseNormalizer, resolve_default_classification
from .prompts import PromptBuilder
from .rate_limiter import RateLimiter
from .rules import RuleMatcher

logger = logging.getLogger(__name__)


class EmailCategorizer:
    """
    Rule-first, AI-second message classifier.

    This class is instantiated once per batch. The rate limiter it receives
    carries the pacing state of that batch.

    Attributes:
        config: Engine configuration.
        rate_limiter: Pacing and backoff controller.
        client: AI endpoint client.
    """

    def __init__(
        self,
        config: EngineConfig,
        rate_limiter: RateLimiter,
        client: Optional[AiClassifierClient] = None,
    ) -> None:
        """
        Initialize the categorizer.

        Args:
            config: Engine configuration.
            rate_limiter: Rate limiter shared with the orchestrator.
            client: AI client (built from ``ApiSettings`` when omitted).
        """
        self.config = config
        self.settings = config.classification_settings
        self.rate_limiter = rate_limiter
        self.client = client or AiClassifierClient(config.api_settings, self.settings)
        self.prompts = PromptBuilder(self.settings)
        self.normalizer = ResponseNormalizer.from_settings(self.settings)
        self.rules = RuleMatcher(self.settings.pre_processing_rules.rules)
        self.default_key = resolve_default_classification(self.settings)

    @property
    def ai_enabled(self) -> bool:
        ai = self.settings.ai_classification
        if not ai.enable_ai_classification:
            return False
        return ai.use_ai_for_unmatched or not self.settings.rules_enabled

    def default_outcome(self) -> ClassificationOutcome:
        return ClassificationOutcome(
            success=False,
            classification_key=self.default_key,
            method=ClassificationMethod.DEFAULT,
        )

    def classify_with_rules(self, content: ExtractedContent) -> Optional[str]:
        """Key of the first matching rule, or None."""
        if not self.settings.rules_enabled:
            return None

        key = self.rules.match(content)
        if key is not None and key not in self.settings.classifications:
            logger.warning(f"Rule classification '{key}' is not a configured key; ignoring")
            return None
        return key

    def classify_once(self, content: ExtractedContent) -> str:
        """
        Make a single AI attempt.

        Args:
            content: Extracted message content.

        Returns:
            str: Normalized classification key.

        Raises:
            MailTriageError: Any failure reported by the AI client.
        """
        prompt = self.prompts.build(content)
        raw = self.client.send(prompt)
        key = self.normalizer.normalize(raw)
        logger.debug(f"AI answer '{raw[:100]}' normalized to {key}")
        return key

    def classify_with_retry(self, content: ExtractedContent) -> ClassificationOutcome:
        """
        Classify with the AI endpoint, retrying with backoff.

        Args:
            content: Extracted message content.

        Returns:
            ClassificationOutcome: AI outcome, or the default outcome once all
            attempts failed.
        """
        limiter = self.rate_limiter
        max_attempts = self.settings.retry.max_attempts

        for attempt in range(1, max_attempts + 1):
            limiter.wait_for_slot()
            limiter.record_attempt()

            try:
                key = self.classify_once(content)
            except RateLimitError as e:
                logger.warning(f"Attempt {attempt}/{max_attempts} rate limited: {e}")
                limiter.handle_rate_limit(attempt)
                limiter.register_failure()
                continue
            except TransientNetworkError as e:
                logger.warning(f"Attempt {attempt}/{max_attempts} timed out: {e}")
                if attempt < max_attempts:
                    limiter.wait_with_progress(limiter.timeout_delay(attempt), "Timeout retry")
                limiter.register_failure()
                continue
            except MailTriageError as e:
                logger.warning(f"Attempt {attempt}/{max_attempts} failed: {e}")
                if attempt < max_attempts:
                    limiter.wait_with_progress(limiter.error_delay(attempt), "Error retry")
                limiter.register_failure()
                continue

            limiter.register_success()
            return ClassificationOutcome(
                success=True,
                classification_key=key,
                method=ClassificationMethod.AI,
            )

        logger.warning(
            "AI classification failed after %s attempts; using default %s",
            max_attempts,
            self.default_key,
        )
        return self.default_outcome()

    def classify(self, content: ExtractedContent) -> ClassificationOutcome:
        """
        Classify one message.

        This is the primary entrypoint used by the orchestrator.

        Args:
            content: Extracted message content.

        Returns:
            ClassificationOutcome: Rule, AI or default outcome.
        """
        key = self.classify_with_rules(content)
        if key is not None:
            logger.info(f"Rule match for '{content.subject[:60]}': {key}")
            self.rate_limiter.register_success()
            return ClassificationOutcome(
                success=True,
                classification_key=key,
                method=ClassificationMethod.RULE,
            )

        if self.ai_enabled:
            return self.classify_with_retry(content)

        logger.debug("No rule matched and AI is not used; using default")
        return self.default_outcome()
