"""Batch orchestrator.

Objective:
    Coordinate one batch run over the unread messages of a folder:
    1) List unread messages
    2) Ask for confirmation (optional)
    3) Ensure the configured categories exist
    4) For each message: pace, extract, classify, apply
    5) Return a :class:`src.mail_triage.models.BatchSummary`

Responsibilities:
    - Compose the engine components (categorizer, applicator, rate limiter)
      around a :class:`src.mail_triage.mailbox.Mailbox`.
    - Report progress through a ``(status_text, current, total)`` callback.
    - Keep the batch going when a single message fails.

High-level call tree:
    - :class:`BatchOrchestrator`
        - :meth:`BatchOrchestrator.run`
            - :meth:`Mailbox.list_unread`
            - :meth:`ClassificationApplicator.ensure_categories`
            - for each message:
                - :meth:`RateLimiter.wait_for_slot`
                - :meth:`BatchOrchestrator.process_message`
                    - :func:`src.mail_triage.extractor.extract_from_message`
                    - :meth:`EmailCategorizer.classify`
                    - :meth:`ClassificationApplicator.apply`

Operational notes:
    - Runs are synchronous; the calling thread blocks on HTTP calls and
      cooldowns. A second ``run`` on the same orchestrator while one is in
      progress raises :class:`BatchInProgressError`.
    - Rate-limit state is reset at the start of every run.
    - A message that fails for any reason is counted as failed and still
      receives the default classification (best effort).
"""

import logging
import threading
import time
from typing import Callable, Optional

from .applicator import ClassificationApplicator
from .categorizer import EmailCategorizer
from .config import EngineConfig
from .errors import BatchInProgressError, FatalBatchError
from .extractor import extract_from_message
from .mailbox import Mailbox
from .models import BatchSummary, ClassificationMethod, MailMessage, ProcessingResult
from .rate_limiter import ProgressCallback, RateLimiter
from .templates import format_duration, format_template, truncate

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], bool]


class BatchOrchestrator:
    """
    Runs classification batches against a mailbox.

    This class is intentionally "glue" code: it connects the mailbox,
    categorizer and applicator without embedding classification rules.

    Attributes:
        config: Engine configuration.
        mailbox: Mailbox to read from and write to.
        rate_limiter: Pacing state shared with the categorizer.
        categorizer: Message classifier.
        applicator: Writes classifications back.
        progress: Optional progress sink.
    """

    def __init__(
        self,
        config: EngineConfig,
        mailbox: Mailbox,
        categorizer: Optional[EmailCategorizer] = None,
        applicator: Optional[ClassificationApplicator] = None,
        rate_limiter: Optional[RateLimiter] = None,
        progress: Optional[ProgressCallback] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the orchestrator with all components.

        Components that are not provided are built from ``config``.

        Args:
            config: Engine configuration.
            mailbox: Mailbox implementation.
            categorizer: Classifier (shares ``rate_limiter``).
            applicator: Classification writer.
            rate_limiter: Pacing controller.
            progress: Callback receiving ``(text, current, total)``.
            clock: Monotonic clock used by a built rate limiter.
            sleep: Sleep function used by a built rate limiter.
        """
        self.config = config
        self.settings = config.classification_settings
        self.mailbox = mailbox
        self.progress = progress

        if rate_limiter is None:
            if categorizer is not None:
                rate_limiter = categorizer.rate_limiter
            else:
                rate_limiter = RateLimiter(self.settings, progress=progress, clock=clock, sleep=sleep)
        self.rate_limiter = rate_limiter
        self.categorizer = categorizer or EmailCategorizer(config, rate_limiter)
        self.applicator = applicator or ClassificationApplicator(config, mailbox)
        self._run_lock = threading.Lock()

    def _report(self, text: str, current: int, total: int) -> None:
        logger.info(text)
        if self.progress is not None:
            self.progress(text, current, total)

    def status_text(self, current: int, total: int, subject: str) -> str:
        """Progress line for one message, with the cooldown suffix while paused."""
        debug = self.settings.debug
        preview = truncate(subject or "", debug.content_preview_length, debug.truncation_indicator)
        text = format_template(
            self.settings.progress.status_template,
            {"CURRENT": current, "TOTAL": total, "SUBJECT": preview},
        )

        remaining = self.rate_limiter.cooldown_remaining()
        if remaining > 0:
            text += format_template(
                self.settings.progress.cooldown_template, {"TIME": format_duration(remaining)}
            )
        return text

    def confirmation_message(self, count: int, folder_name: str) -> str:
        ai_status = "Enabled" if self.settings.ai_classification.enable_ai_classification else "Disabled"
        rule_status = "Enabled" if self.settings.rules_enabled else "Disabled"
        return format_template(
            self.settings.messages.confirm_classification,
            {
                "COUNT": count,
                "FOLDER": folder_name,
                "AI_STATUS": ai_status,
                "RULE_STATUS": rule_status,
            },
        )

    def completion_message(self, summary: BatchSummary) -> str:
        return format_template(
            self.settings.messages.completion_summary,
            {
                "PROCESSED": summary.processed,
                "SUCCESS": summary.successful,
                "FAILED": summary.failed,
            },
        )

    def _apply_default(self, message: MailMessage) -> None:
        try:
            self.applicator.apply(message, self.categorizer.default_key)
        except Exception as e:
            logger.warning(f"Could not apply default classification to {message.id}: {e}")

    def process_message(self, message: MailMessage, dry_run: bool = False) -> ProcessingResult:
        """
        Classify one message and apply the result.

        Errors are caught and returned inside :class:`ProcessingResult` so
        that a batch can continue with the next message.

        Args:
            message: Message to process.
            dry_run: Classify without writing anything back.

        Returns:
            ProcessingResult: Result of processing.
        """
        original_subject = message.subject
        try:
            content = extract_from_message(message, self.config)
            outcome = self.categorizer.classify(content)

            if not dry_run:
                self.applicator.apply(message, outcome.classification_key)

            logger.info(
                f"Classified '{original_subject[:60]}' as {outcome.classification_key} "
                f"({outcome.method.value})"
            )
            return ProcessingResult(
                message_id=message.id,
                subject=original_subject,
                sender=message.sender,
                classification_key=outcome.classification_key,
                method=outcome.method,
                success=outcome.success,
                error=None if outcome.success else "Classification failed; default applied",
            )

        except Exception as e:
            logger.exception(f"Error processing message {message.id}")
            if not dry_run:
                self._apply_default(message)
            return ProcessingResult(
                message_id=message.id,
                subject=original_subject,
                sender=message.sender,
                classification_key=self.categorizer.default_key,
                method=ClassificationMethod.DEFAULT,
                success=False,
                error=str(e),
            )

    def run(
        self,
        folder: str = "inbox",
        limit: Optional[int] = None,
        dry_run: bool = False,
        confirm: Optional[ConfirmCallback] = None,
    ) -> BatchSummary:
        """
        Run one batch.

        Args:
            folder: Folder to classify (well-known name or id).
            limit: Maximum number of unread messages (None for all).
            dry_run: Classify without writing anything back.
            confirm: Called with the confirmation text; returning False
                cancels the batch before any message is touched.

        Returns:
            BatchSummary: Counters and per-message results.

        Raises:
            BatchInProgressError: If a batch is already running.
            FatalBatchError: If the unread messages cannot be listed.
        """
        if not self._run_lock.acquire(blocking=False):
            raise BatchInProgressError("A classification batch is already running")

        try:
            self.rate_limiter.reset()

            try:
                folder_name = self.mailbox.folder_name(folder)
                messages = self.mailbox.list_unread(folder, limit)
            except Exception as e:
                raise FatalBatchError(f"Could not list unread messages in '{folder}': {e}") from e

            summary = BatchSummary(folder=folder_name)
            if not messages:
                self._report(
                    format_template(self.settings.messages.no_unread_emails, {"FOLDER": folder_name}),
                    0,
                    0,
                )
                return summary

            if confirm is not None and not confirm(self.confirmation_message(len(messages), folder_name)):
                logger.info("Batch cancelled before processing")
                summary.cancelled = True
                return summary

            if not dry_run:
                self.applicator.ensure_categories()

            total = len(messages)
            logger.info(f"Processing {total} unread messages in {folder_name}")

            for index, message in enumerate(messages, start=1):
                self._report(self.status_text(index, total, message.subject), index, total)
                self.rate_limiter.wait_for_slot()

                result = self.process_message(message, dry_run=dry_run)
                summary.results.append(result)
                summary.processed += 1
                if result.success:
                    summary.successful += 1
                else:
                    summary.failed += 1

            self._report(self.completion_message(summary), total, total)
            return summary

        finally:
            self._run_lock.release()
