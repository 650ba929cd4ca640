"""Pydantic data models used across the application.

Objective:
    Centralize the strongly-typed data structures that flow through a batch:
    - Mail messages as read from (and written back to) the mailbox
    - Canonical content derived from a message for matching and prompting
    - Classification outcomes and per-message processing results
    - The aggregate summary returned at the end of a batch

Design notes:
    - :class:`MailMessage` uses Pydantic aliases matching Microsoft Graph field
      names (``flagStatus``, ``contentType``) and
      ``model_config = ConfigDict(populate_by_name=True)`` so tests and the
      in-memory mailbox can construct it with pythonic names.
    - :class:`ExtractedContent` and :class:`ClassificationOutcome` are frozen;
      they are derived values, never edited in place.
    - :class:`MailMessage` is the only mutable model. It is changed exclusively
      by :class:`src.mail_triage.applicator.ClassificationApplicator`.

Call tree usage:
    - :class:`src.mail_triage.email_client.GraphMailbox` /
      :class:`src.mail_triage.mailbox.InMemoryMailbox`:
        - produce :class:`MailMessage` and :class:`MailCategory`
    - :func:`src.mail_triage.extractor.extract_content`:
        - returns :class:`ExtractedContent`
    - :class:`src.mail_triage.categorizer.EmailCategorizer`:
        - returns :class:`ClassificationOutcome`
    - :class:`src.mail_triage.orchestrator.BatchOrchestrator`:
        - returns :class:`BatchSummary` of :class:`ProcessingResult`
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FlagIcon(int, Enum):
    """Outlook flag colours (values of the MAPI ``PidTagFlagIcon`` property)."""

    PURPLE = 1
    ORANGE = 2
    GREEN = 3
    YELLOW = 4
    BLUE = 5
    RED = 6


class ClassificationMethod(str, Enum):
    """Which stage produced a classification."""

    RULE = "rule"
    AI = "ai"
    DEFAULT = "default"


class MailMessage(BaseModel):
    """
    A mail message as seen by the classification engine.

    Attributes:
        id: Unique message ID.
        subject: Subject line.
        sender: Sender email address (or display name when no address).
        body: Body content.
        body_content_type: ``text`` or ``html``.
        categories: Assigned category names, in order.
        importance: ``low``, ``normal`` or ``high``.
        flag_status: ``notFlagged`` or ``flagged``.
        flag_icon: Flag colour, if flagged.
        flag_request: Flag request text (e.g. "Follow up").
    """

    id: str
    subject: str = ""
    sender: str = ""
    body: str = ""
    body_content_type: str = Field(default="text", alias="contentType")
    categories: list[str] = Field(default_factory=list)
    importance: str = "normal"
    flag_status: str = Field(default="notFlagged", alias="flagStatus")
    flag_icon: Optional[FlagIcon] = Field(default=None, alias="flagIcon")
    flag_request: str = Field(default="", alias="flagRequest")

    model_config = ConfigDict(populate_by_name=True)


class MailCategory(BaseModel):
    """A category definition in the mailbox's master category list."""

    display_name: str = Field(alias="displayName")
    color: str = "none"

    model_config = ConfigDict(populate_by_name=True)


class ExtractedContent(BaseModel):
    """Canonical text used for rule matching and prompting."""

    subject: str = ""
    sender: str = ""
    body: str = ""

    model_config = ConfigDict(frozen=True)


class ClassificationOutcome(BaseModel):
    """
    Result of classifying a single message.

    Attributes:
        success: True when a rule or a valid AI answer produced the key.
        classification_key: Configured key to apply. On failure this is the
            default classification.
        method: Stage that produced the key.
    """

    success: bool
    classification_key: str
    method: ClassificationMethod = ClassificationMethod.DEFAULT

    model_config = ConfigDict(frozen=True)


class ProcessingResult(BaseModel):
    """
    Result of processing a single message in a batch.

    This is the primary per-message output returned to the CLI.

    Attributes:
        message_id: Original message ID.
        subject: Message subject (before any prefix was added).
        sender: Sender address.
        classification_key: Key that was applied.
        method: Stage that produced the key.
        success: Whether classification succeeded.
        error: Error message if processing failed.
    """

    message_id: str
    subject: str = ""
    sender: str = ""
    classification_key: str
    method: ClassificationMethod = ClassificationMethod.DEFAULT
    success: bool = True
    error: Optional[str] = None


class BatchSummary(BaseModel):
    """Aggregate counters for one batch run.

    ``cancelled`` is set when the run was declined at the confirmation step.
    """

    folder: str = ""
    processed: int = 0
    successful: int = 0
    failed: int = 0
    cancelled: bool = False
    results: list[ProcessingResult] = Field(default_factory=list)
