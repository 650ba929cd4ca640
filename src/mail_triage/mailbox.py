"""Mailbox access protocol and an in-memory implementation.

Objective:
    Keep the engine independent of where messages live. The orchestrator and
    the applicator talk to a :class:`Mailbox`; production wires in
    :class:`src.mail_triage.email_client.GraphMailbox`, tests and dry runs use
    :class:`InMemoryMailbox`.

Operations:
    - ``folder_name(folder)``: display name for messages and summaries.
    - ``list_unread(folder, limit)``: unread messages, newest first.
    - ``save(message)``: persist subject, importance, categories and flag.
    - ``list_categories()`` / ``create_category(name, color)``: the master
      category list.
"""

import logging
from typing import Iterable, Optional, Protocol

from .models import MailCategory, MailMessage

logger = logging.getLogger(__name__)


class Mailbox(Protocol):
    """Narrow mailbox interface used by the engine."""

    def folder_name(self, folder: str) -> str: ...

    def list_unread(self, folder: str, limit: Optional[int] = None) -> list[MailMessage]: ...

    def save(self, message: MailMessage) -> None: ...

    def list_categories(self) -> list[MailCategory]: ...

    def create_category(self, name: str, color: str = "none") -> MailCategory: ...


class InMemoryMailbox:
    """
    Dict-backed mailbox.

    Messages are stored per folder. Every saved message is copied into
    :attr:`saved` so tests can assert on what would have been written.

    Attributes:
        folders: Folder key -> messages.
        unread: IDs of messages that are still unread.
        categories: Master category list.
        saved: Snapshot of every save, in order.
    """

    def __init__(
        self,
        messages: Optional[Iterable[MailMessage]] = None,
        folder: str = "inbox",
        categories: Optional[Iterable[MailCategory]] = None,
    ) -> None:
        self.folders: dict[str, list[MailMessage]] = {folder: list(messages or [])}
        self.unread: set[str] = {m.id for m in self.folders[folder]}
        self.categories: list[MailCategory] = list(categories or [])
        self.saved: list[MailMessage] = []

    def folder_name(self, folder: str) -> str:
        return folder.capitalize() if folder else "Inbox"

    def list_unread(self, folder: str, limit: Optional[int] = None) -> list[MailMessage]:
        messages = [m for m in self.folders.get(folder, []) if m.id in self.unread]
        if limit is not None:
            messages = messages[:limit]
        return messages

    def get(self, message_id: str) -> Optional[MailMessage]:
        for messages in self.folders.values():
            for message in messages:
                if message.id == message_id:
                    return message
        return None

    def save(self, message: MailMessage) -> None:
        self.saved.append(message.model_copy(deep=True))
        logger.debug("Saved message %s", message.id)

    def list_categories(self) -> list[MailCategory]:
        return list(self.categories)

    def create_category(self, name: str, color: str = "none") -> MailCategory:
        category = MailCategory(display_name=name, color=color)
        self.categories.append(category)
        return category
