"""
Tests for the batch orchestrator, driven through the in-memory mailbox.
"""

import threading
from unittest.mock import MagicMock

import pytest

from src.mail_triage.categorizer import EmailCategorizer
from src.mail_triage.config import parse_engine_config
from src.mail_triage.errors import BatchInProgressError, FatalBatchError, InvalidResponseError
from src.mail_triage.mailbox import InMemoryMailbox
from src.mail_triage.models import ClassificationMethod, MailMessage
from src.mail_triage.orchestrator import BatchOrchestrator
from src.mail_triage.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _raw_config() -> dict:
    return {
        "ApiSettings": {"ApiKey": "k", "ApiEndpoint": "https://ai.example.com"},
        "ClassificationSettings": {
            "Prompt": "Classify: {EMAIL_CONTENT}",
            "Classifications": {
                "FINANCE": {"CategoryPrefix": "AI: Finance", "SubjectPrefix": "[FIN]"},
                "URGENT": {"CategoryPrefix": "AI: Urgent", "Importance": "High", "FlagIcon": "Red"},
                "OTHER": {"CategoryPrefix": "AI: Other", "Importance": "Low"},
            },
            "RateLimiting": {},
            "EmailProcessing": {},
            "Messages": {
                "NoUnreadEmails": "Nothing unread in {FOLDER}",
                "ConfirmClassification": "{COUNT} in {FOLDER} AI={AI_STATUS} Rules={RULE_STATUS}",
                "CompletionSummary": "Done {PROCESSED}/{SUCCESS}/{FAILED}",
            },
            "PreProcessingRules": {
                "EnableRuleBasedClassification": True,
                "Rules": [
                    {
                        "Name": "Acme",
                        "Classification": "FINANCE",
                        "Conditions": {"SenderDomains": ["acme.com"]},
                    }
                ],
            },
            "Retry": {"DefaultFallbackOrder": ["OTHER"]},
            "Debug": {"ContentPreviewLength": 10},
        },
    }


@pytest.fixture
def config():
    return parse_engine_config(_raw_config())


@pytest.fixture
def clock():
    return FakeClock()


def _messages():
    return [
        MailMessage(id="1", subject="Invoice #123", sender="billing@acme.com", body="Attached."),
        MailMessage(id="2", subject="Prod outage tonight", sender="ops@example.com", body="Down."),
    ]


def _orchestrator(config, mailbox, clock, client, progress=None) -> BatchOrchestrator:
    limiter = RateLimiter(config.classification_settings, progress=progress, clock=clock, sleep=clock.sleep)
    categorizer = EmailCategorizer(config, limiter, client=client)
    return BatchOrchestrator(config, mailbox, categorizer=categorizer, progress=progress)


def test_run_classifies_and_applies(config, clock) -> None:
    mailbox = InMemoryMailbox(_messages())
    client = MagicMock()
    client.send.return_value = "URGENT"
    updates = []

    summary = _orchestrator(config, mailbox, clock, client, progress=lambda *a: updates.append(a)).run()

    assert summary.processed == 2
    assert summary.successful == 2
    assert summary.failed == 0
    assert [r.classification_key for r in summary.results] == ["FINANCE", "URGENT"]
    assert summary.results[0].method == ClassificationMethod.RULE
    assert summary.results[1].method == ClassificationMethod.AI
    client.send.assert_called_once()

    invoice = mailbox.get("1")
    assert invoice.subject == "[FIN] Invoice #123"
    assert invoice.categories == ["AI: Finance"]
    outage = mailbox.get("2")
    assert outage.importance == "high"
    assert outage.flag_status == "flagged"

    assert {c.display_name for c in mailbox.categories} == {"AI: Finance", "AI: Urgent", "AI: Other"}
    assert updates[0] == ("1/2: Invoice #1...", 1, 2)
    assert updates[-1] == ("Done 2/2/0", 2, 2)


def test_rerun_is_idempotent(config, clock) -> None:
    mailbox = InMemoryMailbox(_messages())
    client = MagicMock()
    client.send.return_value = "URGENT"
    orchestrator = _orchestrator(config, mailbox, clock, client)

    orchestrator.run()
    orchestrator.run()

    invoice = mailbox.get("1")
    assert invoice.categories == ["AI: Finance"]
    assert invoice.subject.count("[FIN]") == 1


def test_failed_ai_still_gets_default_treatment(config, clock) -> None:
    mailbox = InMemoryMailbox([_messages()[1]])
    client = MagicMock()
    client.send.side_effect = InvalidResponseError("No content found in AI response")

    summary = _orchestrator(config, mailbox, clock, client).run()

    assert summary.failed == 1
    assert summary.results[0].classification_key == "OTHER"
    assert summary.results[0].success is False
    outage = mailbox.get("2")
    assert outage.categories == ["AI: Other"]
    assert outage.importance == "low"


def test_unexpected_error_is_per_message(config, clock) -> None:
    mailbox = InMemoryMailbox(_messages())
    client = MagicMock()
    orchestrator = _orchestrator(config, mailbox, clock, client)
    fallback = orchestrator.categorizer.default_outcome()
    orchestrator.categorizer.classify = MagicMock(side_effect=[RuntimeError("kaboom"), fallback])

    summary = orchestrator.run()

    assert summary.processed == 2
    assert summary.failed == 2
    assert summary.results[0].error == "kaboom"
    assert mailbox.get("1").categories == ["AI: Other"]


def test_dry_run_writes_nothing(config, clock) -> None:
    mailbox = InMemoryMailbox(_messages())
    client = MagicMock()
    client.send.return_value = "URGENT"

    summary = _orchestrator(config, mailbox, clock, client).run(dry_run=True)

    assert summary.successful == 2
    assert mailbox.saved == []
    assert mailbox.categories == []
    assert mailbox.get("1").subject == "Invoice #123"


def test_no_unread_messages(config, clock) -> None:
    updates = []
    orchestrator = _orchestrator(config, InMemoryMailbox(), clock, MagicMock(), progress=lambda *a: updates.append(a))

    summary = orchestrator.run()

    assert summary.processed == 0
    assert updates == [("Nothing unread in Inbox", 0, 0)]


def test_limit_is_passed_to_mailbox(config, clock) -> None:
    mailbox = InMemoryMailbox(_messages())
    client = MagicMock()
    client.send.return_value = "URGENT"

    summary = _orchestrator(config, mailbox, clock, client).run(limit=1)

    assert summary.processed == 1


def test_declined_confirmation_cancels(config, clock) -> None:
    mailbox = InMemoryMailbox(_messages())
    confirm = MagicMock(return_value=False)

    summary = _orchestrator(config, mailbox, clock, MagicMock()).run(confirm=confirm)

    assert summary.cancelled is True
    assert mailbox.saved == []
    confirm.assert_called_once_with("2 in Inbox AI=Enabled Rules=Enabled")


def test_listing_failure_is_fatal(config, clock) -> None:
    mailbox = MagicMock()
    mailbox.list_unread.side_effect = ConnectionError("offline")

    with pytest.raises(FatalBatchError):
        _orchestrator(config, mailbox, clock, MagicMock()).run()


def test_concurrent_run_is_rejected(config, clock) -> None:
    orchestrator = _orchestrator(config, InMemoryMailbox(), clock, MagicMock())
    started = threading.Event()
    release = threading.Event()
    errors = []

    def blocking_list(folder, limit=None):
        started.set()
        release.wait(timeout=5)
        return []

    orchestrator.mailbox.list_unread = blocking_list

    worker = threading.Thread(target=orchestrator.run)
    worker.start()
    started.wait(timeout=5)
    try:
        orchestrator.run()
    except BatchInProgressError as e:
        errors.append(e)
    finally:
        release.set()
        worker.join(timeout=5)

    assert len(errors) == 1


def test_status_text_includes_cooldown(config, clock) -> None:
    orchestrator = _orchestrator(config, InMemoryMailbox(), clock, MagicMock())
    orchestrator.rate_limiter.pause(90)

    text = orchestrator.status_text(3, 7, "Short")

    assert text == "3/7: Short  [Cooldown 01:30]"


def test_rule_match_resets_failure_streak(clock) -> None:
    raw = _raw_config()
    raw["ClassificationSettings"]["RateLimiting"] = {"BaseCooldownSeconds": 10, "MaxConsecutiveFailures": 3}
    raw["ClassificationSettings"]["Retry"]["MaxAttempts"] = 2
    config = parse_engine_config(raw)
    mailbox = InMemoryMailbox(
        [
            MailMessage(id="1", subject="Prod outage", sender="ops@example.com"),
            MailMessage(id="2", subject="Invoice #123", sender="billing@acme.com"),
            MailMessage(id="3", subject="Lunch?", sender="bob@example.com"),
        ]
    )
    client = MagicMock()
    client.send.side_effect = InvalidResponseError("No content found in AI response")
    orchestrator = _orchestrator(config, mailbox, clock, client)

    summary = orchestrator.run()

    assert [r.success for r in summary.results] == [False, True, False]
    # error retry 20 s on messages 1 and 3, 1.5 s pacing; no extended cooldown
    assert sum(clock.sleeps) == pytest.approx(41.5)
    assert orchestrator.rate_limiter.state.consecutive_failures == 2


def test_run_reads_only_the_requested_folder(config, clock) -> None:
    mailbox = InMemoryMailbox(_messages(), folder="archive")
    client = MagicMock()
    client.send.return_value = "URGENT"
    orchestrator = _orchestrator(config, mailbox, clock, client)

    assert orchestrator.run().processed == 0

    summary = orchestrator.run(folder="archive")

    assert summary.folder == "Archive"
    assert summary.processed == 2
    assert [m.id for m in mailbox.saved] == ["1", "2"]
