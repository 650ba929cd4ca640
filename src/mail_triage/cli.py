"""Command-line interface (CLI) entrypoint.

Objective:
    Provide a human-friendly CLI wrapper around
    :class:`src.mail_triage.orchestrator.BatchOrchestrator`.

Responsibilities:
    - Parse arguments (config file, folder, limit, dry-run, verbosity).
    - Configure logging (including suppressing noisy HTTP request logs).
    - Load the engine configuration and wire the Graph mailbox.
    - Clear the cached Microsoft sign-in (``--logout``).
    - Ask for confirmation, run the batch and print a readable summary.

High-level call tree:
    - :func:`main`
        - :func:`setup_logging`
            - installs :class:`_HttpRequestInfoToDebugFilter`
        - :func:`src.mail_triage.config.load_engine_config`
        - :func:`build_orchestrator`
        - :meth:`BatchOrchestrator.run`
        - :func:`print_results`

Operational notes:
    - This module supports being run both as a package module
      (``python -m src.mail_triage.cli``) and as a script
      (``python src/mail_triage/cli.py``). The import fallback handles the
      script case.
    - Exit code is 0 when every processed message succeeded (or the batch
      was cancelled / empty), 1 otherwise.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

try:
    from .auth import GraphAuthenticator
    from .config import EngineConfig, Settings, get_settings, load_engine_config
    from .email_client import GraphMailbox
    from .errors import MailTriageError
    from .models import BatchSummary, ProcessingResult
    from .orchestrator import BatchOrchestrator
except ImportError:  # pragma: no cover
    src_root = Path(__file__).resolve().parents[1]
    if str(src_root) not in sys.path:
        sys.path.insert(0, str(src_root))

    from mail_triage.auth import GraphAuthenticator
    from mail_triage.config import EngineConfig, Settings, get_settings, load_engine_config
    from mail_triage.email_client import GraphMailbox
    from mail_triage.errors import MailTriageError
    from mail_triage.models import BatchSummary, ProcessingResult
    from mail_triage.orchestrator import BatchOrchestrator

_NOISY_HTTP_LOGGERS = ("httpx", "urllib3", "msal")


class _HttpRequestInfoToDebugFilter(logging.Filter):
    """Filter to suppress per-request HTTP chatter.

    HTTP libraries log each request at INFO level (httpx "HTTP Request:",
    urllib3 connection messages). This filter hides those messages unless
    the root logger is in DEBUG mode.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Determine whether a log record should be emitted.

        Args:
            record: Log record emitted by the logging framework.

        Returns:
            bool: True to allow emission, False to suppress.
        """
        if not record.name.startswith(_NOISY_HTTP_LOGGERS):
            return True

        msg = record.getMessage()
        if record.name.startswith("httpx") and not msg.startswith("HTTP Request:"):
            return True
        if record.levelno > logging.INFO:
            return True
        # Only show request logs when running in DEBUG/verbose mode.
        return logging.getLogger().isEnabledFor(logging.DEBUG)


def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the application.

    This sets the root logger level and installs the
    :class:`_HttpRequestInfoToDebugFilter` on all root handlers.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    root_logger = logging.getLogger()
    downgrade_filter = _HttpRequestInfoToDebugFilter()
    for handler in root_logger.handlers:
        handler.addFilter(downgrade_filter)


def print_progress(text: str, current: int, total: int) -> None:
    """Progress sink printing one line per update."""
    if current < 0:
        print(f"  ⏳ {text}")
    else:
        print(text)


def prompt_confirmation(message: str) -> bool:
    """Show the confirmation text and read a yes/no answer from stdin."""
    print(f"\n{message}\n")
    try:
        answer = input("Continue? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def print_results(results: list[ProcessingResult], verbose: bool = False) -> None:
    """
    Print processing results to console.

    Output format:
        - Group results by classification key.
        - Display sender and the stage that produced the key.
        - Optionally print errors when ``verbose=True``.

    Args:
        results: List of ProcessingResult objects.
        verbose: If True, print detailed information.
    """
    if not results:
        print("\nNo emails processed.")
        return

    print(f"\n{'='*60}")
    print(f"PROCESSING RESULTS: {len(results)} emails")
    print(f"{'='*60}\n")

    by_key: dict[str, list[ProcessingResult]] = {}
    for result in results:
        by_key.setdefault(result.classification_key, []).append(result)

    for key, items in sorted(by_key.items()):
        print(f"\n📁 {key} ({len(items)} emails)")
        print("-" * 40)

        for item in items:
            status = "✅" if item.success else "❌"
            subject = item.subject[:50] + "..." if len(item.subject) > 50 else item.subject
            sender = f"{item.sender} " if item.sender else ""
            print(f"  {status} {sender}{subject} [{item.method.value}]")

            if verbose and item.error:
                print(f"      Error: {item.error}")


def print_summary(summary: BatchSummary, message: str) -> None:
    print(f"\n{'='*60}")
    print(message)
    print(f"SUMMARY: ✅ {summary.successful} successful, ❌ {summary.failed} failed")
    print(f"{'='*60}\n")


def build_orchestrator(
    settings: Settings,
    config: EngineConfig,
    progress: Optional[Callable[[str, int, int], None]] = print_progress,
) -> BatchOrchestrator:
    """Wire a Graph-backed orchestrator.

    Args:
        settings: Application settings (credentials).
        config: Engine configuration.
        progress: Progress sink.

    Returns:
        BatchOrchestrator: Ready to run.
    """
    auth = GraphAuthenticator(settings)
    mailbox = GraphMailbox(settings, auth)
    return BatchOrchestrator(config, mailbox, progress=progress)


def main(args: Optional[list[str]] = None) -> int:
    """
    Main CLI entry point.

    This function is structured to be testable: pass an explicit ``args`` list
    instead of relying on ``sys.argv``.

    Args:
        args: Command line arguments (uses sys.argv if None).

    Returns:
        int: Exit code (0 for success, 1 for error).
    """
    parser = argparse.ArgumentParser(
        description="Mail Triage - rule and AI based email classification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                        Classify unread Inbox messages
  %(prog)s --limit 5              Process only 5 messages
  %(prog)s --dry-run --yes        Classify without changing anything
  %(prog)s --config my.json       Use another engine configuration
  %(prog)s --logout               Forget the cached Microsoft sign-in
        """,
    )

    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Engine configuration JSON (default: CLASSIFIER_CONFIG_PATH or config.json)",
    )

    parser.add_argument(
        "--folder",
        "-f",
        type=str,
        default=None,
        help="Folder to classify, well-known name or id (default: inbox)",
    )

    parser.add_argument(
        "--limit",
        "-l",
        type=int,
        default=None,
        help="Maximum number of unread messages to process",
    )

    parser.add_argument(
        "--dry-run",
        "-d",
        action="store_true",
        help="Classify messages without writing anything back",
    )

    parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Skip the confirmation prompt",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )

    parser.add_argument(
        "--logout",
        action="store_true",
        help="Remove the cached Microsoft sign-in and exit",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: LOG_LEVEL or INFO)",
    )

    parsed_args = parser.parse_args(args)

    settings = get_settings()
    log_level = "DEBUG" if parsed_args.verbose else (parsed_args.log_level or settings.log_level)
    setup_logging(log_level)

    logger = logging.getLogger(__name__)

    if parsed_args.logout:
        removed = GraphAuthenticator(settings).clear_token_cache()
        print("\nSigned out.\n" if removed else "\nNo cached sign-in found.\n")
        return 0

    try:
        print("\n🚀 Starting Mail Triage...\n")

        if parsed_args.dry_run:
            print("⚠️  DRY RUN MODE - Messages will not be changed\n")

        config_path = parsed_args.config or settings.classifier_config_path
        config = load_engine_config(config_path, api_key_override=settings.classifier_api_key)

        orchestrator = build_orchestrator(settings, config)
        summary = orchestrator.run(
            folder=parsed_args.folder or settings.mailbox_folder,
            limit=parsed_args.limit or settings.email_batch_size,
            dry_run=parsed_args.dry_run,
            confirm=None if parsed_args.yes else prompt_confirmation,
        )

        if summary.cancelled:
            print("\nCancelled.\n")
            return 0

        print_results(summary.results, verbose=parsed_args.verbose)
        if summary.processed:
            print_summary(summary, orchestrator.completion_message(summary))

        return 1 if summary.failed > 0 else 0

    except MailTriageError as e:
        logger.error(f"Fatal error: {e}")
        print(f"\n❌ Error: {e}\n")
        return 1
    except Exception as e:
        logger.exception("Fatal error")
        print(f"\n❌ Error: {e}\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())
