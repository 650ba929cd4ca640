"""Mail Triage package.

Objective:
    Classify unread email into a closed, configured set of categories and
    give each message a visual treatment (category, importance, flag, subject
    prefix):
    - Read unread messages from Microsoft Outlook using Microsoft Graph.
    - Classify with a hybrid approach:
        - Prioritized local rules for obvious cases.
        - A configurable AI chat endpoint for everything else, paced by a
          rate limiter with backoff and cooldowns.
    - Write the classification back to the mailbox.

Key modules:
    - :mod:`src.mail_triage.config`:
        Environment settings and the typed engine configuration.
    - :mod:`src.mail_triage.extractor` / :mod:`src.mail_triage.sanitizer`:
        Canonical subject/sender/body extraction.
    - :mod:`src.mail_triage.rules`:
        Local rule matching.
    - :mod:`src.mail_triage.prompts` / :mod:`src.mail_triage.ai_client` /
      :mod:`src.mail_triage.normalizer`:
        Prompt rendering, the AI HTTP call and answer normalization.
    - :mod:`src.mail_triage.rate_limiter`:
        Request pacing, backoff and cooldowns.
    - :mod:`src.mail_triage.categorizer`:
        Rules, then AI with retry, then the default.
    - :mod:`src.mail_triage.applicator`:
        Visual treatment of a classified message.
    - :mod:`src.mail_triage.mailbox` / :mod:`src.mail_triage.email_client` /
      :mod:`src.mail_triage.auth`:
        Mailbox protocol, in-memory and Microsoft Graph implementations.
    - :mod:`src.mail_triage.orchestrator`:
        Batch coordination.
    - :mod:`src.mail_triage.cli`:
        User-facing entrypoint.
"""

__version__ = "0.1.0"
