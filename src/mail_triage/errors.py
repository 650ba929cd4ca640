"""Exception types raised by the classification engine.

Objective:
    Give every failure mode of a batch run a distinct type so the retry loop
    and the orchestrator can decide how to react without string matching.

Taxonomy:
    - :class:`ConfigurationError`: fatal, raised before a batch starts.
    - :class:`AuthenticationError`: no Graph token could be acquired.
    - :class:`TransientNetworkError`: timeout / connection failure, retried
      with the timeout backoff.
    - :class:`ClassificationApiError`: non-2xx response, retried with the
      generic error backoff.
    - :class:`RateLimitError`: HTTP 429 or a rate-limit phrase, retried with
      the rate-limit backoff.
    - :class:`InvalidResponseError`: empty or unparseable response, retried
      as a generic error.
    - :class:`FatalBatchError`: failure outside per-message processing.
    - :class:`BatchInProgressError`: a second run was started on a busy
      orchestrator.

Any other exception raised while processing a single message is treated by
the orchestrator as a per-message failure and never aborts the batch.
"""

from typing import Optional


class MailTriageError(Exception):
    """Base exception for all mail-triage errors."""

    pass


class ConfigurationError(MailTriageError):
    """Raised when the engine configuration is missing or invalid."""

    pass


class AuthenticationError(MailTriageError):
    """Raised when MSAL cannot provide a Microsoft Graph access token."""

    pass


class TransientNetworkError(MailTriageError):
    """Raised when the AI endpoint times out or cannot be reached."""

    pass


class ClassificationApiError(MailTriageError):
    """Raised when the AI endpoint answers with a non-2xx status.

    Attributes:
        status_code: HTTP status code returned by the endpoint.
        body: Raw response body text.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RateLimitError(ClassificationApiError):
    """Raised on HTTP 429 or when the error body mentions a rate limit."""

    pass


class InvalidResponseError(MailTriageError):
    """Raised when no classification text can be read from a response."""

    pass


class FatalBatchError(MailTriageError):
    """Raised when a batch cannot continue (e.g. the mailbox is unreachable)."""

    pass


class BatchInProgressError(MailTriageError):
    """Raised when a batch is started while another one is still running."""

    pass
