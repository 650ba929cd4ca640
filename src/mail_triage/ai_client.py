"""HTTP client for the configurable AI classification endpoint.

Objective:
    Send one classification prompt to an OpenAI-compatible (or any JSON) chat
    endpoint and return the raw text answer. The request shape is entirely
    described by ``ApiSettings`` so the same client works against different
    providers without code changes.

Responsibilities:
    - Render request headers (``{API_KEY}``) and the JSON payload
      (``{MODEL_NAME}``, ``{PROMPT}``, ``{MESSAGES}``) from config templates.
    - Choose the per-call timeout.
    - Map transport and HTTP failures onto :mod:`src.mail_triage.errors`.
    - Read the answer text via the configured content paths.

High-level call tree:
    - :class:`AiClassifierClient`
        - :meth:`AiClassifierClient.send`
            - :meth:`AiClassifierClient.build_headers`
            - :meth:`AiClassifierClient.build_payload`
            - :meth:`AiClassifierClient.resolve_timeout`
            - :func:`src.mail_triage.content_path.extract_text`

Operational notes:
    - The client performs exactly one HTTP attempt. Retries, backoff and
      cooldowns belong to the categorizer and the rate limiter.
    - Streaming is always disabled: a ``stream`` key in the payload is
      forced to ``false``.
"""

import json
import logging
from typing import Any, Optional

import requests

from .config import ApiSettings, ClassificationSettings
from .content_path import extract_text
from .errors import (
    ClassificationApiError,
    InvalidResponseError,
    RateLimitError,
    TransientNetworkError,
)
from .templates import format_template

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 45
MESSAGES_PLACEHOLDER = "{MESSAGES}"


def is_rate_limit_text(text: str, markers: list[str]) -> bool:
    """Check an error text for a rate-limit marker (case-insensitive).

    Args:
        text: Error message or response body.
        markers: Phrases that identify a rate-limit answer.

    Returns:
        bool: True if ``429`` or any marker is present.
    """
    lowered = (text or "").lower()
    if "429" in lowered:
        return True
    return any(marker.lower() in lowered for marker in markers if marker)


class AiClassifierClient:
    """
    Client for the AI classification endpoint.

    Attributes:
        api: Endpoint, key and request templates.
        settings: Classification settings (timeouts, response paths, markers).
        session: Object exposing ``post`` (``requests`` module by default).
    """

    def __init__(
        self,
        api: ApiSettings,
        settings: ClassificationSettings,
        session: Any = None,
    ) -> None:
        self.api = api
        self.settings = settings
        self.session = session if session is not None else requests

    def build_headers(self) -> dict[str, str]:
        """Render the configured request headers.

        Returns:
            dict[str, str]: Headers with ``{API_KEY}`` substituted.
        """
        api_key = (self.api.api_key or "").strip()
        headers = {}
        for name, value in self.api.request_headers.items():
            headers[name] = format_template(value, {"API_KEY": api_key})
        return headers

    def _render_value(self, value: Any, prompt: str) -> Any:
        if isinstance(value, str):
            if value.strip() == MESSAGES_PLACEHOLDER:
                return [{"role": self.api.message_role or "user", "content": prompt}]
            return format_template(
                value, {"MODEL_NAME": self.api.model_name, "PROMPT": prompt}
            )
        return value

    def build_payload(self, prompt: str) -> dict[str, Any]:
        """Render the configured request parameters into a JSON payload.

        Args:
            prompt: Classification prompt.

        Returns:
            dict[str, Any]: Request body.
        """
        payload = {
            key: self._render_value(value, prompt)
            for key, value in self.api.request_parameters.items()
        }
        if "stream" in payload:
            payload["stream"] = False
        return payload

    def resolve_timeout(self) -> int:
        """Per-call timeout in seconds."""
        if self.settings.rate_limiting.request_timeout_seconds > 0:
            return self.settings.rate_limiting.request_timeout_seconds
        if self.api.timeout_seconds > 0:
            return self.api.timeout_seconds
        return DEFAULT_TIMEOUT_SECONDS

    def extract_answer(self, document: Any) -> str:
        """Read the answer text from a decoded response.

        The primary ``ResponseContentPath`` is tried first, then every
        configured fallback path in order.

        Args:
            document: Decoded JSON response.

        Returns:
            str: Trimmed answer text (may be empty).
        """
        paths: list[Optional[str]] = [self.api.response_content_path]
        paths.extend(self.settings.api_response.fallback_content_paths)

        for path in paths:
            if not path:
                continue
            text = extract_text(document, path).strip()
            if text:
                logger.debug("Answer found at path '%s'", path)
                return text
        return ""

    def send(self, prompt: str) -> str:
        """
        Send one classification request.

        Args:
            prompt: Prompt text.

        Returns:
            str: Raw answer text from the model.

        Raises:
            TransientNetworkError: Timeout or connection failure.
            RateLimitError: HTTP 429 or a rate-limit phrase in an error body.
            ClassificationApiError: Any other non-2xx status.
            InvalidResponseError: Non-JSON body or no answer text.
        """
        api_key = (self.api.api_key or "").strip()
        if not api_key:
            raise ClassificationApiError("API key is not configured")

        payload = self.build_payload(prompt)
        timeout = self.resolve_timeout()
        logger.debug(f"POST {self.api.api_endpoint} (timeout={timeout}s)")

        try:
            response = self.session.post(
                self.api.api_endpoint,
                headers=self.build_headers(),
                json=payload,
                timeout=timeout,
            )
        except requests.Timeout as e:
            raise TransientNetworkError(f"Request timed out after {timeout}s") from e
        except requests.ConnectionError as e:
            raise TransientNetworkError(f"Connection failed: {e}") from e

        body = response.text or ""
        logger.debug("AI endpoint answered %s", response.status_code)

        if response.status_code == 429:
            raise RateLimitError(
                f"Rate limited by AI endpoint (429): {body[:200]}",
                status_code=429,
                body=body,
            )

        if not response.ok:
            markers = self.settings.api_response.rate_limit_markers
            if is_rate_limit_text(body, markers):
                raise RateLimitError(
                    f"Rate limited by AI endpoint ({response.status_code}): {body[:200]}",
                    status_code=response.status_code,
                    body=body,
                )
            raise ClassificationApiError(
                f"AI endpoint error {response.status_code}: {body[:200]}",
                status_code=response.status_code,
                body=body,
            )

        try:
            document = json.loads(body)
        except json.JSONDecodeError as e:
            raise InvalidResponseError(f"Response is not valid JSON: {e}") from e

        text = self.extract_answer(document)
        if not text:
            raise InvalidResponseError("No content found in AI response")

        logger.debug(f"AI answer: {text[:200]}")
        return text
