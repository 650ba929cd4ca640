"""
Tests for the AI endpoint client.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from src.mail_triage.ai_client import AiClassifierClient, is_rate_limit_text
from src.mail_triage.config import parse_engine_config
from src.mail_triage.errors import (
    ClassificationApiError,
    InvalidResponseError,
    RateLimitError,
    TransientNetworkError,
)


def _config(api_overrides=None, **classification_overrides):
    api = {
        "ApiKey": " sk-test ",
        "ApiEndpoint": "https://ai.example.com/v1/chat/completions",
        "ModelName": "small-model",
        "ResponseContentPath": "choices[0].message.content",
        "RequestHeaders": {"Authorization": "Bearer {API_KEY}"},
        "RequestParameters": {
            "model": "{MODEL_NAME}",
            "messages": "{MESSAGES}",
            "temperature": 0,
            "stream": True,
        },
    }
    api.update(api_overrides or {})
    classification = {
        "Prompt": "p",
        "Classifications": {"URGENT": {}, "OTHER": {}},
        "RateLimiting": {},
        "EmailProcessing": {},
        "Messages": {},
    }
    classification.update(classification_overrides)
    return parse_engine_config({"ApiSettings": api, "ClassificationSettings": classification})


def _client(config=None, session=None) -> AiClassifierClient:
    config = config or _config()
    return AiClassifierClient(config.api_settings, config.classification_settings, session=session)


def _response(status: int, body) -> MagicMock:
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.text = body if isinstance(body, str) else json.dumps(body)
    return response


class TestRequestBuilding:
    def test_headers_substitute_trimmed_api_key(self):
        assert _client().build_headers() == {"Authorization": "Bearer sk-test"}

    def test_payload_substitutes_model_and_messages(self):
        payload = _client().build_payload("Classify this")

        assert payload["model"] == "small-model"
        assert payload["messages"] == [{"role": "user", "content": "Classify this"}]
        assert payload["temperature"] == 0
        assert payload["stream"] is False

    def test_prompt_placeholder_and_custom_role(self):
        config = _config(
            {
                "MessageRole": "system",
                "RequestParameters": {"input": "{PROMPT}", "messages": "{MESSAGES}"},
            }
        )

        payload = _client(config).build_payload("hello")

        assert payload["input"] == "hello"
        assert payload["messages"][0]["role"] == "system"
        assert "stream" not in payload

    def test_timeout_resolution(self):
        assert _client().resolve_timeout() == 45
        assert _client(_config({"TimeoutSeconds": 20})).resolve_timeout() == 20
        config = _config({"TimeoutSeconds": 20}, RateLimiting={"RequestTimeoutSeconds": 60})
        assert _client(config).resolve_timeout() == 60


class TestSend:
    def test_success_returns_answer_text(self):
        session = MagicMock()
        session.post.return_value = _response(
            200, {"choices": [{"message": {"content": " URGENT \n"}}]}
        )

        answer = _client(session=session).send("prompt")

        assert answer == "URGENT"
        _, kwargs = session.post.call_args
        assert kwargs["json"]["messages"][0]["content"] == "prompt"
        assert kwargs["timeout"] == 45
        assert kwargs["headers"]["Authorization"] == "Bearer sk-test"

    def test_uses_requests_post_by_default(self):
        with patch("src.mail_triage.ai_client.requests.post") as post:
            post.return_value = _response(200, {"choices": [{"message": {"content": "OTHER"}}]})

            assert _client().send("prompt") == "OTHER"
            assert post.call_args[0][0] == "https://ai.example.com/v1/chat/completions"

    def test_fallback_content_paths(self):
        config = _config(ApiResponse={"FallbackContentPaths": ["output[0].text"]})
        session = MagicMock()
        session.post.return_value = _response(200, {"choices": [], "output": [{"text": "OTHER"}]})

        assert _client(config, session).send("p") == "OTHER"

    def test_empty_content_is_invalid(self):
        session = MagicMock()
        session.post.return_value = _response(200, {"choices": [{"message": {"content": "  "}}]})

        with pytest.raises(InvalidResponseError):
            _client(session=session).send("p")

    def test_non_json_body_is_invalid(self):
        session = MagicMock()
        session.post.return_value = _response(200, "<html>gateway</html>")

        with pytest.raises(InvalidResponseError):
            _client(session=session).send("p")

    def test_http_429_is_rate_limit(self):
        session = MagicMock()
        session.post.return_value = _response(429, {"error": "slow down"})

        with pytest.raises(RateLimitError) as exc_info:
            _client(session=session).send("p")

        assert exc_info.value.status_code == 429

    def test_rate_limit_phrase_in_error_body(self):
        session = MagicMock()
        session.post.return_value = _response(503, {"error": "Too Many Requests, retry later"})

        with pytest.raises(RateLimitError):
            _client(session=session).send("p")

    def test_other_status_is_api_error(self):
        session = MagicMock()
        session.post.return_value = _response(500, {"error": "boom"})

        with pytest.raises(ClassificationApiError) as exc_info:
            _client(session=session).send("p")

        assert not isinstance(exc_info.value, RateLimitError)
        assert exc_info.value.status_code == 500
        assert "boom" in exc_info.value.body

    def test_timeout_is_transient(self):
        session = MagicMock()
        session.post.side_effect = requests.Timeout("read timed out")

        with pytest.raises(TransientNetworkError):
            _client(session=session).send("p")

    def test_connection_error_is_transient(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(TransientNetworkError):
            _client(session=session).send("p")

    def test_blank_api_key_is_rejected_before_sending(self):
        config = _config()
        api = config.api_settings.model_copy(update={"api_key": "  "})
        session = MagicMock()
        client = AiClassifierClient(api, config.classification_settings, session=session)

        with pytest.raises(ClassificationApiError):
            client.send("p")
        session.post.assert_not_called()


def test_is_rate_limit_text() -> None:
    markers = ["rate limit", "too many requests"]
    assert is_rate_limit_text("HTTP 429", markers) is True
    assert is_rate_limit_text("Rate Limit exceeded", markers) is True
    assert is_rate_limit_text("internal error", markers) is False
