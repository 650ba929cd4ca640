from src.mail_triage.content_path import extract_text, parse_path, resolve

OPENAI_RESPONSE = {
    "choices": [
        {"message": {"role": "assistant", "content": "URGENT"}, "index": 0},
    ],
    "usage": {"total_tokens": 12},
}


def test_parse_path_splits_dots_and_brackets() -> None:
    assert parse_path("choices[0].message.content") == ["choices", "0", "message", "content"]
    assert parse_path("") == []


def test_openai_style_path() -> None:
    assert extract_text(OPENAI_RESPONSE, "choices[0].message.content") == "URGENT"


def test_dotted_index_is_equivalent() -> None:
    assert extract_text(OPENAI_RESPONSE, "choices.0.message.content") == "URGENT"


def test_missing_steps_yield_nothing() -> None:
    assert resolve(OPENAI_RESPONSE, "choices[3].message") is None
    assert resolve(OPENAI_RESPONSE, "choices[0].missing") is None
    assert resolve(OPENAI_RESPONSE, "usage.total_tokens.deeper") is None
    assert resolve(OPENAI_RESPONSE, "choices.first") is None
    assert extract_text(OPENAI_RESPONSE, "nope") == ""


def test_empty_path_returns_whole_document() -> None:
    assert resolve("plain", "") == "plain"


def test_leaf_rendering() -> None:
    assert extract_text(OPENAI_RESPONSE, "usage.total_tokens") == "12"
    assert extract_text({"ok": True}, "ok") == "true"
    assert extract_text({"v": None}, "v") == ""
    assert extract_text(OPENAI_RESPONSE, "choices[0].message") == '{"role":"assistant","content":"URGENT"}'
    assert extract_text(None, "a") == ""
