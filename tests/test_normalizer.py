from src.mail_triage.config import parse_engine_config
from src.mail_triage.normalizer import ResponseNormalizer, resolve_default_classification


def _settings(keys, fallback_order=None, indicators=None):
    config = parse_engine_config(
        {
            "ClassificationSettings": {
                "Prompt": "p",
                "Classifications": {key: {} for key in keys},
                "RateLimiting": {},
                "EmailProcessing": {},
                "Messages": {},
                "AiClassification": {"EnableAiClassification": False},
                "Retry": {"DefaultFallbackOrder": fallback_order or []},
                "ApiResponse": {"NoContentIndicators": indicators or []},
            }
        }
    )
    return config.classification_settings


def test_default_uses_first_configured_entry_of_fallback_order() -> None:
    settings = _settings(["OTHER", "URGENT"], fallback_order=["SPAM", "OTHER"])

    assert resolve_default_classification(settings) == "OTHER"


def test_default_falls_back_to_first_key() -> None:
    settings = _settings(["URGENT", "OTHER"], fallback_order=["SPAM"])

    assert resolve_default_classification(settings) == "URGENT"


def test_exact_match_is_case_insensitive() -> None:
    normalizer = ResponseNormalizer.from_settings(_settings(["URGENT", "SPAM"]))

    assert normalizer.normalize("  spam\n") == "SPAM"


def test_contained_key_is_found() -> None:
    normalizer = ResponseNormalizer.from_settings(_settings(["URGENT", "SPAM"]))

    assert normalizer.normalize("The email is URGENT.") == "URGENT"


def test_first_key_in_declaration_order_wins_when_several_are_contained() -> None:
    normalizer = ResponseNormalizer(["SPAM", "URGENT"], "SPAM")

    assert normalizer.normalize("urgent, maybe spam") == "SPAM"


def test_blank_and_unknown_answers_use_default() -> None:
    normalizer = ResponseNormalizer(["URGENT", "OTHER"], "OTHER")

    assert normalizer.normalize("") == "OTHER"
    assert normalizer.normalize(None) == "OTHER"
    assert normalizer.normalize("I am not sure") == "OTHER"


def test_no_content_indicator_forces_default() -> None:
    settings = _settings(["URGENT", "OTHER"], fallback_order=["OTHER"], indicators=["cannot classify"])
    normalizer = ResponseNormalizer.from_settings(settings)

    assert normalizer.normalize("I cannot classify this URGENT email") == "OTHER"
