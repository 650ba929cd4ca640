from src.mail_triage.indicators import parse_category_color, parse_flag_icon, parse_importance
from src.mail_triage.models import FlagIcon


class TestParseImportance:
    def test_known_values(self):
        assert parse_importance("High") == "high"
        assert parse_importance("low") == "low"
        assert parse_importance("Medium") == "normal"
        assert parse_importance("olImportanceHigh") == "high"

    def test_blank_and_unknown(self):
        assert parse_importance("") == "normal"
        assert parse_importance(None) == "normal"
        assert parse_importance("critical") == "normal"

    def test_synonyms(self):
        assert parse_importance("Critical", {"critical": "high"}) == "high"

    def test_configured_default(self):
        assert parse_importance("", default="low") == "low"


class TestParseFlagIcon:
    def test_colours(self):
        assert parse_flag_icon("Red") == FlagIcon.RED
        assert parse_flag_icon("purple") == FlagIcon.PURPLE
        assert parse_flag_icon("olYellowFlagIcon") == FlagIcon.YELLOW

    def test_no_flag_values(self):
        for value in ("", None, "no", "None", "off", "olNoFlagIcon", "sparkly"):
            assert parse_flag_icon(value) is None

    def test_synonyms(self):
        assert parse_flag_icon("FollowUp", {"followup": "orange"}) == FlagIcon.ORANGE


class TestParseCategoryColor:
    def test_colour_names(self):
        assert parse_category_color("Red") == "preset0"
        assert parse_category_color("green") == "preset4"
        assert parse_category_color("Teal") == "preset5"
        assert parse_category_color("grey") == "preset13"

    def test_presets_pass_through(self):
        assert parse_category_color("Preset7") == "preset7"

    def test_blank_and_unknown(self):
        assert parse_category_color("") == "none"
        assert parse_category_color("chartreuse") == "none"
        assert parse_category_color("chartreuse", default="blue") == "preset7"

    def test_synonyms(self):
        assert parse_category_color("silver", {"silver": "gray"}) == "preset13"
