"""Parsing of visual indicator values from classification definitions.

Definitions in the config file describe importance, flag colour and category
colour as free text (``"High"``, ``"red"``, ``"olRedFlagIcon"``...). These
helpers turn that text into the values the mailbox understands. Unknown
values never raise: importance falls back to ``normal``, flags to "no flag",
colours to ``none``.
"""

import logging
from typing import Mapping, Optional

from .models import FlagIcon

logger = logging.getLogger(__name__)

IMPORTANCE_VALUES = {"high": "high", "low": "low", "normal": "normal", "medium": "normal"}

FLAG_ICONS = {
    "red": FlagIcon.RED,
    "yellow": FlagIcon.YELLOW,
    "blue": FlagIcon.BLUE,
    "green": FlagIcon.GREEN,
    "orange": FlagIcon.ORANGE,
    "purple": FlagIcon.PURPLE,
}
NO_FLAG_VALUES = {"no", "none", "off"}

# Outlook master category colour presets.
CATEGORY_COLORS = {
    "none": "none",
    "red": "preset0",
    "orange": "preset1",
    "brown": "preset2",
    "yellow": "preset3",
    "green": "preset4",
    "teal": "preset5",
    "olive": "preset6",
    "blue": "preset7",
    "purple": "preset8",
    "cranberry": "preset9",
    "steel": "preset10",
    "darksteel": "preset11",
    "gray": "preset13",
    "grey": "preset13",
    "darkgray": "preset13",
    "darkgrey": "preset13",
    "black": "preset14",
}


def _canonical(value: Optional[str], synonyms: Optional[Mapping[str, str]], prefix: str = "") -> str:
    text = (value or "").strip().lower()
    if synonyms:
        lowered = {k.strip().lower(): v for k, v in synonyms.items()}
        text = (lowered.get(text) or text).strip().lower()
    # Accept Outlook enumeration names such as "olImportanceHigh".
    if prefix and text.startswith(prefix):
        text = text[len(prefix):]
    return text


def parse_importance(
    value: Optional[str],
    synonyms: Optional[Mapping[str, str]] = None,
    default: str = "normal",
) -> str:
    """Parse an importance level.

    Args:
        value: Configured importance text.
        synonyms: Extra spellings mapped to a canonical value.
        default: Importance used for blank or unknown values.

    Returns:
        str: ``high``, ``normal`` or ``low``.
    """
    text = _canonical(value, synonyms, prefix="olimportance")
    if not text:
        return IMPORTANCE_VALUES.get(default.lower(), "normal")
    if text in IMPORTANCE_VALUES:
        return IMPORTANCE_VALUES[text]
    logger.debug("Unknown importance '%s'; using %s", value, default)
    return IMPORTANCE_VALUES.get(default.lower(), "normal")


def parse_flag_icon(
    value: Optional[str], synonyms: Optional[Mapping[str, str]] = None
) -> Optional[FlagIcon]:
    """Parse a flag colour.

    Returns:
        Optional[FlagIcon]: Flag colour, or None for "no flag" (blank, ``no``,
        ``none``, ``off`` or unknown values).
    """
    text = _canonical(value, synonyms, prefix="ol")
    if text.endswith("flagicon"):
        text = text[: -len("flagicon")]
    if not text or text in NO_FLAG_VALUES:
        return None
    icon = FLAG_ICONS.get(text)
    if icon is None:
        logger.debug("Unknown flag icon '%s'; no flag", value)
    return icon


def parse_category_color(
    value: Optional[str],
    synonyms: Optional[Mapping[str, str]] = None,
    default: str = "none",
) -> str:
    """Parse a category colour into an Outlook colour preset.

    Args:
        value: Configured colour name, or a preset name like ``preset4``.
        synonyms: Extra spellings mapped to a canonical colour name.
        default: Colour used for blank or unknown values.

    Returns:
        str: ``presetN`` or ``none``.
    """
    text = _canonical(value, synonyms, prefix="olcategorycolor")
    if text.startswith("preset") and text[len("preset"):].isdigit():
        return text
    if text in CATEGORY_COLORS:
        return CATEGORY_COLORS[text]
    if text:
        logger.debug("Unknown category colour '%s'; using %s", value, default)
    return CATEGORY_COLORS.get(default.strip().lower(), "none")
