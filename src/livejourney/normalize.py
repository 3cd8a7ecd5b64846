"""Line identifier and station label normalization.

Live feeds, the route planner and the line directory all spell lines and
stations differently: metro lines arrive as ``"1"``, ``"Blue Line"`` or
``"المسار الأزرق"``, stations carry ``(Bus)``/``(Metro)`` tags, and
capitalization is inconsistent. Everything that compares these values goes
through the functions below.
"""

import re
from typing import Optional

METRO_LINE_NUMBERS = ("1", "2", "3", "4", "5", "6")

# Line colors in English and (normalized) Arabic, by metro line number
METRO_LINE_COLORS = {
    "blue": "1",
    "red": "2",
    "orange": "3",
    "yellow": "4",
    "green": "5",
    "purple": "6",
    "ازرق": "1",
    "احمر": "2",
    "برتقالي": "3",
    "اصفر": "4",
    "اخضر": "5",
    "بنفسجي": "6",
}

# Words that decorate a metro line name without identifying it
_LINE_WORDS = {"the", "line", "metro", "مسار", "المسار", "خط", "الخط", "مترو", "المترو"}

_MODE_SUFFIX = re.compile(r"\s*\((?:bus|metro|حافلة|باص|مترو)\)\s*$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_ARABIC_DIGITS = str.maketrans("٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹", "01234567890123456789")
_ALEF_VARIANTS = str.maketrans("أإآ", "ااا")


def _clean(raw: str) -> str:
    text = raw.translate(_ARABIC_DIGITS)
    return _WHITESPACE.sub(" ", text).strip()


def _metro_number(text: str) -> Optional[str]:
    """Metro line number named by ``text``, or None if it names no metro line."""
    if text in METRO_LINE_NUMBERS:
        return text

    words = [w for w in text.lower().translate(_ALEF_VARIANTS).split(" ") if w not in _LINE_WORDS]
    if len(words) != 1:
        return None

    word = words[0]
    if word in METRO_LINE_NUMBERS:
        return word
    if word.startswith("ال") and len(word) > 2:
        word = word[2:]
    return METRO_LINE_COLORS.get(word)


def is_metro_line(raw: Optional[str]) -> bool:
    """True for the bare metro line numbers ``"1"`` to ``"6"``."""
    if raw is None:
        return False
    return raw.strip().translate(_ARABIC_DIGITS) in METRO_LINE_NUMBERS


def canonical_line(raw: Optional[str]) -> Optional[str]:
    """
    Map any textual form of a line to the key used for equality checks.

    Metro lines become ``"metro:<n>"`` whether given as a number, an English
    name or an Arabic name. Bus codes become their trimmed, uppercased code.

    Args:
        raw: Line identifier from the planner or a live feed.

    Returns:
        Canonical key, or None when the input cannot be classified.
    """
    if raw is None:
        return None

    text = _clean(str(raw))
    if not any(ch.isalnum() for ch in text):
        return None

    # Codes "1" to "6" always name metro lines, even when a bus feed reports them
    number = _metro_number(text)
    if number is not None:
        return f"metro:{number}"
    return text.upper()


def strip_station_suffix(raw: str) -> str:
    """Remove ``(Bus)``/``(Metro)`` tags and outer whitespace, keeping case."""
    text = raw or ""
    previous = None
    while previous != text:
        previous = text
        text = _MODE_SUFFIX.sub("", text).strip()
    return text


def normalize_label(raw: Optional[str]) -> str:
    """Comparison form of a station or destination name (idempotent)."""
    text = strip_station_suffix(raw or "")
    return _WHITESPACE.sub(" ", text).strip().lower()


def labels_match(destination: Optional[str], target: Optional[str]) -> bool:
    """Bidirectional substring match of two labels after normalization."""
    a = normalize_label(destination)
    b = normalize_label(target)
    if not a or not b:
        return False
    return a in b or b in a
