"""
Field-level normalization helpers shared by all record transformers.

All helpers are pure and lenient: unrecognized input becomes ``None`` (or
an empty list) instead of raising.
"""

from typing import Any, Dict, Iterable, List, Optional
import json
import re

LIST_DELIMITERS = re.compile(r"[;,|]")

_TRUE_VALUES = {"1", "true", "t", "yes", "y"}
_FALSE_VALUES = {"0", "false", "f", "no", "n"}

_BARE_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_NAIVE_DATETIME = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[ Tt](?P<hm>\d{2}:\d{2})(?P<sec>:\d{2}(?:\.\d+)?)?$"
)
_TZ_SUFFIX = re.compile(r"(?:[zZ]|[+-]\d{2}:?\d{2})$")


def normalize_headers(record: Dict[str, Any]) -> Dict[str, Any]:
    """Trim and lower-case column names so header capitalization is irrelevant"""
    return {str(key or "").strip().lower(): value for key, value in record.items()}


def get_field(record: Dict[str, Any], name: str, default: Optional[Any] = None) -> Optional[Any]:
    """
    Case-insensitive, trimmed lookup.

    Strings are stripped; blank strings and missing keys return ``default``.
    Non-string values (from API responses) are returned as they are.
    """
    value = record.get(name.strip().lower())
    if value is None:
        return default
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return default
    return value


def unique(values: Iterable[Any]) -> List[str]:
    """De-duplicate, preserving first-seen order; drop blanks and NUL characters"""
    seen = set()
    out = []
    for value in values:
        if value is None:
            continue
        text = str(value).replace("\x00", "").strip()
        if not text or text in seen:
            continue
        seen.add(text)
        out.append(text)
    return out


def _strip_quotes(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] == '"':
        return text[1:-1]
    return text


def parse_list(value: Any) -> List[str]:
    """
    Parse a list-valued field.

    Accepts a real list, a JSON array literal, or text delimited by comma,
    semicolon or pipe. JSON is attempted first; delimiter splitting is the
    fallback. The result is de-duplicated with order preserved.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return unique(value)

    text = str(value).strip()
    if not text:
        return []

    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            return unique(item for item in parsed if not isinstance(item, (dict, list)))

    return unique(_strip_quotes(part) for part in LIST_DELIMITERS.split(text))


def to_iso8601(value: Any) -> Optional[str]:
    """
    Normalize a timestamp to ISO-8601 with an explicit UTC designator.

    ``2024-01-15`` -> ``2024-01-15T00:00:00Z``
    ``2024-01-15 10:30`` / ``2024-01-15T10:30`` -> ``2024-01-15T10:30:00Z``
    ``2024-01-15 10:30:05`` -> ``2024-01-15T10:30:05Z``

    Values already carrying ``Z`` or an offset, and shapes that are not
    recognized, are returned unchanged. Applying it twice equals applying
    it once.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    if _BARE_DATE.match(text):
        return f"{text}T00:00:00Z"

    if _TZ_SUFFIX.search(text):
        return text

    match = _NAIVE_DATETIME.match(text)
    if match:
        seconds = match.group("sec") or ":00"
        return f"{match.group('date')}T{match.group('hm')}{seconds}Z"

    return text


def parse_bool(value: Any) -> Optional[bool]:
    """Boolean-ish strings to bool; unrecognized values are treated as absent"""
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return None


def to_int_or_none(value: Any) -> Optional[int]:
    """Safely parse int value ("10.0" accepted, anything else unparseable -> None)"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        return int(value)
    except (ValueError, TypeError):
        pass
    try:
        return int(float(value))
    except (ValueError, TypeError, OverflowError):
        return None


def try_json(value: Any) -> Optional[Any]:
    """Decode a JSON literal, or None when the text is not JSON"""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None
