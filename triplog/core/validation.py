"""
Input Validation Utilities

Normalization and validation of chat input:
- Full-width digit normalization
- Date / datetime formats typed by drivers (``YYYY/M/D HMM``)
- Numeric fields (distance, amount)
- Free-text sanitization

Validators return booleans and never raise; callers decide how to re-prompt.
"""
import re
from datetime import datetime

# Full-width ０-９ → ASCII 0-9
_FULL_WIDTH_DIGITS = str.maketrans("０１２３４５６７８９", "0123456789")


class ValidationPatterns:
    """Regex patterns for validation"""

    # yyyy/M/d HMM or yyyy/MM/dd HHMM (hour 1-2 digits, minute 2 digits); ideographic space allowed
    DATETIME = re.compile(r"^([0-9]{4})/([0-9]{1,2})/([0-9]{1,2})[ \t　]+([0-9]{1,2})([0-9]{2})$")

    # yyyy/M/d
    DATE = re.compile(r"^([0-9]{4})/([0-9]{1,2})/([0-9]{1,2})$")

    # Canonical stored form: yyyy/MM/dd HH:MM
    CANONICAL_DATETIME = re.compile(r"^([0-9]{4})/([0-9]{2})/([0-9]{2}) ([0-9]{2}):([0-9]{2})$")

    # Integer or decimal, no sign
    NUMBER = re.compile(r"^[0-9]+(\.[0-9]+)?$")

    # Runs of spaces (ASCII and ideographic)
    SPACES = re.compile(r"[ 　]+")


def normalize_digits(text: str) -> str:
    """Convert full-width digits to ASCII; everything else unchanged"""
    if not text:
        return text
    return text.translate(_FULL_WIDTH_DIGITS)


def _prepare(text: str | None) -> str:
    if not text:
        return ""
    return normalize_digits(text.strip())


def _in_range(month: int, day: int, hour: int = 0, minute: int = 0) -> bool:
    # Day range is not checked per month (2025/2/31 passes)
    return 1 <= month <= 12 and 1 <= day <= 31 and 0 <= hour <= 23 and 0 <= minute <= 59


def validate_datetime(text: str | None, require_time: bool = False) -> bool:
    """
    Validate a typed date/time.

    With ``require_time`` only ``YYYY/M/D HMM`` is accepted; otherwise a bare
    ``YYYY/M/D`` is accepted too.
    """
    normalized = _prepare(text)
    if not normalized:
        return False

    match = ValidationPatterns.DATETIME.match(normalized)
    if match:
        year, month, day, hour, minute = (int(g) for g in match.groups())
        return _in_range(month, day, hour, minute)

    if require_time:
        return False

    match = ValidationPatterns.DATE.match(normalized)
    if not match:
        return False
    _, month, day = (int(g) for g in match.groups())
    return _in_range(month, day)


def validate_date(text: str | None) -> bool:
    """Bare ``YYYY/M/D`` only (report date selection)"""
    normalized = _prepare(text)
    match = ValidationPatterns.DATE.match(normalized)
    if not match:
        return False
    _, month, day = (int(g) for g in match.groups())
    return _in_range(month, day)


def normalize_datetime(text: str | None) -> str:
    """
    ``YYYY/M/D HMM`` → ``YYYY/MM/DD HH:MM``.

    Non-matching input is returned digit-normalized and trimmed.
    """
    normalized = _prepare(text)
    match = ValidationPatterns.DATETIME.match(normalized)
    if not match:
        return normalized
    year, month, day, hour, minute = match.groups()
    return f"{year}/{month.zfill(2)}/{day.zfill(2)} {hour.zfill(2)}:{minute}"


def normalize_date(text: str | None) -> str:
    """``YYYY/M/D`` → ``YYYY/MM/DD``; non-matching input returned normalized"""
    normalized = _prepare(text)
    match = ValidationPatterns.DATE.match(normalized)
    if not match:
        return normalized
    year, month, day = match.groups()
    return f"{year}/{month.zfill(2)}/{day.zfill(2)}"


def validate_number(text: str | None) -> bool:
    """Unsigned integer or decimal after digit normalization"""
    normalized = _prepare(text)
    if not normalized:
        return False
    return bool(ValidationPatterns.NUMBER.match(normalized))


def normalize_number(text: str | None) -> str:
    return _prepare(text)


def parse_datetime(text: str | None) -> datetime | None:
    """
    Parse a stored datetime into a naive ``datetime``.

    Accepts the canonical ``YYYY/MM/DD HH:MM`` form, the typed ``HMM`` form and
    a bare date (midnight). Returns ``None`` when the value cannot be parsed
    or is out of range.
    """
    normalized = _prepare(text)
    if not normalized:
        return None

    match = ValidationPatterns.CANONICAL_DATETIME.match(normalized)
    if not match:
        match = ValidationPatterns.DATETIME.match(normalized)
    if match:
        year, month, day, hour, minute = (int(g) for g in match.groups())
    else:
        match = ValidationPatterns.DATE.match(normalized)
        if not match:
            return None
        year, month, day = (int(g) for g in match.groups())
        hour = minute = 0

    try:
        return datetime(year, month, day, hour, minute)
    except ValueError:
        return None


class TextSanitizer:
    """Text sanitization for free-text fields"""

    MAX_LENGTH = 200

    @staticmethod
    def remove_control_characters(text: str) -> str:
        """Remove control characters, keeping newlines and tabs"""
        if not text:
            return ""
        return "".join(
            char for char in text
            if char >= " " or char in "\n\t"
        )

    @staticmethod
    def sanitize(text: str | None, max_length: int = MAX_LENGTH) -> str:
        """
        Clean a free-text value before it is stored in a draft.

        Trims whitespace, removes NUL bytes and control characters, collapses
        runs of spaces and enforces ``max_length``.
        """
        if not text:
            return ""
        sanitized = TextSanitizer.remove_control_characters(text.replace("\x00", ""))
        sanitized = ValidationPatterns.SPACES.sub(" ", sanitized.strip())
        return sanitized[:max_length]


def sanitize_text(text: str | None, max_length: int = TextSanitizer.MAX_LENGTH) -> str:
    return TextSanitizer.sanitize(text, max_length)


# Pydantic field validator for admin payloads
def label_validator(v: str | None) -> str | None:
    """Reference-list labels and values must be non-empty after sanitizing"""
    if v is None:
        return None
    cleaned = sanitize_text(v, max_length=100)
    if not cleaned:
        raise ValueError("Value must not be empty")
    return cleaned
