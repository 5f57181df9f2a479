"""Phone number normalization and display formatting for station contacts."""
import re
from typing import Optional, Tuple
import phonenumbers
from phonenumbers import NumberParseException

from config.settings import settings

MIN_DIGITS = 10

# Trailing extension markers: "x12", "ext. 12", "extension 12", "#12"
_EXTENSION_RE = re.compile(r"\s*(?:ext(?:ension)?\.?|x|#)\s*\d+\s*$", re.IGNORECASE)
# Spreadsheet export artifacts around a cell value
_ARTIFACT_RE = re.compile(r'^[\s="\']+|[\s"\']+$')


def strip_non_numeric(phone: str) -> str:
    """Return only the digits of a phone string."""
    return re.sub(r"\D", "", phone or "")


def _clean(raw: str) -> str:
    cleaned = _ARTIFACT_RE.sub("", raw or "")
    return _EXTENSION_RE.sub("", cleaned)


def normalize_phone(raw: Optional[str], default_region: Optional[str] = None) -> Optional[str]:
    """Normalize free-form phone text to a canonical E.164 string.

    Valid numbers are formatted by phonenumbers. Feed data is often malformed
    but still dialable, so when strict parsing fails and at least 10 digits
    remain, the last 10 digits are treated as a North American number.

    Args:
        raw: Phone text, possibly with punctuation, an extension or CSV quoting
        default_region: Region used for numbers without a country code

    Returns:
        Canonical number such as "+15551234567", or None if not parseable
    """
    if not raw or not raw.strip():
        return None

    region = default_region or settings.DEFAULT_PHONE_REGION
    cleaned = _clean(raw)
    digits = strip_non_numeric(cleaned)

    if len(digits) < MIN_DIGITS:
        return None

    try:
        parsed = phonenumbers.parse(cleaned, region)
        if phonenumbers.is_valid_number(parsed):
            return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
    except NumberParseException:
        pass

    return f"+1{digits[-MIN_DIGITS:]}"


def validate_phone(phone: str, default_region: Optional[str] = None) -> Tuple[bool, Optional[str]]:
    """Validate a phone number.

    Args:
        phone: Phone number string to validate
        default_region: Default country code for parsing

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not phone or not phone.strip():
        return False, "Phone number is empty"

    if len(strip_non_numeric(_clean(phone))) < MIN_DIGITS:
        return False, f"Phone number must have at least {MIN_DIGITS} digits"

    if normalize_phone(phone, default_region) is None:
        return False, "Not a valid phone number"

    return True, None


def format_display(phone: Optional[str], default_region: Optional[str] = None) -> str:
    """Format a canonical number for display, e.g. "(555) 123-4567".

    Numbers outside the default region are shown in international format.
    Returns the input unchanged if it cannot be parsed.
    """
    if not phone:
        return ""

    region = default_region or settings.DEFAULT_PHONE_REGION
    try:
        parsed = phonenumbers.parse(phone, region)
    except NumberParseException:
        return phone

    if phonenumbers.region_code_for_country_code(parsed.country_code) == region:
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.NATIONAL)
    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.INTERNATIONAL)


def format_dial_string(phone: str) -> str:
    """Bare dialable string: a leading + followed by digits only."""
    canonical = normalize_phone(phone)
    if canonical is None:
        return strip_non_numeric(phone)
    return canonical


def format_tel_link(phone: str) -> str:
    """tel: URI for tap-to-call."""
    return f"tel:{format_dial_string(phone)}"
