"""Station directory components package."""
from .csv_parser import FEED_COLUMNS, parse_feed_rows, validate_feed_csv
from .phone_validator import format_display, format_dial_string, normalize_phone, validate_phone

__all__ = [
    "FEED_COLUMNS",
    "parse_feed_rows",
    "validate_feed_csv",
    "normalize_phone",
    "validate_phone",
    "format_display",
    "format_dial_string",
]
