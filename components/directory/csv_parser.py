"""CSV parser and validator for station feed imports."""
import io
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
import pandas as pd
import logging

logger = logging.getLogger(__name__)

FEED_COLUMNS = [
    "Feed",
    "Status",
    "Rank",
    "Station",
    "City",
    "Air Time",
    "ET Time",
    "Main Name",
    "Main Phone",
    "#2 Name",
    "Phone #2",
    "#3 Name",
    "Phone #3",
    "#4 Name",
    "Phone #4",
]

REQUIRED_COLUMNS = {"Feed", "Rank", "Station", "City"}

# (name column, phone column) in rank order
PHONE_COLUMN_PAIRS = [
    ("Main Name", "Main Phone"),
    ("#2 Name", "Phone #2"),
    ("#3 Name", "Phone #3"),
    ("#4 Name", "Phone #4"),
]

FeedSource = Union[str, Path, io.IOBase]


def _read_frame(source: FeedSource) -> pd.DataFrame:
    """Read a feed into a DataFrame of stripped strings.

    A str containing a newline is treated as CSV text, any other str as a path.
    """
    if isinstance(source, str) and "\n" in source:
        source = io.StringIO(source)

    df = pd.read_csv(
        source,
        dtype=str,
        keep_default_na=False,
        skipinitialspace=True,
        skip_blank_lines=True,
    )

    if hasattr(source, "seek"):
        source.seek(0)

    df.columns = df.columns.str.strip()
    df = df.fillna("")
    return df.apply(lambda column: column.str.strip())


def validate_feed_csv(source: FeedSource) -> Tuple[bool, Optional[str]]:
    """Validate feed CSV format and required columns.

    Args:
        source: Path, CSV text, or file-like object

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        df = _read_frame(source)

        if df.empty:
            return False, "No data in CSV"

        missing_columns = REQUIRED_COLUMNS - set(df.columns)
        if missing_columns:
            return False, f"Missing required columns: {', '.join(sorted(missing_columns))}"

        return True, None

    except pd.errors.EmptyDataError:
        return False, "No data in CSV"
    except pd.errors.ParserError as e:
        return False, f"CSV parsing error: {str(e)}"


def parse_feed_rows(source: FeedSource) -> List[Dict[str, str]]:
    """Parse a feed CSV into header-keyed rows.

    Every known feed column is present in each row; optional columns missing
    from the file come back as empty strings. Extra columns are kept.

    Raises:
        ValueError: If the CSV is empty or lacks required columns
    """
    is_valid, error = validate_feed_csv(source)
    if not is_valid:
        raise ValueError(error)

    df = _read_frame(source)
    for column in FEED_COLUMNS:
        if column not in df.columns:
            df[column] = ""

    rows = df.to_dict(orient="records")
    logger.info(f"Parsed {len(rows)} feed rows ({len(df.columns)} columns)")
    return rows
