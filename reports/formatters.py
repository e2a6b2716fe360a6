"""
Display formatters for summary tables.
Deterministic string formatting for percentages and dates.
"""

from datetime import date, datetime
from typing import Iterable, Optional, Union

import pandas as pd


NOT_AVAILABLE = "Not available"


class FormatterError(Exception):
    """Raised when formatter input validation fails."""
    pass


def format_percentage(value: Optional[float], decimal_places: int = 1, signed: bool = False) -> str:
    """
    Format decimal as percentage with specified precision.

    Args:
        value: Decimal value (0.0845 = 8.45%)
        decimal_places: Number of decimal places (default: 1)
        signed: Always show the sign (+/-)

    Returns:
        Formatted percentage string (e.g., "8.5%"), or "Not available" for
        None and NaN
    """
    if value is None:
        return NOT_AVAILABLE

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise FormatterError(f"Percentage value must be numeric, got {type(value)}")

    if pd.isna(value):
        return NOT_AVAILABLE

    if decimal_places < 0:
        raise FormatterError(f"decimal_places must be non-negative, got {decimal_places}")

    pct = value * 100
    sign = '+' if signed else ''
    return f"{pct:{sign}.{decimal_places}f}%"


def format_percentage_columns(
    frame: pd.DataFrame,
    columns: Iterable[str],
    decimal_places: int = 2,
    signed: bool = False
) -> pd.DataFrame:
    """
    Copy of frame with the given numeric columns rendered as percentage strings.

    Args:
        frame: Summary table
        columns: Columns holding decimal returns/volatilities
        decimal_places: Number of decimal places
        signed: Always show the sign (+/-)

    Returns:
        New frame; the input is left untouched

    Raises:
        FormatterError: If a column is missing
    """
    formatted = frame.copy()
    for column in columns:
        if column not in formatted.columns:
            raise FormatterError(f"Column not found: {column}")
        formatted[column] = [
            format_percentage(None if pd.isna(v) else float(v), decimal_places, signed)
            for v in formatted[column]
        ]
    return formatted


def format_date_display(date_input: Union[str, date, datetime, None]) -> str:
    """
    Format date as "Month D, YYYY".

    Args:
        date_input: Date as ISO string, date, datetime or pandas Timestamp

    Returns:
        Formatted date string (e.g., "July 15, 2025")
    """
    if date_input is None:
        return NOT_AVAILABLE

    if isinstance(date_input, str):
        try:
            date_obj = pd.Timestamp(date_input).date()
        except ValueError:
            raise FormatterError(f"Invalid date string: {date_input}")
    elif isinstance(date_input, datetime):
        date_obj = date_input.date()
    elif isinstance(date_input, date):
        date_obj = date_input
    else:
        raise FormatterError(f"Date must be string, date, or datetime, got {type(date_input)}")

    return f"{date_obj.strftime('%B')} {date_obj.day}, {date_obj.year}"
