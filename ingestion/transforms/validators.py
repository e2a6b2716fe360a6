"""
Core validators for canonical price and allocation frames.
Pure functions - no IO, network, or side effects.
"""

import math
from datetime import date
from typing import Iterable, List

import pandas as pd


PRICE_COLUMNS = ['instrument_id', 'date', 'price']
ALLOCATION_COLUMNS = ['instrument_id', 'weight', 'country']


class ValidationError(ValueError):
    """Raised when data validation fails."""
    pass


def validate_date_range(start_date: date, end_date: date) -> None:
    """
    Validate an inclusive calendar date range.

    Args:
        start_date: First date of the range
        end_date: Last date of the range

    Raises:
        ValidationError: If either bound is not a date or start is after end
    """
    for name, value in (('start_date', start_date), ('end_date', end_date)):
        if not isinstance(value, date):
            raise ValidationError(f"{name} must be date, got {type(value)}")

    if start_date > end_date:
        raise ValidationError(
            f"start_date ({start_date}) must be <= end_date ({end_date})"
        )


def require_columns(frame: pd.DataFrame, columns: Iterable[str], name: str) -> None:
    """
    Check that a frame carries every required column.

    Raises:
        ValidationError: If any column is missing
    """
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise ValidationError(f"{name} missing required columns: {missing}")


def validate_weight(instrument_id: str, weight: float) -> None:
    """
    Validate a single portfolio weight.

    Raises:
        ValidationError: If the weight is not a finite positive number
    """
    if not isinstance(weight, (int, float)) or isinstance(weight, bool):
        raise ValidationError(
            f"weight for {instrument_id} must be numeric, got {type(weight)}"
        )

    if not math.isfinite(weight):
        raise ValidationError(f"weight for {instrument_id} must be finite, got {weight}")

    if weight <= 0:
        raise ValidationError(f"weight for {instrument_id} must be positive, got {weight}")


def validate_allocations(allocations: pd.DataFrame) -> None:
    """
    Validate an allocation frame (instrument_id, weight, country).

    Args:
        allocations: Allocation frame

    Raises:
        ValidationError: If the frame is empty, ids repeat, or a weight is not positive
    """
    require_columns(allocations, ALLOCATION_COLUMNS, 'allocations')

    if allocations.empty:
        raise ValidationError("allocations must not be empty")

    duplicated = allocations['instrument_id'][allocations['instrument_id'].duplicated()]
    if not duplicated.empty:
        raise ValidationError(
            f"Duplicate instrument_id in allocations: {sorted(set(duplicated))}"
        )

    for instrument_id, weight in zip(allocations['instrument_id'], allocations['weight']):
        validate_weight(instrument_id, float(weight))


def validate_price_frame(prices: pd.DataFrame) -> None:
    """
    Validate a PriceObservation frame.

    Prices must be finite and positive; dates must be unique per instrument.
    Ordering is not checked here because every consumer re-sorts.

    Args:
        prices: Frame with instrument_id, date, price columns

    Raises:
        ValidationError: If validation fails
    """
    require_columns(prices, PRICE_COLUMNS, 'prices')

    if prices['price'].isna().any():
        raise ValidationError("price must not be missing")

    non_finite = ~prices['price'].map(math.isfinite)
    if non_finite.any():
        raise ValidationError(f"price must be finite, got {prices.loc[non_finite, 'price'].iloc[0]}")

    non_positive = prices['price'] <= 0
    if non_positive.any():
        bad = prices.loc[non_positive].iloc[0]
        raise ValidationError(
            f"price must be positive, got {bad['price']} for {bad['instrument_id']} on {bad['date']}"
        )

    check_price_date_uniqueness(prices)


def check_price_date_uniqueness(prices: pd.DataFrame) -> None:
    """
    Check that no instrument has two observations on the same date.

    Args:
        prices: Frame with instrument_id and date columns

    Raises:
        ValidationError: If a duplicate (instrument_id, date) pair exists
    """
    dupes = prices.duplicated(subset=['instrument_id', 'date'], keep=False)
    if dupes.any():
        first = prices.loc[dupes].iloc[0]
        raise ValidationError(
            f"Duplicate date found for instrument {first['instrument_id']}: {first['date']}"
        )


def missing_instruments(price_ids: Iterable[str], allocation_ids: Iterable[str]) -> List[str]:
    """Instruments with prices but no allocation (dropped by the inner join)."""
    return sorted(set(price_ids) - set(allocation_ids))
